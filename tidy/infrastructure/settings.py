"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

# Load .env before anything below reads the environment.
# TIDY_ENV_FILE points at an explicit file; otherwise search up from the cwd.
load_dotenv(os.getenv("TIDY_ENV_FILE") or find_dotenv(usecwd=True))

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
TIDY_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("TIDY_ENV", "development")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Gemini
# GEMINI_API_KEY is the name the editor docs use; GOOGLE_API_KEY is what the SDK reads.
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "0")) or None  # None = per-model default
GEMINI_BACKEND = os.getenv("TIDY_GEMINI_BACKEND", "genai")  # genai | vertex
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")

# Chat uses a warmer temperature than analysis
CHAT_TEMPERATURE = float(os.getenv("TIDY_CHAT_TEMPERATURE", "0.7"))
CHAT_MAX_TOKENS = int(os.getenv("TIDY_CHAT_MAX_TOKENS", "2048"))

# Inline completion
COMPLETION_TEMPERATURE = float(os.getenv("TIDY_COMPLETION_TEMPERATURE", "0.3"))
COMPLETION_MAX_TOKENS = int(os.getenv("TIDY_COMPLETION_MAX_TOKENS", "1024"))
