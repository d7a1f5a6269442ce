"""Centralized configuration for the Tidy backend.

Re-exports tidy.infrastructure.settings, then adds typed constants for the
database, LLM gateway, analysis orchestrator, chat, completion cache, history
and API.  Environment overrides use safe defaults so the app starts without
extra env configuration.
"""

from __future__ import annotations

import os

from tidy.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("TIDY_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("TIDY_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("TIDY_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(os.getenv("TIDY_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(os.getenv("TIDY_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("TIDY_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("TIDY_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("TIDY_DB_RETRY_JITTER", "0.1"))

# --- LLM gateway ---
LLM_MAX_RETRIES: int = int(os.getenv("TIDY_LLM_MAX_RETRIES", "3"))
LLM_MAX_CONCURRENCY: int = int(os.getenv("TIDY_LLM_MAX_CONCURRENCY", "1"))
LLM_DEFAULT_BACKOFF_SECONDS: float = 60.0
LLM_RPM_WINDOW_SECONDS: float = 60.0

# Free-tier requests per minute by model family (longest prefix wins)
MODEL_RPM_LIMITS: dict[str, int] = {
    "gemini-2.5-flash": 8,
    "gemini-2.5-pro": 2,
    "gemini-2.0-flash": 12,
    "gemini-pro": 50,
}
DEFAULT_MODEL_RPM: int = 8

# Output tokens: flash 2.5 answers get more room for the JSON schema
MODEL_MAX_TOKENS: dict[str, int] = {"gemini-2.5-flash": 4096}
DEFAULT_MAX_TOKENS: int = 2048

# --- Analysis orchestrator ---
ANALYZER_ORDER: tuple[str, ...] = (
    "codeQuality",
    "security",
    "performance",
    "maintainability",
    "testing",
    "documentation",
)
ANALYSIS_TIMEOUT_SECONDS: float = float(os.getenv("TIDY_ANALYSIS_TIMEOUT", "45"))
ANALYSIS_MAX_CONCURRENCY: int = int(os.getenv("TIDY_ANALYSIS_MAX_CONCURRENCY", "1"))
ANALYSIS_RETRY_ATTEMPTS: int = 2
ANALYSIS_BACKOFF_MULTIPLIER: float = 1.5
ANALYSIS_RETRY_BASE_DELAY: float = 1.0
BREAKER_ERROR_THRESHOLD: int = 2
OFFLINE_SCORE: int = 75
ERROR_FALLBACK_SCORE: int = 70

# --- Chat ---
CHAT_HISTORY_LIMIT: int = 20
CHAT_PROMPT_HISTORY: int = 10
CHAT_CODE_CONTEXT_CHARS: int = 1000
CHAT_MAX_QUICK_SUGGESTIONS: int = 5
CHAT_MAX_REPLY_SUGGESTIONS: int = 3

# --- Inline completion ---
COMPLETION_CACHE_TTL_SECONDS: float = 30.0
COMPLETION_CACHE_MAX_ENTRIES: int = 50
COMPLETION_MAX_CHARS: int = 100

# --- Analysis history ---
HISTORY_STORAGE_KEY: str = "analysis_history_v2"
HISTORY_BACKUP_KEY: str = "analysis_history_backup"
HISTORY_MAX_ITEMS: int = 50

# --- API ---
API_CODE_MAX_CHARS: int = 100_000
API_LIST_LIMIT_DEFAULT: int = 50
API_LIST_LIMIT_MAX: int = 500

# --- Rate Limiting ---
RATE_LIMIT_RPM: int = int(os.getenv("TIDY_RATE_LIMIT_RPM", "60"))
RATE_LIMIT_RPH: int = int(os.getenv("TIDY_RATE_LIMIT_RPH", "1000"))
RATE_LIMIT_MAX_IPS: int = 10000


def rpm_limit_for(model_name: str) -> int:
    """Requests-per-minute budget for a model name."""
    for prefix in sorted(MODEL_RPM_LIMITS, key=len, reverse=True):
        if model_name.startswith(prefix):
            return MODEL_RPM_LIMITS[prefix]
    return DEFAULT_MODEL_RPM


def max_tokens_for(model_name: str) -> int:
    for prefix, tokens in MODEL_MAX_TOKENS.items():
        if model_name.startswith(prefix):
            return tokens
    return DEFAULT_MAX_TOKENS
