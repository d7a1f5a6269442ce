"""
Gemini model construction.

Supports two backends:
  1. google-generativeai (default) - API key from the editor settings or env
  2. Vertex AI SDK - GOOGLE_CLOUD_PROJECT + service account (TIDY_GEMINI_BACKEND=vertex)

Unlike a process-wide singleton, every call builds a model bound to the given
key, so a changed API key simply means a new model (and a new gateway).
"""

from __future__ import annotations

from typing import Any

from tidy.infrastructure.settings import GEMINI_BACKEND, GEMINI_LOCATION, GOOGLE_CLOUD_PROJECT
from tidy.observability.logging import get_logger

logger = get_logger(__name__)

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
BLOCK_THRESHOLD = "BLOCK_MEDIUM_AND_ABOVE"


class GeminiInitializationError(RuntimeError):
    """Raised when a Gemini model cannot be initialized (e.g. no API key)."""


def safety_settings() -> list[dict[str, str]]:
    """Block medium-and-above for the four standard harm categories."""
    return [{"category": category, "threshold": BLOCK_THRESHOLD} for category in HARM_CATEGORIES]


def create_gemini_model(api_key: str | None, model_name: str, backend: str | None = None) -> Any:
    """
    Build a Gemini model for the configured backend.

    Args:
        api_key: Gemini API key (required for the genai backend)
        model_name: Model id, e.g. "gemini-2.5-flash"
        backend: "genai" or "vertex" (defaults to TIDY_GEMINI_BACKEND)

    Returns:
        A model object exposing generate_content(prompt, generation_config=...)

    Raises:
        GeminiInitializationError: If credentials are missing or the SDK fails
    """
    backend = backend or GEMINI_BACKEND

    if backend == "vertex":
        return _create_vertex_model(model_name)

    if not api_key:
        raise GeminiInitializationError(
            "Gemini API key not configured. Set GEMINI_API_KEY or add a key in settings."
        )

    import google.generativeai as genai

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name, safety_settings=safety_settings())
    except Exception as e:
        logger.error("Failed to initialize Gemini model: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e

    logger.info("Initialized Gemini model (google-generativeai): model=%s", model_name)
    return model


def _create_vertex_model(model_name: str) -> Any:
    import vertexai
    from vertexai.generative_models import (
        GenerativeModel,
        HarmBlockThreshold,
        HarmCategory,
        SafetySetting,
    )

    if not GOOGLE_CLOUD_PROJECT:
        raise GeminiInitializationError("GOOGLE_CLOUD_PROJECT not set for the vertex backend")

    try:
        vertexai.init(project=GOOGLE_CLOUD_PROJECT, location=GEMINI_LOCATION)
        settings = [
            SafetySetting(
                category=getattr(HarmCategory, category),
                threshold=getattr(HarmBlockThreshold, BLOCK_THRESHOLD),
            )
            for category in HARM_CATEGORIES
        ]
        model = GenerativeModel(model_name, safety_settings=settings)
    except Exception as e:
        logger.error("Failed to initialize Vertex Gemini model: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e

    logger.info(
        "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
        GOOGLE_CLOUD_PROJECT,
        GEMINI_LOCATION,
        model_name,
    )
    return model
