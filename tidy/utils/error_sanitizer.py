"""
Error message sanitization utility.

Keeps file paths, stack traces, SQL errors and key-shaped strings out of
HTTP error bodies. Full details go to the log; clients get a short message.
"""

from __future__ import annotations

import re

from tidy.observability.logging import get_logger

logger = get_logger(__name__)

# Patterns that might leak sensitive information
SENSITIVE_PATTERNS = [
    # File paths
    r"/[^\s]+\.py",
    r"[A-Za-z]:\\[^\s]+",
    # Stack trace indicators
    r"Traceback \(most recent call last\)",
    r"File \".*\"",
    r"line \d+",
    # Database errors
    r"sqlite3?\.",
    r"UNIQUE constraint",
    r"no such table",
    r"no such column",
    # API keys / secrets
    r"AIza[0-9A-Za-z_-]{20,}",
    r"[A-Za-z0-9_-]{32,}",
    r"Bearer [A-Za-z0-9._-]+",
    # Internal module names
    r"tidy\.[a-z_.]+",
]

GENERIC_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    404: "Resource not found.",
    422: "Invalid data format.",
    429: "Too many requests. Please try again later.",
    500: "An internal error occurred. Please try again later.",
    503: "Service temporarily unavailable.",
}


def sanitize_error_message(message: str, status_code: int = 500) -> str:
    """
    Sanitize an error message before it reaches a client.

    Args:
        message: The original error message
        status_code: HTTP status code (selects the generic fallback)

    Returns:
        The message itself for short, clean 4xx/503 messages; otherwise a
        generic message for the status code
    """
    generic = GENERIC_MESSAGES.get(status_code, "An error occurred.")
    if not message:
        return generic

    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            logger.warning("Sanitized sensitive error pattern: %s", pattern)
            return generic

    if (
        (400 <= status_code < 500 or status_code == 503)
        and len(message) < 200
        and not any(c in message for c in "{}[]\n")
    ):
        return message

    return generic


def get_safe_error_detail(error: Exception, status_code: int = 500, context: str | None = None) -> str:
    """
    Log the full error, return a client-safe detail string.

    For 5xx errors the ``context`` string (e.g. "Failed to get user settings")
    is returned when given.
    """
    logger.error("Error (status=%d): %s - %s", status_code, type(error).__name__, str(error))

    if context and status_code >= 500:
        return context
    return sanitize_error_message(str(error), status_code)
