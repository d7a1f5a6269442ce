"""
Typed failures raised by the completion gateway.

Every error carries a stable ``code`` so callers (the orchestrator's breaker,
the API layer) can classify without string matching.
"""

from __future__ import annotations


class CompletionError(Exception):
    """Base class for gateway failures."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class RateLimitedError(CompletionError):
    """Provider asked us to slow down (per-minute limit)."""

    code = "RATE_LIMIT"

    def __init__(self, message: str | None = None, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class QuotaExceededError(CompletionError):
    """Daily/plan quota exhausted; recovery is hours away."""

    code = "QUOTA_EXCEEDED"


class SafetyBlockedError(CompletionError):
    """Prompt or response was blocked by the provider's safety filters."""

    code = "SAFETY_FILTER"

    def __init__(self, message: str | None = None, block_reason: str | None = None) -> None:
        super().__init__(message)
        self.block_reason = block_reason


class EmptyResponseError(CompletionError):
    code = "EMPTY_RESPONSE"


class InvalidApiKeyError(CompletionError):
    code = "INVALID_API_KEY"


class ModelNotFoundError(CompletionError):
    code = "MODEL_NOT_FOUND"


class ProviderError(CompletionError):
    """Any other provider failure, with the provider's detail attached."""

    code = "PROVIDER_ERROR"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail or ""


class TransientProviderError(ConnectionError):
    """Retryable provider hiccup (deadline, 5xx). Never escapes the gateway."""
