"""Completion gateway - the single chokepoint in front of the Gemini API.

Every analyzer, the chat assistant and inline completion call
``generate_completion(prompt) -> text``. The gateway:

- serializes calls (one in flight by default) so bursts of analyzer calls
  stay inside the provider's per-minute budget
- keeps a per-model requests-per-minute window and a backoff deadline after
  the provider reports a rate limit
- retries transient provider errors with tenacity (deadline, 5xx)
- translates provider exceptions and blocked/empty replies into the typed
  errors in tidy.llm.errors
"""

from __future__ import annotations

import asyncio
import re
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tidy.config import (
    GEMINI_MAX_TOKENS,
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    LLM_DEFAULT_BACKOFF_SECONDS,
    LLM_MAX_CONCURRENCY,
    LLM_MAX_RETRIES,
    LLM_RPM_WINDOW_SECONDS,
    max_tokens_for,
    rpm_limit_for,
)
from tidy.llm.errors import (
    CompletionError,
    EmptyResponseError,
    InvalidApiKeyError,
    ModelNotFoundError,
    ProviderError,
    QuotaExceededError,
    RateLimitedError,
    SafetyBlockedError,
    TransientProviderError,
)
from tidy.llm.gemini import create_gemini_model
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

_RETRY_DELAY_PATTERNS = (
    re.compile(r"retry in ([\d.]+)\s*s", re.IGNORECASE),
    re.compile(r"retry_delay\s*\{\s*seconds:\s*(\d+)", re.IGNORECASE),
)
_DAILY_QUOTA_HINTS = ("per day", "perday", "daily")
_MINUTE_LIMIT_HINTS = ("per minute", "perminute")


@dataclass(frozen=True)
class CompletionOptions:
    """Per-call overrides of the gateway's generation config."""

    temperature: float | None = None
    max_tokens: int | None = None
    response_mime_type: str | None = None


class CompletionClient(Protocol):
    """Anything that turns a prompt into text; CompletionGateway and test fakes."""

    async def generate_completion(
        self, prompt: str, options: CompletionOptions | None = None
    ) -> str: ...


def _enum_name(value: Any) -> str | None:
    if value is None:
        return None
    name = getattr(value, "name", None)
    return name if isinstance(name, str) else str(value)


def parse_retry_delay(message: str, default: float = LLM_DEFAULT_BACKOFF_SECONDS) -> float:
    """Pull the provider's suggested retry delay out of an error message."""
    for pattern in _RETRY_DELAY_PATTERNS:
        match = pattern.search(message)
        if match:
            return float(match.group(1))
    return default


def translate_provider_error(error: Exception) -> CompletionError:
    """
    Map a google.api_core exception onto the gateway's typed errors.

    403 is treated as quota exhaustion (billing/plan disabled) to match how the
    editor surfaces it; a 429 is quota only when it names a daily/plan cap.
    """
    from google.api_core.exceptions import (
        InvalidArgument,
        NotFound,
        PermissionDenied,
        ResourceExhausted,
        Unauthenticated,
    )

    message = str(error)
    lowered = message.lower()

    if isinstance(error, ResourceExhausted):
        if any(hint in lowered for hint in _MINUTE_LIMIT_HINTS):
            return RateLimitedError(message, retry_after=parse_retry_delay(message))
        if any(hint in lowered for hint in _DAILY_QUOTA_HINTS) or "quota" in lowered:
            return QuotaExceededError(message)
        return RateLimitedError(message, retry_after=parse_retry_delay(message))
    if isinstance(error, PermissionDenied):
        return QuotaExceededError(f"API access forbidden - check quota and billing: {message}")
    if isinstance(error, Unauthenticated):
        return InvalidApiKeyError(message)
    if isinstance(error, InvalidArgument):
        if "api key" in lowered or "api_key" in lowered:
            return InvalidApiKeyError(message)
        return ProviderError(f"BAD_REQUEST: {message}")
    if isinstance(error, NotFound):
        return ModelNotFoundError(message)
    return ProviderError(message)


class CompletionGateway:
    """
    Serialized, rate-aware wrapper around a Gemini model.

    The model is any object with ``generate_content(prompt, generation_config=...)``
    (google-generativeai and Vertex models both qualify; tests pass fakes).
    """

    def __init__(
        self,
        model: Any,
        model_name: str = GEMINI_MODEL,
        *,
        temperature: float = GEMINI_TEMPERATURE,
        max_tokens: int | None = GEMINI_MAX_TOKENS,
        max_concurrency: int = LLM_MAX_CONCURRENCY,
        requests_per_minute: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._model = model
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens or max_tokens_for(model_name)
        self.max_concurrency = max(1, max_concurrency)
        self.requests_per_minute = requests_per_minute or rpm_limit_for(model_name)
        self._clock = clock
        self._sleep = sleep
        self._window: deque[float] = deque()
        self._backoff_until = 0.0
        self._semaphore: asyncio.Semaphore | None = None
        self._semaphore_loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def from_api_key(
        cls, api_key: str | None, model_name: str = GEMINI_MODEL, **kwargs: Any
    ) -> CompletionGateway:
        """
        Build a gateway with a freshly configured Gemini model.

        Raises:
            GeminiInitializationError: If no key is configured
        """
        return cls(create_gemini_model(api_key, model_name), model_name, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_completion(
        self, prompt: str, options: CompletionOptions | None = None
    ) -> str:
        """
        Send one prompt and return the reply text.

        Raises:
            RateLimitedError, QuotaExceededError, SafetyBlockedError,
            EmptyResponseError, InvalidApiKeyError, ModelNotFoundError,
            ProviderError

        Side Effects:
            - Calls the Gemini API (in a worker thread)
            - May sleep to respect the per-minute window
            - Sets a backoff deadline after a provider rate limit
        """
        self._check_backoff()
        options = options or CompletionOptions()

        semaphore = self._get_semaphore()
        await semaphore.acquire()
        try:
            # Calls queued behind a rate-limited call must not reach the provider
            self._check_backoff()
            task = asyncio.ensure_future(self._send(prompt, options))
        except BaseException:
            semaphore.release()
            raise

        # The permit stays held until the worker finishes, even if the caller
        # times out or is cancelled, so provider calls never overlap.
        def _release(done: asyncio.Future[str]) -> None:
            semaphore.release()
            if not done.cancelled():
                # Marks the error retrieved when the caller already gave up
                done.exception()

        task.add_done_callback(_release)
        return await asyncio.shield(task)

    def backoff_remaining(self) -> float:
        return max(0.0, self._backoff_until - self._clock())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_backoff(self) -> None:
        remaining = self.backoff_remaining()
        if remaining > 0:
            counter("llm.gateway.backoff_rejected")
            raise RateLimitedError(
                f"Rate limited - retry in {remaining:.0f}s", retry_after=remaining
            )

    async def _send(self, prompt: str, options: CompletionOptions) -> str:
        """One provider round trip; runs while the caller's permit is held."""
        await self._wait_for_rate_window()
        counter("llm.gateway.calls")
        try:
            with time_block("llm.gateway.latency"):
                return await self._complete(prompt, options)
        except CompletionError as e:
            counter(f"llm.gateway.error.{e.code.lower()}")
            if isinstance(e, RateLimitedError):
                delay = e.retry_after or LLM_DEFAULT_BACKOFF_SECONDS
                self._backoff_until = self._clock() + delay
                logger.warning("Gemini rate limit hit, backing off for %.0fs", delay)
            log_event("llm.gateway.error", code=e.code, model=self.model_name)
            raise

    def _get_semaphore(self) -> asyncio.Semaphore:
        # A semaphore belongs to one event loop; rebuild it if the loop changed.
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
            self._semaphore_loop = loop
        return self._semaphore

    async def _wait_for_rate_window(self) -> None:
        now = self._clock()
        self._prune_window(now)
        if len(self._window) >= self.requests_per_minute:
            delay = LLM_RPM_WINDOW_SECONDS - (now - self._window[0])
            logger.info(
                "Gemini RPM window full (%d/min for %s), waiting %.1fs",
                self.requests_per_minute,
                self.model_name,
                delay,
            )
            counter("llm.gateway.rpm_wait")
            await self._sleep(max(0.0, delay))
            now = self._clock()
            self._prune_window(now)
        self._window.append(now)

    def _prune_window(self, now: float) -> None:
        while self._window and now - self._window[0] >= LLM_RPM_WINDOW_SECONDS:
            self._window.popleft()

    def _generation_config(self, options: CompletionOptions, max_tokens: int) -> dict[str, Any]:
        config: dict[str, Any] = {
            "temperature": self.temperature if options.temperature is None else options.temperature,
            "max_output_tokens": max_tokens,
        }
        if options.response_mime_type:
            config["response_mime_type"] = options.response_mime_type
        return config

    async def _complete(self, prompt: str, options: CompletionOptions) -> str:
        max_tokens = options.max_tokens or self.max_tokens
        response = await self._request(prompt, self._generation_config(options, max_tokens))
        text, finish_reason = self._read_response(response)

        if not text and finish_reason == "MAX_TOKENS":
            # Thinking models can spend the whole budget before emitting text
            logger.warning("Empty Gemini reply at MAX_TOKENS, retrying with %d tokens", max_tokens * 2)
            counter("llm.gateway.max_tokens_retry")
            response = await self._request(
                prompt, self._generation_config(options, max_tokens * 2)
            )
            text, finish_reason = self._read_response(response)

        if not text:
            raise EmptyResponseError(
                f"Empty response from API (finish_reason={finish_reason or 'unknown'})"
            )
        return text

    async def _request(self, prompt: str, generation_config: dict[str, Any]) -> Any:
        try:
            return await asyncio.to_thread(self._call_model, prompt, generation_config)
        except CompletionError:
            raise
        except TransientProviderError as e:
            logger.error("Gemini unavailable after %d attempts: %s", LLM_MAX_RETRIES, e)
            raise ProviderError(f"Provider unavailable: {e}") from e
        except Exception as e:
            logger.warning("Gemini call failed: %s", e)
            raise translate_provider_error(e) from e

    @retry(
        stop=stop_after_attempt(LLM_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TransientProviderError),
        reraise=True,
    )
    def _call_model(self, prompt: str, generation_config: dict[str, Any]) -> Any:
        from google.api_core.exceptions import (
            DeadlineExceeded,
            InternalServerError,
            ServiceUnavailable,
        )

        try:
            return self._model.generate_content(prompt, generation_config=generation_config)
        except DeadlineExceeded as e:
            counter("llm.gateway.timeout")
            logger.warning("Gemini call timed out, will retry: %s", e)
            raise TransientProviderError(f"LLM call timed out: {e}") from e
        except (ServiceUnavailable, InternalServerError) as e:
            counter("llm.gateway.service_unavailable")
            logger.warning("Gemini service error, will retry: %s", e)
            raise TransientProviderError(f"LLM service unavailable: {e}") from e

    def _read_response(self, response: Any) -> tuple[str, str | None]:
        """Return (text, finish_reason); raise SafetyBlockedError on blocks."""
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _enum_name(getattr(feedback, "block_reason", None)) if feedback else None
        if block_reason and block_reason not in ("0", "BLOCK_REASON_UNSPECIFIED"):
            raise SafetyBlockedError(
                f"Prompt blocked by safety filter: {block_reason}", block_reason=block_reason
            )

        candidates = getattr(response, "candidates", None) or []
        finish_reason = _enum_name(getattr(candidates[0], "finish_reason", None)) if candidates else None
        if finish_reason == "SAFETY":
            raise SafetyBlockedError("Response blocked by safety filter", block_reason="SAFETY")

        try:
            text = response.text or ""
        except (ValueError, AttributeError):
            # genai raises ValueError when the candidate has no parts
            text = ""
        return text.strip(), finish_reason
