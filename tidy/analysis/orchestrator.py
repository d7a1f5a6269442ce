"""
Analysis orchestrator - runs the enabled analyzers in bounded batches.

Batches run strictly one after another; inside a batch analyzers overlap
(``asyncio.gather``) up to ``max_concurrency``. Every analyzer gets a
timeout, raw failures are retried with backoff, and provider failures feed a
circuit breaker. Once the breaker is open the orchestrator is "offline":
analyzers are skipped and placeholder results are returned until
``reset_offline_mode()`` (or the optional timed half-open probe).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from tidy.analysis.analyzers import ANALYZERS, Analyzer
from tidy.analysis.types import (
    AnalysisConfig,
    AnalysisError,
    AnalysisMetadata,
    AnalysisProgress,
    AnalysisResult,
    AnalysisRun,
    AnalysisSummary,
    CodeContext,
    Fallback,
    Ok,
)
from tidy.config import BREAKER_ERROR_THRESHOLD, ERROR_FALLBACK_SCORE, OFFLINE_SCORE
from tidy.llm.errors import (
    EmptyResponseError,
    InvalidApiKeyError,
    QuotaExceededError,
    RateLimitedError,
    SafetyBlockedError,
)
from tidy.llm.gateway import CompletionClient
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter, log_event

logger = get_logger(__name__)

ProgressCallback = Callable[[AnalysisProgress], None]

_QUOTA_MARKERS = ("QUOTA_EXCEEDED", "daily API quota", "quota exceeded")
_API_FAILURE_MARKERS = ("EMPTY_RESPONSE", "Empty response from API", "SAFETY_FILTER")
_RATE_LIMIT_MARKERS = ("RATE_LIMIT", "rate limit", "Too many requests")


class AnalysisCancelledError(Exception):
    """The caller cancelled the run; partial results are discarded."""

    def __init__(self, message: str = "Analysis cancelled") -> None:
        super().__init__(message)


# ============================================================================
# Circuit breaker
# ============================================================================

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


def classify_failure(error: BaseException) -> str:
    """
    Bucket an analyzer failure for the breaker.

    Returns:
        "quota", "api_failure", "rate_limit" or "other"
    """
    if isinstance(error, QuotaExceededError):
        return "quota"
    if isinstance(error, (EmptyResponseError, SafetyBlockedError)):
        return "api_failure"
    if isinstance(error, RateLimitedError):
        return "rate_limit"

    # Injected analyzers may raise plain exceptions carrying provider codes
    message = str(error)
    if any(marker in message for marker in _QUOTA_MARKERS):
        return "quota"
    if any(marker in message for marker in _API_FAILURE_MARKERS):
        return "api_failure"
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return "rate_limit"
    return "other"


@dataclass
class CircuitBreaker:
    """
    closed -> open after ``threshold`` consecutive provider failures (or one
    quota failure); open -> closed only via ``reset()`` unless
    ``recovery_seconds`` is set, in which case one half-open probe is allowed.
    """

    threshold: int = BREAKER_ERROR_THRESHOLD
    recovery_seconds: float | None = None
    clock: Callable[[], float] = time.monotonic
    consecutive_errors: int = field(default=0, init=False)
    _state: str = field(default=CLOSED, init=False)
    _opened_at: float | None = field(default=None, init=False)

    @property
    def state(self) -> str:
        return self._state

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    def is_open(self) -> bool:
        return self._state == OPEN

    def allow_request(self) -> bool:
        if self._state != OPEN:
            return True
        if self.recovery_seconds is not None and self._opened_at is not None:
            if self.clock() - self._opened_at >= self.recovery_seconds:
                self._state = HALF_OPEN
                log_event("analysis.breaker.half_open")
                return True
        return False

    def record_success(self) -> None:
        self.consecutive_errors = 0
        if self._state != CLOSED:
            self._state = CLOSED
            log_event("analysis.breaker.closed")

    def record_failure(self, error: BaseException) -> str:
        """
        Update breaker state for one failure.

        Returns:
            The failure class from classify_failure()

        Side Effects:
            May open the breaker (counter ``analysis.breaker.opened``)
        """
        kind = classify_failure(error)
        if kind == "quota":
            logger.error("Provider quota exceeded, entering offline mode")
            self._open(reason=kind)
        elif kind in ("api_failure", "rate_limit"):
            self.consecutive_errors += 1
            if self._state == HALF_OPEN or self.consecutive_errors >= self.threshold:
                logger.warning(
                    "Repeated provider failures (%s x%d), entering offline mode",
                    kind,
                    self.consecutive_errors,
                )
                self._open(reason=kind)
        else:
            self.consecutive_errors = 0
        return kind

    def reset(self) -> None:
        self.consecutive_errors = 0
        self._opened_at = None
        self._state = CLOSED

    def _open(self, reason: str) -> None:
        if self._state != OPEN:
            counter("analysis.breaker.opened")
            log_event("analysis.breaker.opened", reason=reason, errors=self.consecutive_errors)
        self._opened_at = self.clock()
        self._state = OPEN


# ============================================================================
# Orchestrator
# ============================================================================


def chunk(items: list[Any], size: int) -> list[list[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class AnalysisOrchestrator:
    """
    Schedules analyzers and aggregates their results into an AnalysisRun.

    Args:
        gateway: Completion client handed to every analyzer
        config: Initial configuration (defaults from tidy.config)
        analyzers: Ordered registry kind -> analyzer (defaults to all six)
        sleep: Awaitable sleep used for retry backoff
    """

    def __init__(
        self,
        gateway: CompletionClient,
        config: AnalysisConfig | None = None,
        analyzers: Mapping[str, Analyzer] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self._config = config.model_copy() if config else AnalysisConfig()
        self._analyzers = dict(analyzers) if analyzers is not None else dict(ANALYZERS)
        self._clock = clock
        self._sleep = sleep
        self._breaker = CircuitBreaker(
            recovery_seconds=self._config.offline_recovery_seconds, clock=clock
        )

    # ------------------------------------------------------------------
    # Config and breaker state
    # ------------------------------------------------------------------

    def get_config(self) -> AnalysisConfig:
        return self._config.model_copy()

    def merged_config(self, **partial: Any) -> AnalysisConfig:
        """
        Current config with a partial override (snake_case or camelCase keys)
        applied. Does not change the orchestrator.

        Raises:
            pydantic.ValidationError: If the merged config is invalid
        """
        names = {info.alias or name: name for name, info in AnalysisConfig.model_fields.items()}
        changes = {names.get(key, key): value for key, value in partial.items()}
        return AnalysisConfig.model_validate({**self._config.model_dump(), **changes})

    def update_config(self, **partial: Any) -> AnalysisConfig:
        """Merge a partial config into the orchestrator's own config."""
        self._config = self.merged_config(**partial)
        self._breaker.recovery_seconds = self._config.offline_recovery_seconds
        return self.get_config()

    def is_offline(self) -> bool:
        return not self._breaker.allow_request()

    def reset_offline_mode(self) -> None:
        self._breaker.reset()
        logger.info("Offline mode reset")

    @property
    def consecutive_errors(self) -> int:
        return self._breaker.consecutive_errors

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def analyze_code(
        self,
        context: CodeContext,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        config: AnalysisConfig | None = None,
    ) -> AnalysisRun:
        """
        Run every enabled analyzer over one code context.

        ``config`` overrides the orchestrator's config for this run only.

        Returns:
            AnalysisRun with one result per enabled analyzer, in registry order

        Raises:
            AnalysisCancelledError: If cancel_event is set before a batch or
                before an analyzer starts

        Side Effects:
            - Calls the completion gateway (unless offline)
            - Updates the circuit breaker
            - Invokes on_progress
        """
        started = self._clock()
        config = config or self._config
        enabled = [
            (kind, fn) for kind, fn in self._analyzers.items() if kind in config.enabled_analyzers
        ]
        total = len(enabled)
        batches = chunk(enabled, config.max_concurrency)
        logger.info(
            "Running %d analyses in %d batches (concurrency: %d)",
            total,
            len(batches),
            config.max_concurrency,
        )

        results: list[AnalysisResult] = []
        errors: list[AnalysisError] = []
        self._emit(on_progress, AnalysisProgress(current=0, total=total))

        for index, batch in enumerate(batches):
            self._check_cancelled(cancel_event)
            logger.debug(
                "Processing batch %d/%d: %s",
                index + 1,
                len(batches),
                ", ".join(kind for kind, _ in batch),
            )
            tasks = []
            for offset, (kind, fn) in enumerate(batch):
                position = len(results) + offset + 1
                tasks.append(
                    self._run_one(
                        kind, fn, context, config, position, total, on_progress, cancel_event
                    )
                )
            for result, error in await asyncio.gather(*tasks):
                results.append(result)
                if error is not None:
                    errors.append(error)

        self._emit(
            on_progress,
            AnalysisProgress(current=total, total=total, status="completed"),
        )

        if not config.include_suggestions:
            results = [r.model_copy(update={"suggestions": []}) for r in results]

        summary = AnalysisSummary(
            overall_score=round(sum(r.score for r in results) / len(results)) if results else 0,
            total_issues=sum(len(r.issues) for r in results),
            total_suggestions=sum(len(r.suggestions) for r in results),
            analysis_time=int((self._clock() - started) * 1000),
        )
        log_event(
            "analysis.run.completed",
            analyzers=total,
            errors=len(errors),
            score=summary.overall_score,
            offline=self._breaker.is_open(),
        )
        return AnalysisRun(results=results, errors=errors, summary=summary)

    async def _run_one(
        self,
        kind: str,
        fn: Analyzer,
        context: CodeContext,
        config: AnalysisConfig,
        position: int,
        total: int,
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> tuple[AnalysisResult, AnalysisError | None]:
        self._check_cancelled(cancel_event)
        self._emit(
            on_progress,
            AnalysisProgress(current=position, total=total, current_analyzer=kind),
        )

        if self.is_offline():
            logger.info("%s analysis skipped (offline mode)", kind)
            counter("analysis.offline_skip")
            return self._placeholder(
                kind, context, OFFLINE_SCORE, f"{kind} analysis (offline mode - using cached results)"
            ), None

        attempt = 0
        while True:
            try:
                outcome = await asyncio.wait_for(fn(context, self.gateway), config.timeout_seconds)
            except asyncio.TimeoutError:
                error: Exception = TimeoutError("Analysis timeout")
            except Exception as e:
                error = e
            else:
                if isinstance(outcome, Fallback):
                    self._breaker.record_failure(outcome.error)
                    return outcome.result, AnalysisError(
                        analyzer=kind, error=str(outcome.error) or type(outcome.error).__name__
                    )
                if isinstance(outcome, Ok):
                    self._breaker.record_success()
                    return outcome.result, None
                # Plain AnalysisResult from an injected analyzer
                self._breaker.record_success()
                return outcome, None

            logger.error("%s analysis failed: %s", kind, error)
            failure = self._breaker.record_failure(error)
            if attempt < config.retry_attempts and self._should_retry(error, failure, cancel_event):
                delay = config.retry_base_delay * config.backoff_multiplier**attempt
                attempt += 1
                counter("analysis.retry")
                logger.info("Retrying %s analysis in %.1fs (attempt %d)", kind, delay, attempt + 1)
                await self._sleep(delay)
                continue

            counter(f"analysis.{kind}.error")
            offline = self._breaker.is_open()
            result = self._placeholder(
                kind,
                context,
                OFFLINE_SCORE if offline else ERROR_FALLBACK_SCORE,
                f"{kind} analysis (offline mode)" if offline else f"{kind} analysis encountered an error",
            )
            return result, AnalysisError(analyzer=kind, error=str(error) or type(error).__name__)

    def _should_retry(
        self, error: Exception, failure: str, cancel_event: asyncio.Event | None
    ) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return False
        if failure == "quota" or isinstance(error, InvalidApiKeyError):
            return False
        return not self._breaker.is_open()

    @staticmethod
    def _placeholder(kind: str, context: CodeContext, score: int, summary: str) -> AnalysisResult:
        return AnalysisResult(
            type=kind,
            score=score,
            summary=summary,
            metadata=AnalysisMetadata(
                analysis_time=0, lines_analyzed=context.lines, language=context.language
            ),
        )

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            counter("analysis.cancelled")
            raise AnalysisCancelledError()

    @staticmethod
    def _emit(on_progress: ProgressCallback | None, progress: AnalysisProgress) -> None:
        if on_progress is not None:
            on_progress(progress)
