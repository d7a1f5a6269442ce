"""Unit tests for the completion gateway (fake Gemini model, no network)."""

from __future__ import annotations

import asyncio
import threading
import time
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions

from tidy.llm.errors import (
    EmptyResponseError,
    InvalidApiKeyError,
    ModelNotFoundError,
    ProviderError,
    QuotaExceededError,
    RateLimitedError,
    SafetyBlockedError,
)
from tidy.llm.gateway import (
    CompletionGateway,
    CompletionOptions,
    parse_retry_delay,
    translate_provider_error,
)
from tidy.llm.gemini import GeminiInitializationError, create_gemini_model
from tidy.observability.telemetry import get_counter


def reply(text="", finish_reason="STOP", block_reason=None):
    return SimpleNamespace(
        text=text,
        candidates=[SimpleNamespace(finish_reason=SimpleNamespace(name=finish_reason))],
        prompt_feedback=SimpleNamespace(block_reason=block_reason),
    )


class FakeModel:
    """Stands in for genai.GenerativeModel; scripted replies or exceptions."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.configs = []

    def generate_content(self, prompt, generation_config=None):
        self.configs.append(generation_config)
        item = self.replies.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class SlowModel:
    """Blocks in the worker thread and records how many calls overlap."""

    def __init__(self, delay):
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def generate_content(self, prompt, generation_config=None):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return reply("done")


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make(model, **kwargs):
    kwargs.setdefault("requests_per_minute", 100)
    return CompletionGateway(model, "gemini-2.5-flash", **kwargs)


def complete(gateway, prompt="p", options=None):
    return asyncio.run(gateway.generate_completion(prompt, options))


class TestGenerateCompletion:
    def test_returns_stripped_text_with_options(self):
        model = FakeModel(reply("  hello \n"))
        gateway = make(model, temperature=0.2, max_tokens=512)

        assert complete(gateway, options=CompletionOptions(temperature=0.7)) == "hello"
        assert model.configs == [{"temperature": 0.7, "max_output_tokens": 512}]
        assert get_counter("llm.gateway.calls") == 1

    def test_json_mime_type_passed_through(self):
        model = FakeModel(reply("{}"))
        complete(make(model), options=CompletionOptions(response_mime_type="application/json"))
        assert model.configs[0]["response_mime_type"] == "application/json"

    def test_max_tokens_retry_doubles_budget(self):
        model = FakeModel(reply("", finish_reason="MAX_TOKENS"), reply("done"))
        gateway = make(model, max_tokens=1000)

        assert complete(gateway) == "done"
        assert [c["max_output_tokens"] for c in model.configs] == [1000, 2000]

    def test_empty_reply_raises(self):
        model = FakeModel(reply("", finish_reason="MAX_TOKENS"), reply("", finish_reason="MAX_TOKENS"))
        with pytest.raises(EmptyResponseError):
            complete(make(model))
        assert get_counter("llm.gateway.error.empty_response") == 1

    def test_text_accessor_failure_is_empty(self):
        class NoParts:
            candidates = []
            prompt_feedback = None

            @property
            def text(self):
                raise ValueError("no parts")

        with pytest.raises(EmptyResponseError):
            complete(make(FakeModel(NoParts())))

    def test_prompt_block_raises_safety_error(self):
        model = FakeModel(reply("x", block_reason=SimpleNamespace(name="SAFETY")))
        with pytest.raises(SafetyBlockedError) as excinfo:
            complete(make(model))
        assert excinfo.value.block_reason == "SAFETY"

    def test_unspecified_block_reason_ignored(self):
        assert complete(make(FakeModel(reply("ok", block_reason=0)))) == "ok"

    def test_response_safety_finish_raises(self):
        with pytest.raises(SafetyBlockedError):
            complete(make(FakeModel(reply("", finish_reason="SAFETY"))))

    def test_rate_limit_sets_backoff(self):
        clock = FakeClock()
        model = FakeModel(
            google_exceptions.ResourceExhausted("Requests per minute exceeded. Please retry in 12s"),
        )
        gateway = make(model, clock=clock)

        with pytest.raises(RateLimitedError) as excinfo:
            complete(gateway)
        assert excinfo.value.retry_after == 12
        assert gateway.backoff_remaining() == 12

        # rejected locally, the model is not called again
        with pytest.raises(RateLimitedError):
            complete(gateway)
        assert get_counter("llm.gateway.backoff_rejected") == 1

        clock.now += 12
        assert gateway.backoff_remaining() == 0

    def test_queued_call_rechecks_backoff(self):
        model = FakeModel(
            google_exceptions.ResourceExhausted("Requests per minute exceeded. Please retry in 30s"),
            reply("never sent"),
        )
        gateway = make(model, clock=FakeClock())

        async def burst():
            return await asyncio.gather(
                gateway.generate_completion("a"),
                gateway.generate_completion("b"),
                return_exceptions=True,
            )

        results = asyncio.run(burst())

        assert all(isinstance(r, RateLimitedError) for r in results)
        assert len(model.configs) == 1
        assert get_counter("llm.gateway.backoff_rejected") == 1

    def test_timed_out_call_keeps_its_slot(self):
        model = SlowModel(delay=0.3)
        gateway = make(model)

        async def scenario():
            for _ in range(3):
                with pytest.raises(asyncio.TimeoutError):
                    await asyncio.wait_for(gateway.generate_completion("p"), 0.05)
            return await gateway.generate_completion("p")

        assert asyncio.run(scenario()) == "done"
        assert model.peak == 1
        assert model.calls == 2

    def test_rpm_window_waits(self):
        sleep = SleepRecorder()
        model = FakeModel(reply("a"), reply("b"), reply("c"))
        gateway = make(model, requests_per_minute=2, clock=FakeClock(), sleep=sleep)

        assert [complete(gateway) for _ in range(3)] == ["a", "b", "c"]
        assert sleep.delays == [60.0]

    def test_unexpected_sdk_error_is_provider_error(self):
        with pytest.raises(ProviderError):
            complete(make(FakeModel(RuntimeError("socket closed"))))


@pytest.mark.parametrize(
    "error, expected",
    [
        (google_exceptions.ResourceExhausted("Quota exceeded per day"), QuotaExceededError),
        (google_exceptions.ResourceExhausted("Too many requests"), RateLimitedError),
        (google_exceptions.PermissionDenied("billing disabled"), QuotaExceededError),
        (google_exceptions.Unauthenticated("bad credentials"), InvalidApiKeyError),
        (google_exceptions.InvalidArgument("API key not valid"), InvalidApiKeyError),
        (google_exceptions.InvalidArgument("contents is empty"), ProviderError),
        (google_exceptions.NotFound("models/gemini-x is not found"), ModelNotFoundError),
        (RuntimeError("other"), ProviderError),
    ],
)
def test_translate_provider_error(error, expected):
    assert type(translate_provider_error(error)) is expected


def test_bad_request_detail():
    translated = translate_provider_error(google_exceptions.InvalidArgument("contents is empty"))
    assert translated.detail.startswith("BAD_REQUEST:")


def test_parse_retry_delay():
    assert parse_retry_delay("Please retry in 7.5s") == 7.5
    assert parse_retry_delay("retry_delay { seconds: 30 }") == 30
    assert parse_retry_delay("nothing", default=60) == 60


def test_missing_api_key():
    with pytest.raises(GeminiInitializationError):
        create_gemini_model(None, "gemini-2.5-flash", backend="genai")
    with pytest.raises(GeminiInitializationError):
        CompletionGateway.from_api_key("", "gemini-2.5-flash")
