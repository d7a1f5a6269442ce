"""Unit tests for inline completions (cleaning, cache, fallback table)."""

from __future__ import annotations

import asyncio

import pytest

from tidy.completion.cache import CompletionCache, cursor_key
from tidy.completion.service import (
    CompletionResponse,
    CompletionService,
    clean_completion,
    fallback_completion,
)
from tidy.llm.errors import QuotaExceededError
from tidy.observability.telemetry import get_counter


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cursor_key():
    code = "def f():\n    ret"
    assert cursor_key(code, len(code)) == (2, 8, "    ret")
    assert cursor_key(code, 0) == (1, 1, "")


def test_clean_completion():
    assert clean_completion("```python\nreturn x\n```") == "return x"
    assert clean_completion("Completion: foo()") == "foo()"
    assert clean_completion("a" * 150) == "a" * 100


@pytest.mark.parametrize(
    "before, language, expected",
    [
        ("console.log(", "typescript", ");"),
        ("  const ", "javascript", "= "),
        ("constant", "javascript", None),
        ("def ", "python", "():\n    pass"),
        ("print(", "python", ")"),
        ("fn main(", "rust", None),
    ],
)
def test_fallback_table(before, language, expected):
    assert fallback_completion(before, language) == expected


class TestCache:
    def test_expiry(self):
        timer = FakeTimer()
        cache = CompletionCache(ttl=30, timer=timer)
        cache.put((1, 1, ""), "x")
        timer.now = 29
        assert cache.get((1, 1, "")) == "x"
        timer.now = 31
        assert cache.get((1, 1, "")) is None
        assert get_counter("completion.cache.hit") == 1
        assert get_counter("completion.cache.miss") == 1

    def test_size_bound_evicts_least_recently_used(self):
        cache = CompletionCache(maxsize=2)
        cache.put((1, 1, "a"), "a")
        cache.put((1, 1, "b"), "b")
        cache.get((1, 1, "a"))
        cache.put((1, 1, "c"), "c")
        assert len(cache) == 2
        assert cache.get((1, 1, "b")) is None
        assert cache.get((1, 1, "a")) == "a"


class TestService:
    def test_completion_cached_per_cursor(self, make_gateway):
        gateway = make_gateway(["```\nreturn total\n```"])
        service = CompletionService(gateway)
        code = "def f():\n    "

        first = asyncio.run(service.complete(code, len(code), "python"))
        second = asyncio.run(service.complete(code, len(code), "python"))

        assert first.suggestions[0].insert_text == "return total"
        assert second == first
        assert gateway.calls == 1
        assert gateway.options[0].max_tokens > 0

    def test_provider_failure_uses_fallback(self, make_gateway):
        service = CompletionService(make_gateway([QuotaExceededError()]))
        response = asyncio.run(service.complete("console.log(", 12, "javascript"))
        assert [s.insert_text for s in response.suggestions] == [");"]
        assert get_counter("completion.fallback") == 1

    def test_nothing_to_offer_is_empty(self, make_gateway):
        service = CompletionService(make_gateway([QuotaExceededError()]))
        response = asyncio.run(service.complete("x = ", 99, "go"))
        assert response == CompletionResponse()
        assert response.model_dump(by_alias=True) == {"suggestions": [], "isIncomplete": False}

    def test_blank_reply_not_cached(self, make_gateway):
        service = CompletionService(make_gateway(["   "]))
        response = asyncio.run(service.complete("a", 1, "python"))
        assert response.suggestions == []
        assert len(service.cache) == 0
