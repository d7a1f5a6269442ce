"""
Pytest configuration for Tidy tests

Provides a throwaway SQLite database per test, telemetry reset, and a
scripted fake completion client so no test touches the Gemini API.
"""

from __future__ import annotations

import pytest

from tidy.observability.telemetry import reset_counters, reset_latencies
from tidy.storage import KeyValueStore
from tidy.storage.database import init_database, reset_pool


class FakeGateway:
    """
    Scripted completion client.

    ``replies`` are consumed in call order; an Exception entry is raised
    instead of returned. Once the script runs out, ``default`` is returned.
    """

    def __init__(self, replies=None, default="{}"):
        self.replies = list(replies or [])
        self.default = default
        self.prompts = []
        self.options = []

    @property
    def calls(self):
        return len(self.prompts)

    async def generate_completion(self, prompt, options=None):
        self.prompts.append(prompt)
        self.options.append(options)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def _reset_telemetry():
    reset_counters()
    reset_latencies()
    yield
    reset_counters()
    reset_latencies()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Fresh database file wired in through TIDY_DB_PATH."""
    path = tmp_path / "tidy.db"
    monkeypatch.setenv("TIDY_DB_PATH", str(path))
    reset_pool()
    init_database()
    yield path
    reset_pool()


@pytest.fixture
def store(db_path):
    return KeyValueStore()


@pytest.fixture
def make_gateway():
    """Factory for FakeGateway instances."""
    return FakeGateway
