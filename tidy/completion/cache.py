"""Short-lived cache of inline completions keyed by cursor position."""

from __future__ import annotations

import time
from collections.abc import Callable

from cachetools import TTLCache

from tidy.config import COMPLETION_CACHE_MAX_ENTRIES, COMPLETION_CACHE_TTL_SECONDS
from tidy.observability.telemetry import counter

CacheKey = tuple[int, int, str]


def cursor_key(code: str, cursor_position: int) -> CacheKey:
    """
    (line, column, line prefix) for a cursor offset; 1-based like the editor.

    The prefix is the current line's text before the cursor, so typing on
    the line invalidates the entry.
    """
    before = code[:cursor_position]
    line_start = before.rfind("\n") + 1
    line = before.count("\n") + 1
    column = cursor_position - line_start + 1
    return line, column, before[line_start:]


class CompletionCache:
    """
    TTL + size bounded map of cursor key -> completion text.

    Entries expire after ``ttl`` seconds; when full, the least recently used
    entry is evicted.
    """

    def __init__(
        self,
        maxsize: int = COMPLETION_CACHE_MAX_ENTRIES,
        ttl: float = COMPLETION_CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TTLCache[CacheKey, str] = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def get(self, key: CacheKey) -> str | None:
        value = self._cache.get(key)
        counter("completion.cache.hit" if value is not None else "completion.cache.miss")
        return value

    def put(self, key: CacheKey, completion: str) -> None:
        self._cache[key] = completion

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
