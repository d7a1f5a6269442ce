"""
Per-user analysis history index.

Each user's index is a JSON list under ``analysis_history_v2/<userId>``
(versioned for future migrations), mirrored to
``analysis_history_backup/<userId>``. Reads fall back to the backup when the
main document is missing or corrupt. The index keeps at most 50 entries,
newest first, unique by id; full results live in the analysis session blob.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ValidationError

from tidy.analysis.types import CamelModel
from tidy.config import HISTORY_BACKUP_KEY, HISTORY_MAX_ITEMS, HISTORY_STORAGE_KEY
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter
from tidy.storage import CorruptValueError, KeyValueStore

logger = get_logger(__name__)


class HistoryEntry(CamelModel):
    id: str
    user_id: str = "anonymous"
    timestamp: datetime
    file_path: str
    file_name: str = ""
    summary: str = ""
    suggestions_count: int = 0
    issues_count: int = 0
    score: int = 0


class AnalysisHistory:
    """Load, mutate and search one user's history index."""

    def __init__(self, store: KeyValueStore, max_items: int = HISTORY_MAX_ITEMS) -> None:
        self.store = store
        self.max_items = max_items

    @staticmethod
    def main_key(user_id: str) -> str:
        return f"{HISTORY_STORAGE_KEY}/{user_id}"

    @staticmethod
    def backup_key(user_id: str) -> str:
        return f"{HISTORY_BACKUP_KEY}/{user_id}"

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def _read(self, key: str) -> list[Any] | None:
        try:
            value = self.store.get(key)
        except CorruptValueError as e:
            logger.warning("History index %s is corrupt: %s", key, e)
            counter("history.corrupt")
            return None
        return value if isinstance(value, list) else None

    def load(self, user_id: str) -> list[HistoryEntry]:
        """
        Read the index, preferring the main key and falling back to the backup.

        Invalid entries are dropped; the result is sorted newest first and
        trimmed to max_items.
        """
        raw = self._read(self.main_key(user_id))
        if raw is None:
            raw = self._read(self.backup_key(user_id))
            if raw is not None:
                logger.info("Loaded analysis history for %s from backup", user_id)
                counter("history.backup_used")
        if not raw:
            return []

        entries: list[HistoryEntry] = []
        seen: set[str] = set()
        for item in raw:
            try:
                entry = HistoryEntry.model_validate(item)
            except ValidationError:
                counter("history.invalid_entry")
                continue
            if entry.id in seen:
                continue
            seen.add(entry.id)
            entries.append(entry)

        entries.sort(key=lambda e: e.timestamp.timestamp(), reverse=True)
        return entries[: self.max_items]

    def save(self, user_id: str, entries: list[HistoryEntry]) -> None:
        """
        Side Effects:
            - Writes the main and backup index documents
        """
        payload = [e.model_dump(mode="json", by_alias=True) for e in entries[: self.max_items]]
        self.store.set(self.main_key(user_id), payload, user_id=user_id)
        self.store.set(self.backup_key(user_id), payload, user_id=user_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Insert (or replace by id) an entry at the head of the user's index."""
        if not entry.file_name:
            entry = entry.model_copy(update={"file_name": entry.file_path.split("/")[-1] or "file"})
        entries = [e for e in self.load(entry.user_id) if e.id != entry.id]
        entries.insert(0, entry)
        entries.sort(key=lambda e: e.timestamp.timestamp(), reverse=True)
        self.save(entry.user_id, entries)
        return entry

    def page(self, user_id: str, limit: int, offset: int = 0) -> tuple[list[HistoryEntry], int]:
        entries = self.load(user_id)
        return entries[offset : offset + limit], len(entries)

    def find(self, user_id: str, session_id: str) -> HistoryEntry | None:
        return next((e for e in self.load(user_id) if e.id == session_id), None)

    def delete(self, user_id: str, session_id: str) -> bool:
        entries = self.load(user_id)
        remaining = [e for e in entries if e.id != session_id]
        if len(remaining) == len(entries):
            return False
        self.save(user_id, remaining)
        return True

    def clear(self, user_id: str) -> list[HistoryEntry]:
        """
        Remove the user's whole index.

        Returns:
            The entries that were removed
        """
        entries = self.load(user_id)
        self.store.delete(self.main_key(user_id))
        self.store.delete(self.backup_key(user_id))
        return entries

    def search(self, user_id: str, query: str) -> list[HistoryEntry]:
        """Case-insensitive match on file name, file path and summary."""
        entries = self.load(user_id)
        if not query.strip():
            return entries
        needle = query.lower()
        return [
            e
            for e in entries
            if needle in e.file_name.lower()
            or needle in e.file_path.lower()
            or needle in e.summary.lower()
        ]
