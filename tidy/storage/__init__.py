"""Storage - SQLite connection pool, key-value store, repositories"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from tidy.observability.logging import get_logger
from tidy.storage.database import db_transaction, get_db_connection, retry_on_db_lock

logger = get_logger(__name__)


class CorruptValueError(ValueError):
    """A stored value is not valid JSON."""


class KeyValueStore:
    """JSON documents keyed by namespaced path, backed by the kv_store table."""

    table_name = "kv_store"

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection, None, None]:
        with get_db_connection() as conn:
            yield conn

    def get(self, key: str) -> Any | None:
        """
        Load a document.

        Returns:
            Decoded JSON value, or None if the key is absent

        Raises:
            CorruptValueError: If the stored text is not valid JSON
        """
        with self._get_conn() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise CorruptValueError(f"Corrupt value for {key}: {e.msg}") from e

    @retry_on_db_lock()
    def set(self, key: str, value: Any, user_id: str | None = None) -> None:
        """
        Upsert a document.

        Side Effects:
            - Writes one kv_store row (created_at kept on update)
        """
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, user_id)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    user_id = excluded.user_id,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, json.dumps(value, default=str), user_id),
            )

    @retry_on_db_lock()
    def delete(self, key: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a row was removed
        """
        with db_transaction() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def keys(self, prefix: str) -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            ).fetchall()
        return [row["key"] for row in rows]


__all__ = ["CorruptValueError", "KeyValueStore"]
