"""
Database schema initialization for Tidy.

All persisted state is JSON documents in one key-value table; keys are
namespaced paths (``users/<id>``, ``analysis/<sessionId>``,
``chat/<userId>/sessions/<sessionId>``, ``analysis_history_v2/<userId>``).
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from tidy.observability.logging import get_logger

logger = get_logger(__name__)

REQUIRED_TABLES: dict[str, list[str]] = {
    "kv_store": ["key", "value", "user_id", "created_at", "updated_at"],
}


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Args:
        db_path: Path to the database file

    Side Effects:
        - Creates the parent directory if needed
        - Creates kv_store and its indexes if they don't exist
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                user_id TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_kv_store_user ON kv_store(user_id);
            CREATE INDEX IF NOT EXISTS idx_kv_store_updated ON kv_store(updated_at);
        """)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Raises:
        ValueError: If tables or columns are missing
    """
    cursor = conn.cursor()
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(REQUIRED_TABLES) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in REQUIRED_TABLES.items():
        # Identifiers cannot be parameterized; names come from the dict above
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")
        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}
        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True
