"""Repositories for users, analysis sessions and chat sessions."""

from __future__ import annotations

import random
import string
import time
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any

from tidy.config import GEMINI_MODEL, GEMINI_TEMPERATURE
from tidy.observability.logging import get_logger
from tidy.storage import KeyValueStore

logger = get_logger(__name__)

DEFAULT_USER_SETTINGS: dict[str, Any] = {
    "experimental": {
        "tabBar": True,
        "sidebarPopovers": True,
        "minimap": True,
    },
    "ai": {
        "enabled": True,
        "model": GEMINI_MODEL,
        "temperature": GEMINI_TEMPERATURE,
        "maxTokens": 4096,
    },
}

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_id(prefix: str) -> str:
    """``{prefix}_{epoch ms}_{9 random base-36 chars}``"""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class UserRepository:
    """Users stored under ``users/<userId>``."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @staticmethod
    def key(user_id: str) -> str:
        return f"users/{user_id}"

    def get(self, user_id: str) -> dict[str, Any] | None:
        return self.store.get(self.key(user_id))

    def create(self, user_id: str, **initial: Any) -> dict[str, Any]:
        """
        Create a user with default settings.

        Side Effects:
            - Writes users/<userId>
        """
        now = utc_now()
        user = {
            "id": user_id,
            "settings": deepcopy(DEFAULT_USER_SETTINGS),
            "createdAt": now,
            "lastActive": now,
            **initial,
        }
        self.store.set(self.key(user_id), user, user_id=user_id)
        logger.info("Created user %s", user_id)
        return user

    def get_or_create(self, user_id: str) -> dict[str, Any]:
        return self.get(user_id) or self.create(user_id)

    def update(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Merge top-level fields into the user (creating it if missing) and
        refresh lastActive.
        """
        existing = self.get(user_id)
        if existing is None:
            return self.create(user_id, **data)
        updated = {**existing, **data, "lastActive": utc_now()}
        self.store.set(self.key(user_id), updated, user_id=user_id)
        return updated

    def clear_settings(self, user_id: str) -> dict[str, Any] | None:
        """
        Drop a user's settings.

        Returns:
            The updated user, or None if the user does not exist
        """
        if self.get(user_id) is None:
            return None
        return self.update(user_id, {"settings": None})


class AnalysisSessionRepository:
    """Full analysis session blobs stored under ``analysis/<sessionId>``."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @staticmethod
    def key(session_id: str) -> str:
        return f"analysis/{session_id}"

    def save(self, session: dict[str, Any]) -> dict[str, Any]:
        self.store.set(self.key(session["id"]), session, user_id=session.get("userId"))
        return session

    def get(self, session_id: str) -> dict[str, Any] | None:
        return self.store.get(self.key(session_id))

    def delete(self, session_id: str) -> bool:
        return self.store.delete(self.key(session_id))


class ChatSessionRepository:
    """Chat transcripts stored under ``chat/<userId>/sessions/<sessionId>``."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @staticmethod
    def key(user_id: str, session_id: str) -> str:
        return f"chat/{user_id}/sessions/{session_id}"

    def save(self, user_id: str, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
        session = {**data, "userId": user_id, "sessionId": session_id, "updatedAt": utc_now()}
        self.store.set(self.key(user_id, session_id), session, user_id=user_id)
        return session

    def get(self, user_id: str, session_id: str) -> dict[str, Any] | None:
        return self.store.get(self.key(user_id, session_id))

    def delete(self, user_id: str, session_id: str) -> bool:
        return self.store.delete(self.key(user_id, session_id))
