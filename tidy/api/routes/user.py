"""
User settings endpoints.

Users are created on first read with default settings; anonymous users get a
generated ``user_{ts}_{rand}`` id.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path

from tidy.api.context import ServiceContext, get_context
from tidy.api.models import UserSettingsUpdate
from tidy.observability.logging import get_logger
from tidy.storage.repositories import generate_id
from tidy.utils.error_sanitizer import get_safe_error_detail

router = APIRouter(prefix="/api/user", tags=["user"])
logger = get_logger(__name__)


@router.get("/{user_id}")
def get_user(
    user_id: str = Path(min_length=1, max_length=200),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    try:
        return ctx.users.get_or_create(user_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=get_safe_error_detail(e, 500, "Failed to get user settings")
        ) from None


@router.put("/{user_id}")
def update_user(
    body: UserSettingsUpdate,
    user_id: str = Path(min_length=1, max_length=200),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    try:
        user = ctx.users.update(user_id, {"settings": body.settings})
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=get_safe_error_detail(e, 500, "Failed to update user settings")
        ) from None
    logger.info("Updated settings for user %s", user_id)
    return user


@router.post("")
def create_user(ctx: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    try:
        return ctx.users.create(generate_id("user"))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=get_safe_error_detail(e, 500, "Failed to create user")
        ) from None


@router.delete("/{user_id}")
def delete_user(
    user_id: str = Path(min_length=1, max_length=200),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    """Clear a user's settings (the user record itself is kept)."""
    try:
        cleared = ctx.users.clear_settings(user_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=get_safe_error_detail(e, 500, "Failed to delete user")
        ) from None
    if cleared is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "message": "User data cleared"}
