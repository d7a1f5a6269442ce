"""Analysis history endpoints: list, search, fetch and delete past sessions."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from tidy.api.context import ServiceContext, get_context
from tidy.config import API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from tidy.observability.logging import get_logger

router = APIRouter(prefix="/api/analysis-history", tags=["analysis-history"])
logger = get_logger(__name__)


@router.get("/user/{user_id}")
def list_history(
    user_id: str = Path(min_length=1, max_length=200),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
    offset: int = Query(0, ge=0),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    entries, total = ctx.history.page(user_id, limit, offset)
    return {
        "sessions": [e.model_dump(mode="json", by_alias=True) for e in entries],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/user/{user_id}/search")
def search_history(
    user_id: str = Path(min_length=1, max_length=200),
    q: str = Query("", max_length=200),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    """Case-insensitive search over file name, path and summary."""
    entries = ctx.history.search(user_id, q)
    return {
        "sessions": [e.model_dump(mode="json", by_alias=True) for e in entries],
        "total": len(entries),
    }


@router.delete("/user/{user_id}/all")
def clear_history(
    user_id: str = Path(min_length=1, max_length=200),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    """
    Side Effects:
        - Deletes the user's history index and every referenced session blob
    """
    removed = ctx.history.clear(user_id)
    for entry in removed:
        ctx.analysis_sessions.delete(entry.id)
    logger.info("Cleared %d analysis sessions for %s", len(removed), user_id)
    return {
        "success": True,
        "message": "All analysis sessions cleared",
        "deletedCount": len(removed),
    }


@router.get("/{session_id}")
def get_history_session(
    session_id: str, ctx: ServiceContext = Depends(get_context)
) -> dict[str, Any]:
    session = ctx.analysis_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Analysis session not found")
    return session


@router.delete("/{session_id}")
def delete_history_session(
    session_id: str, ctx: ServiceContext = Depends(get_context)
) -> dict[str, Any]:
    """Remove one session from its owner's index and delete its blob."""
    session = ctx.analysis_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Analysis session not found")

    ctx.history.delete(session.get("userId", "anonymous"), session_id)
    ctx.analysis_sessions.delete(session_id)
    return {"success": True, "message": "Analysis session deleted"}
