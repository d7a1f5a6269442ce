"""
Analysis endpoints.

POST runs every enabled analyzer over the submitted code, stores the full
session blob under ``analysis/<sessionId>`` and records a lean entry in the
user's history index.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from tidy.analysis.types import AnalysisRun, CodeContext
from tidy.api.context import ServiceContext, get_context
from tidy.api.models import AnalysisRequest
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter
from tidy.storage.history import HistoryEntry
from tidy.storage.repositories import generate_id
from tidy.utils.error_sanitizer import get_safe_error_detail

router = APIRouter(prefix="/api/analysis", tags=["analysis"])
logger = get_logger(__name__)


def file_name_of(file_path: str) -> str:
    return file_path.split("/")[-1] or "file"


def build_session(session_id: str, body: AnalysisRequest, run: AnalysisRun) -> dict[str, Any]:
    return {
        "id": session_id,
        "userId": body.user_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "filePath": body.file_path,
        "fileName": file_name_of(body.file_path),
        "language": body.language,
        "summary": "Analysis completed",
        "suggestionsCount": run.summary.total_suggestions,
        "issuesCount": run.summary.total_issues,
        "score": run.summary.overall_score,
        "fullResults": run.model_dump(mode="json", by_alias=True),
    }


@router.post("")
async def run_analysis(
    body: AnalysisRequest, ctx: ServiceContext = Depends(get_context)
) -> dict[str, Any]:
    """
    Analyze one file.

    Returns:
        The AnalysisRun plus ``sessionId``

    Side Effects:
        - Calls the completion gateway once per enabled analyzer
        - Writes analysis/<sessionId> and the user's history index
    """
    orchestrator = ctx.orchestrator

    config = None
    if body.config:
        try:
            config = orchestrator.merged_config(**body.config)
        except ValidationError as e:
            logger.info("Rejected analysis config: %s", e.errors())
            raise HTTPException(status_code=400, detail="Invalid analysis config") from None

    context = CodeContext(
        file_path=body.file_path,
        content=body.code,
        language=body.language,
        framework=body.framework,
        project_structure=body.project_structure,
        dependencies=body.dependencies,
    )
    logger.info("Starting analysis for %s (%s)", body.file_path, body.language)

    try:
        run = await orchestrator.analyze_code(context, config=config)
        session = build_session(generate_id("analysis"), body, run)
        ctx.analysis_sessions.save(session)
        ctx.history.add(HistoryEntry.model_validate(session))
    except Exception as e:
        counter("api.analysis.failed")
        raise HTTPException(
            status_code=500, detail=get_safe_error_detail(e, 500, "Analysis failed")
        ) from None

    logger.info(
        "Analysis completed for %s. Score: %d", body.file_path, run.summary.overall_score
    )
    return {**run.model_dump(mode="json", by_alias=True), "sessionId": session["id"]}


@router.get("/{session_id}")
def get_analysis_session(
    session_id: str, ctx: ServiceContext = Depends(get_context)
) -> dict[str, Any]:
    session = ctx.analysis_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Analysis session not found")
    return session
