"""FastAPI server for the Tidy editor"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tidy import __version__
from tidy.api.context import ServiceContext
from tidy.api.middleware.rate_limit import RateLimitMiddleware
from tidy.api.routes.analysis import router as analysis_router
from tidy.api.routes.analysis_history import router as analysis_history_router
from tidy.api.routes.chat import router as chat_router
from tidy.api.routes.completion import router as completion_router
from tidy.api.routes.health import router as health_router
from tidy.api.routes.review import router as review_router
from tidy.api.routes.user import router as user_router
from tidy.config import API_HOST, API_PORT, ENV
from tidy.llm.gemini import GeminiInitializationError
from tidy.observability.logging import get_logger
from tidy.observability.telemetry import counter
from tidy.storage.database import init_database, reset_pool
from tidy.utils.error_sanitizer import sanitize_error_message


logger = get_logger(__name__)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("TIDY_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]

# Local editor dev servers
if ENV == "development":
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8080",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize the database schema (idempotent) and close the pool on shutdown."""
    try:
        logger.info("Initializing database schema...")
        init_database()
        logger.info("Database initialization complete")
    except sqlite3.OperationalError as e:
        logger.critical("Database schema error: %s", e)
        raise RuntimeError(f"Database initialization failed: {e}") from e
    yield
    reset_pool()


# ============================================================================
# Exception handlers
# ============================================================================


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    400 with the offending field names only.

    Side Effects:
        - Logs the full validation errors
        - Increments api.validation_errors
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation failed",
            "details": [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")],
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def gemini_unavailable_handler(
    request: Request, exc: GeminiInitializationError
) -> JSONResponse:
    logger.warning("LLM unavailable for %s: %s", request.url.path, exc)
    counter("api.llm_unavailable")
    return JSONResponse(status_code=503, content={"error": sanitize_error_message(str(exc), 503)})


def create_app(services: ServiceContext | None = None, rate_limit: bool = True) -> FastAPI:
    """
    Build the API application.

    Args:
        services: Service container (a default one from env settings if None)
        rate_limit: Install the per-IP rate limiter
    """
    app = FastAPI(title="Tidy API", version=__version__, lifespan=lifespan)
    app.state.services = services or ServiceContext()

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(GeminiInitializationError, gemini_unavailable_handler)

    if rate_limit:
        app.add_middleware(RateLimitMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(user_router)
    app.include_router(analysis_router)
    app.include_router(analysis_history_router)
    app.include_router(chat_router)
    app.include_router(completion_router)
    app.include_router(review_router)
    return app


app = create_app()


def main() -> None:
    """Console entry point: ``tidy-api``."""
    import uvicorn

    uvicorn.run("tidy.api.app:app", host=API_HOST, port=API_PORT, reload=ENV == "development")
