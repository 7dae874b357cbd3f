"""Domo webhook service - Main FastAPI Application."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from domo.api.routes import webhooks
from domo.core.error_tracker import ErrorTracker
from domo.core.exceptions import DomoException


def _configure_logging() -> None:
    """Set up logging based on LOG_FORMAT.

    json: Structured JSON via python-json-logger (for production).
    text: Human-readable format (for local development).
    """
    from domo.core.config import settings

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if settings.LOG_FORMAT == "json":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "domo-webhooks"},
        )
        handler.setFormatter(formatter)
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> Any:
    """Application lifespan handler for startup and shutdown events."""
    from domo.core.config import settings

    logger.info("Starting Domo webhook service...")
    settings.validate_startup()
    yield
    logger.info("Shutting down Domo webhook service...")


app = FastAPI(
    title="Domo Webhooks",
    description="Tavus webhook ingestion and tool-call dispatch for Domo demos",
    version="1.0.0",
    lifespan=lifespan,
)


def get_cors_origins() -> list[str]:
    from domo.core.config import settings

    return settings.cors_origins_list


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router, prefix="/api/v1")


@app.get("/health", tags=["system"])
async def root_health_check() -> dict[str, str]:
    """Lightweight check; returns 200 if the process is running."""
    return {"status": "healthy"}


@app.get("/health/webhooks", tags=["system"])
async def webhook_health(period_seconds: int = 3600) -> dict[str, Any]:
    """Failures the webhook absorbed into 200 responses, by category.

    Args:
        period_seconds: Look-back window.
    """
    tracker = ErrorTracker.get_instance()
    return {
        "summary": tracker.get_summary(period_seconds),
        "recent": tracker.get_recent_errors(limit=20),
    }


@app.exception_handler(DomoException)
async def domo_exception_handler(request: Request, exc: DomoException) -> JSONResponse:
    """Handle Domo-specific exceptions raised outside the webhook gateway.

    Args:
        request: The incoming request.
        exc: The Domo exception.

    Returns:
        JSON error response with consistent format.
    """
    request_id = str(uuid.uuid4())
    logger.warning(
        "Domo exception occurred",
        extra={
            "code": exc.code,
            "path": request.url.path,
            "request_id": request_id,
            "error": exc.message,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "code": exc.code,
            "request_id": request_id,
        },
    )
