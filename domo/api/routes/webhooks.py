"""Tavus webhook endpoint for the Domo demo experience.

Tavus posts every conversation event here: structured tool calls, spoken
tool calls, transcripts, perception analysis, objective completions and
conversation endings. The route only adapts HTTP to ``WebhookGateway``;
authentication needs the exact request bytes, so the body is read raw
rather than through a pydantic model.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from domo.core.config import settings
from domo.core.exceptions import ExternalServiceError
from domo.db.storage import VideoStorage
from domo.db.supabase import SupabaseClient, get_supabase_client
from domo.db.webhook_store import WebhookStore
from domo.services.webhook_gateway import WebhookGateway, reject_unauthenticated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


# ─────────────────────────────────────────────────────────────────────────────
# Collaborators
# ─────────────────────────────────────────────────────────────────────────────


async def _get_pubsub() -> object | None:
    """Async client for realtime broadcasts; None if it cannot be created."""
    try:
        return await SupabaseClient.get_realtime_client()
    except ExternalServiceError as e:
        logger.warning(
            "Realtime client unavailable, broadcasts disabled for this request",
            extra={"error": e.message},
        )
        return None


async def build_gateway() -> WebhookGateway:
    db = get_supabase_client()
    return WebhookGateway(
        settings=settings,
        store=WebhookStore(db),
        storage=VideoStorage(db, settings.VIDEO_STORAGE_BUCKET),
        pubsub=await _get_pubsub(),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Main Webhook Endpoint
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/tavus")
async def handle_tavus_webhook(request: Request) -> JSONResponse:
    """Handle incoming Tavus webhook callbacks.

    Returns:
        401 when unauthenticated, 500 for an unparseable body or an
        unexpected error, otherwise 200 with ``{"received": true}`` or a
        ``{"message": ...}`` describing an expected failure.
    """
    raw_body = await request.body()
    headers = dict(request.headers)
    query = dict(request.query_params)

    rejected = reject_unauthenticated(raw_body, headers, query, settings)
    if rejected is not None:
        return JSONResponse(status_code=rejected.status_code, content=rejected.body)

    gateway = await build_gateway()
    response = await gateway.handle_request(raw_body, headers, query)
    return JSONResponse(status_code=response.status_code, content=response.body)
