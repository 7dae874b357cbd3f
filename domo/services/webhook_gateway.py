"""Entry point for one Tavus webhook delivery.

Request lifecycle:

    authenticate  -> 401 {"error": "Unauthorized"}
    parse JSON    -> 500 {"error": "Invalid JSON payload"}
    duplicate?    -> 200 {"received": true}   (tool-bearing events only)
    route         -> 200 {"received": true} or 200 {"message": ...}

Once a delivery is authenticated and parsed, every expected failure is
answered 200 so Tavus does not retry. Only unexpected exceptions produce a
500.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from domo.core.config import Settings
from domo.core.error_tracker import (
    AUTHENTICATION_FAILURE,
    INTERNAL_ERROR,
    MALFORMED_PAYLOAD,
    PERMANENT_LOOKUP_FAILURE,
    ErrorTracker,
)
from domo.core.exceptions import AuthenticationError, MalformedPayloadError, NotFoundError
from domo.db.storage import VideoStorage
from domo.db.webhook_store import WebhookStore
from domo.integrations.tavus_events import (
    get_conversation_id,
    is_conversation_ended,
    is_objective_completion,
    is_transcript_or_perception,
    normalize_event_type,
    parse_tool_call,
    should_ingest_analytics,
)
from domo.integrations.tavus_signature import authenticate
from domo.services.analytics_ingest import AnalyticsIngestor
from domo.services.idempotency import check_and_mark
from domo.services.objectives import ObjectiveProcessor
from domo.services.realtime import RealtimeBroadcaster
from domo.services.tool_dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    """HTTP status and JSON body for the webhook caller."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def received(cls) -> "GatewayResponse":
        return cls(200, {"received": True})

    @classmethod
    def message(cls, text: str) -> "GatewayResponse":
        return cls(200, {"message": text})

    @classmethod
    def error(cls, status_code: int, text: str) -> "GatewayResponse":
        return cls(status_code, {"error": text})


def reject_unauthenticated(
    raw_body: bytes,
    headers: Mapping[str, str],
    query: Mapping[str, str],
    settings: Settings,
) -> GatewayResponse | None:
    """Return the 401 response for a delivery that fails authentication.

    Touches no store or network, so the route runs it before building any
    collaborators.

    Returns:
        None if the delivery is authenticated.
    """
    auth = authenticate(
        raw_body,
        headers,
        query,
        settings.TAVUS_WEBHOOK_SECRET,
        settings.TAVUS_WEBHOOK_TOKEN,
    )
    if auth.is_valid:
        return None
    error = AuthenticationError()
    ErrorTracker.get_instance().record(AUTHENTICATION_FAILURE, error.message)
    return GatewayResponse.error(error.status_code, error.message)


def parse_payload(raw_body: bytes) -> dict[str, Any]:
    """Decode the request body as a JSON object.

    Raises:
        MalformedPayloadError: If the body is not valid JSON or not an object.
    """
    try:
        event = json.loads(raw_body)
    except ValueError as e:
        raise MalformedPayloadError() from e
    if not isinstance(event, dict):
        raise MalformedPayloadError()
    return event


class WebhookGateway:
    """Authenticates, deduplicates and routes Tavus webhooks."""

    def __init__(
        self,
        settings: Settings,
        store: WebhookStore,
        storage: VideoStorage,
        pubsub: Any,
        broadcaster: RealtimeBroadcaster | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        broadcaster = broadcaster or RealtimeBroadcaster(
            settings.REALTIME_SUBSCRIBE_TIMEOUT_SECONDS
        )
        self._dispatcher = ToolDispatcher(
            store,
            storage,
            pubsub,
            broadcaster,
            signed_url_ttl=settings.SIGNED_URL_TTL_SECONDS,
        )
        self._objectives = ObjectiveProcessor(
            store,
            pubsub,
            broadcaster,
            max_retries=settings.MODULE_STATE_MAX_RETRIES,
        )
        self._analytics = AnalyticsIngestor(store, pubsub, broadcaster)

    async def handle_request(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        query: Mapping[str, str],
    ) -> GatewayResponse:
        """Process one delivery.

        Args:
            raw_body: Exact request bytes (the signature covers these).
            headers: Request headers.
            query: Query parameters.

        Returns:
            GatewayResponse to send back to Tavus.
        """
        tracker = ErrorTracker.get_instance()
        rejected = reject_unauthenticated(raw_body, headers, query, self._settings)
        if rejected is not None:
            return rejected

        try:
            event = parse_payload(raw_body)
            return await self._route(event, raw_body)
        except MalformedPayloadError as e:
            logger.warning("Failed to parse webhook payload")
            tracker.record(MALFORMED_PAYLOAD, e.message)
            return GatewayResponse.error(e.status_code, e.message)
        except NotFoundError as e:
            logger.warning("Webhook lookup failed", extra=e.details)
            tracker.record(PERMANENT_LOOKUP_FAILURE, e.message)
            return GatewayResponse.message(e.user_message)
        except Exception as e:
            logger.exception("Tavus webhook error")
            tracker.record(INTERNAL_ERROR, str(e))
            return GatewayResponse.error(500, str(e) or "Internal server error")

    async def _route(self, event: dict[str, Any], raw_body: bytes) -> GatewayResponse:
        tool_call = parse_tool_call(event)
        conversation_id = get_conversation_id(event)

        logger.info(
            "Received Tavus webhook",
            extra={
                "event_type": normalize_event_type(event),
                "conversation_id": conversation_id,
                "tool_name": tool_call.name,
            },
        )

        if tool_call.name:
            if check_and_mark(event, raw_body, self._store).is_duplicate:
                return GatewayResponse.received()

        # Transcripts and perception can arrive after the call ends
        if is_transcript_or_perception(event):
            self._analytics.store_transcript_or_perception(event)
            if not tool_call.name:
                return GatewayResponse.received()

        if is_conversation_ended(event):
            if conversation_id:
                self._analytics.mark_conversation_ended(conversation_id)
            if should_ingest_analytics(event):
                await self._analytics.ingest(event)
            return GatewayResponse.received()

        if tool_call.name:
            result = await self._dispatcher.execute(tool_call, conversation_id)
            if result.soft and result.message:
                return GatewayResponse.message(result.message)
            return GatewayResponse.received()

        if is_objective_completion(event):
            await self._objectives.process(event)
            return GatewayResponse.received()

        if should_ingest_analytics(event):
            await self._analytics.ingest(event)
        return GatewayResponse.received()
