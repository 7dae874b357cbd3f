"""Reporting ingestion for non-tool Tavus events.

Covers the events that carry no tool call but feed the demo's reporting:
transcripts, perception analysis, conversation endings and summaries.
Writes are best-effort; a failed write is logged and counted, and the
webhook still answers 200.
"""

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

from domo.core.error_tracker import TRANSIENT_COLLABORATOR_FAILURE, ErrorTracker
from domo.core.exceptions import DomoException
from domo.db.webhook_store import WebhookStore
from domo.integrations.tavus_events import (
    PERCEPTION_ANALYSIS,
    TRANSCRIPTION_READY,
    get_conversation_id,
    normalize_event_type,
)
from domo.services.realtime import RealtimeBroadcaster, demo_channel

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
MAX_ARRAY_ITEMS = 50
MAX_OBJECT_KEYS = 100

# Raw media and conversation content never belongs in demo metadata
_PRUNE_KEYS = frozenset(
    {"transcript", "utterances", "messages", "raw", "audio", "media", "video", "frames"}
)
_PII_KEY_PARTS = ("email", "phone", "name", "user", "speaker")
_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_PHONE_RE = re.compile(
    r"(?:\+\d{1,3}[-.\s]?)?(?:\(\d{2,4}\)|\d{2,4})[-.\s]?\d{3,4}[-.\s]?\d{3,4}"
)


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def extract_perception_payload(event: dict[str, Any]) -> Any:
    """Pick the analytics payload out of the shapes Tavus has been seen to send.

    ``properties.analysis`` wins; a string analysis is wrapped as
    ``{"analysis": ...}``. Otherwise the first present of ``data.perception``,
    ``perception``, ``properties``, ``data.analytics``, ``analytics``,
    ``data.summary``, ``summary`` and ``data``.
    """
    data = _dict(event.get("data"))
    properties = event.get("properties") or data.get("properties")
    if isinstance(properties, dict) and properties.get("analysis"):
        analysis = properties["analysis"]
        return {"analysis": analysis} if isinstance(analysis, str) else properties

    for candidate in (
        data.get("perception"),
        event.get("perception"),
        properties,
        data.get("analytics"),
        event.get("analytics"),
        data.get("summary"),
        event.get("summary"),
        event.get("data"),
    ):
        if candidate is not None:
            return candidate
    return {}


def sanitize_analytics_payload(value: Any) -> Any:
    """Strip raw content and personal data before storing analytics.

    Keys holding raw conversation or media content, and keys that look like
    personal data (email, phone, name, user, speaker), have their values
    replaced with ``[REDACTED]``. Emails and phone numbers inside strings
    are masked. Lists are capped at MAX_ARRAY_ITEMS and objects at
    MAX_OBJECT_KEYS.
    """
    if isinstance(value, str):
        return _PHONE_RE.sub("[REDACTED_PHONE]", _EMAIL_RE.sub("[REDACTED_EMAIL]", value))
    if isinstance(value, list):
        return [sanitize_analytics_payload(item) for item in value[:MAX_ARRAY_ITEMS]]
    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for key in list(value)[:MAX_OBJECT_KEYS]:
            lowered = str(key).lower()
            if key in _PRUNE_KEYS or any(part in lowered for part in _PII_KEY_PARTS):
                cleaned[key] = REDACTED
            else:
                cleaned[key] = sanitize_analytics_payload(value[key])
        return cleaned
    return value


def _load_metadata(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    return dict(raw) if isinstance(raw, dict) else {}


def merge_analytics(metadata: Any, conversation_id: str, perception: Any, now: str) -> dict[str, Any]:
    """Return demo metadata with ``analytics.conversations[conversation_id]`` updated."""
    merged = _load_metadata(metadata)
    analytics = dict(_dict(merged.get("analytics")))
    conversations = dict(_dict(analytics.get("conversations")))
    conversations[conversation_id] = {
        **_dict(conversations.get(conversation_id)),
        "perception": perception,
        "updated_at": now,
    }
    analytics.update(
        {
            "last_updated": now,
            "conversations": conversations,
            "last_perception_event": perception,
        }
    )
    merged["analytics"] = analytics
    return merged


class AnalyticsIngestor:
    """Writes non-tool event data to conversation details and demo metadata."""

    def __init__(
        self,
        store: WebhookStore,
        pubsub: Any,
        broadcaster: RealtimeBroadcaster | None = None,
    ) -> None:
        self._store = store
        self._pubsub = pubsub
        self._broadcaster = broadcaster or RealtimeBroadcaster()

    def store_transcript_or_perception(self, event: dict[str, Any]) -> bool:
        """Store a transcript or perception analysis on conversation_details.

        These arrive after the call ends, so the row is addressed by the
        Tavus conversation id without a demo lookup.

        Returns:
            True if a row was updated.
        """
        conversation_id = get_conversation_id(event)
        if not conversation_id:
            return False

        event_type = normalize_event_type(event)
        properties = _dict(event.get("properties"))
        data = _dict(event.get("data"))
        update: dict[str, Any] = {}
        if event_type == TRANSCRIPTION_READY:
            transcript = properties.get("transcript") or data.get("transcript")
            if transcript:
                update["transcript"] = transcript
        elif event_type == PERCEPTION_ANALYSIS:
            analysis = properties.get("analysis") or data.get("analysis")
            if analysis:
                update["perception_analysis"] = analysis

        if not update:
            return False
        try:
            touched = self._store.update_conversation_details(conversation_id, update)
        except DomoException as e:
            self._absorb("conversation details update", conversation_id, e)
            return False
        if not touched:
            logger.info(
                "No conversation details row for event",
                extra={"conversation_id": conversation_id, "event_type": event_type},
            )
        return touched > 0

    def mark_conversation_ended(self, conversation_id: str) -> None:
        try:
            self._store.update_conversation_details(
                conversation_id, {"status": "ended", "completed_at": _utc_now()}
            )
        except DomoException as e:
            self._absorb("mark ended", conversation_id, e)

    async def ingest(self, event: dict[str, Any]) -> bool:
        """Merge the event's analytics into the demo and notify reporting UIs.

        Returns:
            True if demo metadata was updated.
        """
        conversation_id = get_conversation_id(event)
        if not conversation_id:
            return False

        try:
            demo = self._store.get_demo_by_conversation(conversation_id, "id, metadata")
        except DomoException as e:
            self._absorb("analytics demo lookup", conversation_id, e)
            return False
        if demo is None:
            logger.info(
                "No demo for analytics event",
                extra={"conversation_id": conversation_id},
            )
            return False

        demo_id = str(demo["id"])
        metadata = merge_analytics(
            demo.get("metadata"),
            conversation_id,
            sanitize_analytics_payload(extract_perception_payload(event)),
            _utc_now(),
        )
        try:
            self._store.update_demo_metadata(demo_id, metadata)
        except DomoException as e:
            self._absorb("analytics metadata update", conversation_id, e)
            return False

        await self._broadcaster.publish(
            demo_channel(demo_id),
            "analytics_updated",
            {
                "conversation_id": conversation_id,
                "event_type": event.get("event_type") or event.get("type"),
            },
            self._pubsub,
        )
        return True

    @staticmethod
    def _absorb(stage: str, conversation_id: str, error: DomoException) -> None:
        logger.warning(
            "Analytics ingestion step failed",
            extra={"stage": stage, "conversation_id": conversation_id, "error": error.message},
        )
        ErrorTracker.get_instance().record(
            TRANSIENT_COLLABORATOR_FAILURE, f"{stage}: {error.message}", conversation_id
        )
