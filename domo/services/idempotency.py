"""Duplicate-delivery guard for tool-bearing Tavus webhooks.

Tavus retries webhooks, so the same tool call can arrive more than once.
Each delivery gets a stable event id and the id is recorded with an atomic
insert-if-absent: the unique key on ``processed_webhook_events.event_id``
decides which delivery wins, so two concurrent duplicates cannot both be
admitted.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any

from domo.core.error_tracker import TRANSIENT_COLLABORATOR_FAILURE, ErrorTracker
from domo.core.exceptions import DatabaseError
from domo.db.webhook_store import WebhookStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdempotencyResult:
    """Outcome of the duplicate check."""

    is_duplicate: bool
    event_id: str


def derive_event_id(event: dict[str, Any], raw_body: bytes) -> str:
    """Stable id for a delivery.

    Uses the first of ``id``, ``event_id``, ``data.id``, ``data.event_id``;
    otherwise the SHA-256 hex digest of the exact request bytes.
    """
    data = event.get("data") if isinstance(event.get("data"), dict) else {}
    for candidate in (
        event.get("id"),
        event.get("event_id"),
        data.get("id"),
        data.get("event_id"),
    ):
        if candidate not in (None, ""):
            return str(candidate)
    return hashlib.sha256(raw_body).hexdigest()


def check_and_mark(
    event: dict[str, Any],
    raw_body: bytes,
    store: WebhookStore,
) -> IdempotencyResult:
    """Record the delivery and report whether it was seen before.

    A storage failure other than the unique-key conflict is logged and the
    delivery is treated as new: dropping a real tool call is worse than
    running it twice.
    """
    event_id = derive_event_id(event, raw_body)
    try:
        inserted = store.record_processed_event(event_id)
    except DatabaseError as e:
        logger.warning(
            "Idempotency record failed, processing as new delivery",
            extra={"event_id": event_id, "error": e.message},
        )
        ErrorTracker.get_instance().record(
            TRANSIENT_COLLABORATOR_FAILURE, f"idempotency: {e.message}"
        )
        return IdempotencyResult(is_duplicate=False, event_id=event_id)

    if not inserted:
        logger.info("Duplicate webhook delivery ignored", extra={"event_id": event_id})
    return IdempotencyResult(is_duplicate=not inserted, event_id=event_id)
