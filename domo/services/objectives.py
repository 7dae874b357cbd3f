"""Objective-completion handling: module progress and reporting side data.

Tavus sends an objective-completion webhook each time the replica finishes
one of the persona's objectives. Two things happen:

1. The conversation's module progress is advanced and persisted with a
   compare-and-set on ``conversation_details.updated_at``, then broadcast on
   ``demo-<demo_id>-modules`` so the progress indicator moves.
2. Objectives that collect visitor data write it to their reporting table.

Both halves are best-effort: failures are logged and counted, never raised.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from domo.core.error_tracker import TRANSIENT_COLLABORATOR_FAILURE, ErrorTracker
from domo.core.exceptions import DatabaseError, DomoException
from domo.db.webhook_store import WebhookStore
from domo.integrations.tavus_events import first_present, get_conversation_id, normalize_event_type
from domo.models.modules import ModuleState
from domo.services.module_state import ModuleAdvance, advance, state_summary
from domo.services.realtime import RealtimeBroadcaster, demo_modules_channel

logger = logging.getLogger(__name__)

DETAILS_STATE_COLUMNS = "id, demo_id, module_state, current_module_id, updated_at"

PRODUCT_INTEREST_OBJECTIVE = "product_interest_discovery"
VIDEO_SHOWCASE_OBJECTIVE = "demo_video_showcase"
QUALIFICATION_OBJECTIVES = frozenset(
    {"contact_information_collection", "greeting_and_qualification"}
)


@dataclass(frozen=True)
class ConversationContext:
    """A Tavus conversation and the demo it belongs to, if any."""

    conversation_id: str
    demo_id: str | None


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return [v for v in value if v]
    if isinstance(value, str) and value:
        return [value]
    return []


class ObjectiveProcessor:
    """Applies one objective-completion event."""

    def __init__(
        self,
        store: WebhookStore,
        pubsub: Any,
        broadcaster: RealtimeBroadcaster | None = None,
        max_retries: int = 3,
    ) -> None:
        self._store = store
        self._pubsub = pubsub
        self._broadcaster = broadcaster or RealtimeBroadcaster()
        self._max_retries = max_retries

    async def process(self, event: dict[str, Any]) -> ModuleAdvance | None:
        """Advance module progress and store objective side data.

        Returns:
            The persisted ModuleAdvance, or None when nothing was written.
        """
        conversation_id = get_conversation_id(event)
        objective_name = first_present(event, "objective_name")
        if not conversation_id or not isinstance(objective_name, str) or not objective_name:
            logger.warning(
                "Objective completion without conversation or objective name",
                extra={"conversation_id": conversation_id, "event_type": normalize_event_type(event)},
            )
            return None

        output_variables = first_present(event, "output_variables")
        if not isinstance(output_variables, dict):
            output_variables = {}

        logger.info(
            "Objective completed",
            extra={"conversation_id": conversation_id, "objective_name": objective_name},
        )

        context = self.resolve_context(conversation_id)
        result = None
        if self.ensure_conversation_details(conversation_id, context.demo_id):
            result = self.persist_advance(conversation_id, objective_name)

        if result is not None and context.demo_id:
            await self._broadcast_progress(context.demo_id, objective_name, result)

        self.store_side_data(conversation_id, objective_name, output_variables, event)
        return result

    # ------------------------------------------------------------------
    # Module progress
    # ------------------------------------------------------------------

    def resolve_context(self, conversation_id: str) -> ConversationContext:
        """Find the demo whose current Tavus conversation this is."""
        try:
            demo = self._store.get_demo_by_conversation(conversation_id)
        except DatabaseError as e:
            self._absorb("demo lookup", conversation_id, e)
            demo = None
        return ConversationContext(conversation_id, str(demo["id"]) if demo else None)

    def ensure_conversation_details(self, conversation_id: str, demo_id: str | None) -> bool:
        """Create a minimal conversation_details row if none exists.

        Returns:
            True if a row exists afterwards.
        """
        try:
            if self._store.get_conversation_details(conversation_id) is not None:
                return True
            if demo_id is None:
                logger.warning(
                    "No demo for conversation, conversation details not created",
                    extra={"conversation_id": conversation_id},
                )
                return False
            self._store.create_conversation_details(
                {
                    "tavus_conversation_id": conversation_id,
                    "demo_id": demo_id,
                    "conversation_name": f"Conversation {conversation_id[-8:]}",
                    "status": "active",
                    "started_at": _utc_now(),
                }
            )
            return True
        except DatabaseError as e:
            # A concurrent webhook may have created it first.
            try:
                return self._store.get_conversation_details(conversation_id) is not None
            except DatabaseError:
                self._absorb("conversation details create", conversation_id, e)
                return False

    def persist_advance(self, conversation_id: str, objective_name: str) -> ModuleAdvance | None:
        """Read-advance-write module progress with optimistic concurrency.

        Retries the whole read-modify-write when another delivery changed the
        row in between. Re-completing an already recorded objective writes
        nothing.
        """
        for attempt in range(1, self._max_retries + 1):
            try:
                row = self._store.get_conversation_details(conversation_id, DETAILS_STATE_COLUMNS)
                if row is None:
                    return None

                state = self._load_state(row.get("module_state"), conversation_id)
                current_module_id = row.get("current_module_id")
                result = advance(state, current_module_id, objective_name)

                if (
                    objective_name in state.completed_objectives
                    and result.new_module_id == current_module_id
                ):
                    return None

                written = self._store.compare_and_set_module_state(
                    row["id"],
                    row.get("updated_at"),
                    {
                        "module_state": result.new_state.to_db(),
                        "current_module_id": result.new_module_id,
                        "updated_at": _utc_now(),
                    },
                )
            except DatabaseError as e:
                self._absorb("module state persist", conversation_id, e)
                return None

            if written:
                logger.info(
                    "Module state updated",
                    extra={
                        "conversation_id": conversation_id,
                        "module_changed": result.module_changed,
                        "summary": state_summary(result.new_state, result.new_module_id),
                    },
                )
                return result

            logger.info(
                "Module state changed concurrently, retrying",
                extra={"conversation_id": conversation_id, "attempt": attempt},
            )

        logger.warning(
            "Module state update gave up after concurrent modifications",
            extra={"conversation_id": conversation_id, "objective_name": objective_name},
        )
        ErrorTracker.get_instance().record(
            TRANSIENT_COLLABORATOR_FAILURE,
            f"module state compare-and-set exhausted for {objective_name}",
            conversation_id,
        )
        return None

    @staticmethod
    def _load_state(raw: Any, conversation_id: str) -> ModuleState:
        if not raw:
            return ModuleState()
        try:
            return ModuleState.model_validate(raw)
        except ValidationError:
            logger.warning(
                "Stored module state is invalid, starting fresh",
                extra={"conversation_id": conversation_id},
            )
            return ModuleState()

    async def _broadcast_progress(
        self, demo_id: str, objective_name: str, result: ModuleAdvance
    ) -> None:
        channel = demo_modules_channel(demo_id)
        state = result.new_state
        await self._broadcaster.publish(
            channel,
            "objective_completed",
            {
                "objectiveName": objective_name,
                "currentModule": result.new_module_id,
                "completedModules": state.completed_modules,
                "completedObjectives": state.completed_objectives,
            },
            self._pubsub,
        )
        if result.module_changed:
            await self._broadcaster.publish(
                channel,
                "module_changed",
                {
                    "currentModule": result.new_module_id,
                    "previousModule": result.previous_module_id,
                    "completedModules": state.completed_modules,
                    "completedObjectives": state.completed_objectives,
                },
                self._pubsub,
            )

    # ------------------------------------------------------------------
    # Objective side data
    # ------------------------------------------------------------------

    def store_side_data(
        self,
        conversation_id: str,
        objective_name: str,
        output_variables: dict[str, Any],
        event: dict[str, Any],
    ) -> None:
        """Write the visitor data an objective collected to its reporting table."""
        try:
            if objective_name == PRODUCT_INTEREST_OBJECTIVE:
                self._store_product_interest(conversation_id, objective_name, output_variables, event)
            elif objective_name in QUALIFICATION_OBJECTIVES:
                self._store_qualification(conversation_id, objective_name, output_variables, event)
            elif objective_name == VIDEO_SHOWCASE_OBJECTIVE:
                self._store_video_showcase(conversation_id, output_variables, event)
        except DomoException as e:
            self._absorb(f"{objective_name} side data", conversation_id, e)

    def _store_product_interest(
        self,
        conversation_id: str,
        objective_name: str,
        output_variables: dict[str, Any],
        event: dict[str, Any],
    ) -> None:
        self._store.insert_product_interest(
            {
                "conversation_id": conversation_id,
                "objective_name": objective_name,
                "primary_interest": output_variables.get("primary_interest") or None,
                "pain_points": _as_list(output_variables.get("pain_points")) or None,
                "event_type": event.get("event_type"),
                "raw_payload": event,
                "received_at": _utc_now(),
            }
        )

    def _store_qualification(
        self,
        conversation_id: str,
        objective_name: str,
        output_variables: dict[str, Any],
        event: dict[str, Any],
    ) -> None:
        self._store.insert_qualification(
            {
                "conversation_id": conversation_id,
                "first_name": output_variables.get("first_name") or None,
                "last_name": output_variables.get("last_name") or None,
                "email": output_variables.get("email") or None,
                "position": output_variables.get("position") or None,
                "objective_name": objective_name,
                "event_type": event.get("event_type"),
                "raw_payload": event,
                "received_at": _utc_now(),
            }
        )

    def _store_video_showcase(
        self,
        conversation_id: str,
        output_variables: dict[str, Any],
        event: dict[str, Any],
    ) -> None:
        existing = self._store.get_video_showcase(conversation_id)
        shown = _as_list(existing.get("videos_shown")) if existing else []
        for title in _as_list(output_variables.get("videos_shown")):
            if title not in shown:
                shown.append(title)

        now = _utc_now()
        if existing and existing.get("id"):
            self._store.update_video_showcase(
                existing["id"],
                {
                    "videos_shown": shown or None,
                    "raw_payload": event,
                    "received_at": now,
                    "updated_at": now,
                },
            )
        else:
            self._store.insert_video_showcase(
                {
                    "conversation_id": conversation_id,
                    "objective_name": VIDEO_SHOWCASE_OBJECTIVE,
                    "videos_shown": shown or None,
                    "event_type": event.get("event_type"),
                    "raw_payload": event,
                    "received_at": now,
                }
            )

    @staticmethod
    def _absorb(stage: str, conversation_id: str, error: DomoException) -> None:
        logger.warning(
            "Objective processing step failed",
            extra={"stage": stage, "conversation_id": conversation_id, "error": error.message},
        )
        ErrorTracker.get_instance().record(
            TRANSIENT_COLLABORATOR_FAILURE, f"{stage}: {error.message}", conversation_id
        )
