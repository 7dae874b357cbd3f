"""Executes canonical Tavus tool calls against the demo's data.

UI-signal tools are acknowledged directly; every other tool name maps to a
``_handle_<tool>`` coroutine. Every handler turns
collaborator failures into a soft ``DispatchResult`` so the webhook can
answer 200: a missing demo or video will not appear on retry, and a flaky
storage or realtime call is not worth a Tavus retry storm.

Video and CTA side effects reach the browser through a realtime broadcast on
``demo-<demo_id>``.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from domo.core.error_tracker import (
    GUARDRAIL_VIOLATION,
    PERMANENT_LOOKUP_FAILURE,
    TRANSIENT_COLLABORATOR_FAILURE,
    ErrorTracker,
)
from domo.core.exceptions import (
    DatabaseError,
    DomoException,
    ExternalServiceError,
    GuardrailViolation,
    NotFoundError,
)
from domo.db.storage import VideoStorage
from domo.db.webhook_store import WebhookStore
from domo.integrations.tavus_events import ToolCall, dequote
from domo.integrations.tavus_tools import FETCH_VIDEO, SHOW_TRIAL_CTA, UI_SIGNAL_TOOLS
from domo.services.realtime import RealtimeBroadcaster, demo_channel

logger = logging.getLogger(__name__)

INVALID_TITLE_MESSAGE = "Invalid or missing video title."
DEMO_NOT_FOUND_MESSAGE = "Demo not found for conversation."
VIDEO_NOT_FOUND_MESSAGE = "Video not found."
SIGNED_URL_FAILED_MESSAGE = "Could not generate video URL."

_TITLE_KEYS = ("video_title", "title", "videoName", "video_name")
_CTA_FIELDS = ("cta_title", "cta_message", "cta_button_text", "cta_button_url")


@dataclass
class DispatchResult:
    """Outcome of one tool call.

    ``soft`` results carry a ``message`` for the webhook response body;
    they are expected failures, not errors.
    """

    ok: bool
    message: str | None = None
    soft: bool = False
    broadcast_event: str | None = None
    broadcast_sent: bool = False

    @classmethod
    def received(cls, broadcast_event: str | None = None, sent: bool = False) -> "DispatchResult":
        return cls(ok=True, broadcast_event=broadcast_event, broadcast_sent=sent)

    @classmethod
    def soft_failure(cls, message: str) -> "DispatchResult":
        return cls(ok=False, message=message, soft=True)


def extract_video_title(args: Any) -> str:
    """Pull a trimmed, dequoted video title out of tool args.

    Returns an empty string when no usable title is present.
    """
    if isinstance(args, str):
        return dequote(args)
    if not isinstance(args, dict):
        return ""
    for key in _TITLE_KEYS:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return dequote(value)
    return ""


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class ToolDispatcher:
    """Routes canonical tool calls to their side effects.

    Store and storage calls use the synchronous Supabase client, the same
    way the rest of the service does; only the realtime broadcast awaits.
    """

    def __init__(
        self,
        store: WebhookStore,
        storage: VideoStorage,
        pubsub: Any,
        broadcaster: RealtimeBroadcaster | None = None,
        signed_url_ttl: int = 3600,
    ) -> None:
        self._store = store
        self._storage = storage
        self._pubsub = pubsub
        self._broadcaster = broadcaster or RealtimeBroadcaster()
        self._signed_url_ttl = signed_url_ttl

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def execute(self, tool_call: ToolCall, conversation_id: str | None) -> DispatchResult:
        """Carry out a tool call for a conversation.

        Args:
            tool_call: Canonical tool call; ``name`` must be set.
            conversation_id: Tavus conversation the call belongs to.

        Returns:
            DispatchResult; never raises for collaborator failures.
        """
        tool_name = tool_call.name or ""
        args = tool_call.args or {}

        if tool_name in UI_SIGNAL_TOOLS:
            return self._acknowledge(tool_name, conversation_id)

        handler = getattr(self, f"_handle_{tool_name}", None)
        if handler is None:
            logger.warning(
                "Unknown tool call acknowledged as no-op",
                extra={"tool_name": tool_name, "conversation_id": conversation_id},
            )
            return DispatchResult.received()

        try:
            return await handler(args, conversation_id)
        except GuardrailViolation as e:
            logger.warning(
                "Guardrail violation in tool call",
                extra={
                    "guardrail_violation": True,
                    "tool_name": e.tool_name,
                    "tool_args": e.details.get("args"),
                    "conversation_id": conversation_id,
                    "timestamp": _utc_now(),
                },
            )
            ErrorTracker.get_instance().record(GUARDRAIL_VIOLATION, e.message, conversation_id)
            return DispatchResult.soft_failure(e.message)
        except NotFoundError as e:
            logger.warning(
                "Tool call lookup failed",
                extra={
                    "tool_name": tool_name,
                    "conversation_id": conversation_id,
                    **e.details,
                },
            )
            ErrorTracker.get_instance().record(
                PERMANENT_LOOKUP_FAILURE, e.message, conversation_id
            )
            return DispatchResult.soft_failure(e.user_message)
        except DomoException as e:
            logger.warning(
                "Tool call collaborator failure",
                extra={
                    "tool_name": tool_name,
                    "conversation_id": conversation_id,
                    "error_code": e.code,
                    "error": e.message,
                },
            )
            ErrorTracker.get_instance().record(
                TRANSIENT_COLLABORATOR_FAILURE, e.message, conversation_id
            )
            fallback = (
                SIGNED_URL_FAILED_MESSAGE
                if isinstance(e, ExternalServiceError)
                else DEMO_NOT_FOUND_MESSAGE
            )
            return DispatchResult.soft_failure(e.details.get("user_message", fallback))

    # ------------------------------------------------------------------
    # Shared lookups
    # ------------------------------------------------------------------

    def _resolve_demo(self, conversation_id: str | None, columns: str = "id") -> dict[str, Any]:
        if not conversation_id:
            raise NotFoundError("Demo", user_message=DEMO_NOT_FOUND_MESSAGE)
        try:
            demo = self._store.get_demo_by_conversation(conversation_id, columns)
        except DatabaseError as e:
            e.details["user_message"] = DEMO_NOT_FOUND_MESSAGE
            raise
        if demo is None:
            raise NotFoundError(
                "Demo for conversation",
                conversation_id,
                user_message=DEMO_NOT_FOUND_MESSAGE,
            )
        return demo

    async def _broadcast(self, demo_id: str, event: str, payload: dict[str, Any]) -> DispatchResult:
        sent = await self._broadcaster.publish(demo_channel(demo_id), event, payload, self._pubsub)
        if not sent:
            ErrorTracker.get_instance().record(
                TRANSIENT_COLLABORATOR_FAILURE, f"broadcast {event} to demo {demo_id} not sent"
            )
        return DispatchResult.received(broadcast_event=event, sent=sent)

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    async def _handle_fetch_video(
        self, args: dict[str, Any], conversation_id: str | None
    ) -> DispatchResult:
        title = extract_video_title(args)
        if not title:
            raise GuardrailViolation(FETCH_VIDEO, INVALID_TITLE_MESSAGE, args)

        demo = self._resolve_demo(conversation_id)
        demo_id = str(demo["id"])

        try:
            video = self._store.get_video(demo_id, title)
        except DatabaseError as e:
            e.details["user_message"] = VIDEO_NOT_FOUND_MESSAGE
            raise
        if video is None or not video.get("storage_url"):
            available = self._available_titles(demo_id)
            logger.warning(
                "Requested video title not in demo",
                extra={
                    "video_title": title,
                    "demo_id": demo_id,
                    "available_titles": available,
                },
            )
            raise NotFoundError("Video", title, user_message=VIDEO_NOT_FOUND_MESSAGE)

        try:
            url = self._storage.create_signed_url(video["storage_url"], self._signed_url_ttl)
        except ExternalServiceError:
            logger.exception("Error creating signed URL", extra={"demo_id": demo_id})
            raise

        result = await self._broadcast(demo_id, "play_video", {"url": url})
        self._track_video_showcase(conversation_id, title)
        return result

    async def _handle_play_video(
        self, args: dict[str, Any], conversation_id: str | None
    ) -> DispatchResult:
        return await self._handle_fetch_video(args, conversation_id)

    async def _handle_show_trial_cta(
        self, args: dict[str, Any], conversation_id: str | None
    ) -> DispatchResult:
        demo = self._resolve_demo(conversation_id, "id, " + ", ".join(_CTA_FIELDS))
        demo_id = str(demo["id"])

        self._track_cta_shown(conversation_id, demo)
        payload = {field: demo.get(field) for field in _CTA_FIELDS}
        return await self._broadcast(demo_id, SHOW_TRIAL_CTA, payload)

    @staticmethod
    def _acknowledge(tool_name: str, conversation_id: str | None) -> DispatchResult:
        # The browser drives the player for these; nothing to persist.
        logger.info(
            "UI signal tool acknowledged",
            extra={"tool_name": tool_name, "conversation_id": conversation_id},
        )
        return DispatchResult.received()

    # ------------------------------------------------------------------
    # Best-effort reporting writes
    # ------------------------------------------------------------------

    def _available_titles(self, demo_id: str) -> list[str]:
        try:
            return self._store.list_video_titles(demo_id)
        except DomoException:
            return []

    def _track_video_showcase(self, conversation_id: str | None, title: str) -> None:
        if not conversation_id:
            return
        try:
            existing = self._store.get_video_showcase(conversation_id)
            now = _utc_now()
            if existing and existing.get("id"):
                shown = existing.get("videos_shown")
                shown = list(shown) if isinstance(shown, list) else []
                if title not in shown:
                    shown.append(title)
                self._store.update_video_showcase(
                    existing["id"], {"videos_shown": shown, "received_at": now}
                )
            else:
                self._store.insert_video_showcase(
                    {
                        "conversation_id": conversation_id,
                        "objective_name": "video_showcase",
                        "videos_shown": [title],
                        "received_at": now,
                    }
                )
        except DomoException as e:
            logger.warning(
                "Failed to track video showcase",
                extra={"conversation_id": conversation_id, "error": e.message},
            )

    def _track_cta_shown(self, conversation_id: str | None, demo: dict[str, Any]) -> None:
        if not conversation_id:
            return
        try:
            existing = self._store.get_cta_tracking(conversation_id)
            now = _utc_now()
            if existing and existing.get("id"):
                self._store.update_cta_tracking(
                    existing["id"],
                    {
                        "cta_shown_at": now,
                        "cta_url": demo.get("cta_button_url") or existing.get("cta_url"),
                        "updated_at": now,
                    },
                )
            else:
                self._store.insert_cta_tracking(
                    {
                        "conversation_id": conversation_id,
                        "demo_id": demo["id"],
                        "cta_shown_at": now,
                        "cta_url": demo.get("cta_button_url"),
                        "updated_at": now,
                    }
                )
        except DomoException as e:
            logger.warning(
                "Failed to track CTA shown",
                extra={"conversation_id": conversation_id, "error": e.message},
            )
