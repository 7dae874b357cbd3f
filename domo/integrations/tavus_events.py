"""Normalization of Tavus webhook events into a canonical tool call.

Tavus reports "the LLM invoked a tool" in three incompatible shapes:

1. A structured ``conversation.tool_call`` event with ``data.name`` and
   ``data.args``.
2. An ``application.transcription_ready`` event whose transcript contains
   assistant messages carrying OpenAI-style ``tool_calls``.
3. A ``conversation.utterance`` event where the replica literally spoke
   the call, e.g. ``fetch_video("Intro")``.

Each shape is an ``EventShape`` (a detector plus an extractor). Shapes are
tried in order and the first whose detector accepts the event type wins.
Supporting another shape means appending to ``EVENT_SHAPES``.

Everything here is pure: no I/O, no logging of payload contents.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from domo.integrations.tavus_tools import (
    CLOSE_VIDEO,
    KNOWN_TOOL_NAMES,
    NEXT_VIDEO,
    NO_ARG_TOOL_NAMES,
    PAUSE_VIDEO,
    PLAY_VIDEO,
    VIDEO_FETCH_TOOLS,
)

UTTERANCE_CALL_RE = re.compile(r"^([a-zA-Z_]+)\((.*)\)$", re.DOTALL)
_TITLE_KV_RE = re.compile(
    r"(?:video_title|title|videoName|video_name)\s*[:=]\s*[\"'](.+?)[\"']",
    re.IGNORECASE,
)
_QUOTES = "\"'"

# Short names the LLM sometimes emits instead of the registered tool names
TOOL_ALIASES: dict[str, str] = {
    "pause": PAUSE_VIDEO,
    "hold": PAUSE_VIDEO,
    "resume": PLAY_VIDEO,
    "play": PLAY_VIDEO,
    "unpause": PLAY_VIDEO,
    "next": NEXT_VIDEO,
    "skip": NEXT_VIDEO,
    "close": CLOSE_VIDEO,
    "exit": CLOSE_VIDEO,
    "stop": CLOSE_VIDEO,
}

OBJECTIVE_COMPLETED_TYPES = frozenset(
    {
        "application_objective_completed",
        "objective_completed",
        "conversation_objective_completed",
    }
)
CONVERSATION_ENDED_TYPES = frozenset(
    {
        "conversation_ended",
        "application_conversation_ended",
        "conversation_completed",
        "application_conversation_completed",
    }
)
TRANSCRIPTION_READY = "application_transcription_ready"
PERCEPTION_ANALYSIS = "application_perception_analysis"

# Substrings marking events whose payload feeds the reporting analytics
_ANALYTICS_NEEDLES = (
    "conversation_completed",
    "conversation_complete",
    "conversation_ended",
    "conversation_end",
    "perception",
    "analytics",
    "summary_ready",
)


@dataclass(frozen=True)
class ToolCall:
    """Canonical tool invocation. ``name is None`` means nothing to do."""

    name: str | None
    args: dict[str, Any] | None


NO_TOOL_CALL = ToolCall(name=None, args=None)


@dataclass(frozen=True)
class EventShape:
    """One wire format Tavus uses to report a tool call."""

    name: str
    detect: Callable[[str], bool]
    extract: Callable[[dict[str, Any]], ToolCall]


# ─────────────────────────────────────────────────────────────────────────────
# Event type helpers
# ─────────────────────────────────────────────────────────────────────────────


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def normalize_event_type(event: dict[str, Any]) -> str:
    """Lowercase the event type and fold ``.`` and ``-`` into ``_``."""
    data = _as_dict(event.get("data"))
    raw = event.get("event_type") or event.get("type") or data.get("event_type") or data.get("type")
    if not isinstance(raw, str):
        return ""
    return raw.lower().replace(".", "_").replace("-", "_")


def is_objective_completion(event: dict[str, Any]) -> bool:
    return normalize_event_type(event) in OBJECTIVE_COMPLETED_TYPES


def is_conversation_ended(event: dict[str, Any]) -> bool:
    return normalize_event_type(event) in CONVERSATION_ENDED_TYPES


def is_transcript_or_perception(event: dict[str, Any]) -> bool:
    return normalize_event_type(event) in (TRANSCRIPTION_READY, PERCEPTION_ANALYSIS)


def should_ingest_analytics(event: dict[str, Any]) -> bool:
    """Whether the event carries reporting data (perception, summaries, endings)."""
    event_type = normalize_event_type(event)
    return any(needle in event_type for needle in _ANALYTICS_NEEDLES)


def get_conversation_id(event: dict[str, Any]) -> str | None:
    data = _as_dict(event.get("data"))
    conversation_id = event.get("conversation_id") or data.get("conversation_id")
    return str(conversation_id) if conversation_id else None


def first_present(event: dict[str, Any], key: str) -> Any:
    """Read ``key`` from ``properties``, ``data`` or the top level, in that order."""
    for container in (_as_dict(event.get("properties")), _as_dict(event.get("data")), event):
        value = container.get(key)
        if value is not None:
            return value
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Argument decoding
# ─────────────────────────────────────────────────────────────────────────────


def dequote(value: str) -> str:
    """Trim whitespace and one layer of surrounding quotes."""
    text = value.strip()
    if text[:1] in _QUOTES:
        text = text[1:]
    if text[-1:] in _QUOTES:
        text = text[:-1]
    return text.strip()


def canonical_tool_name(name: Any) -> str | None:
    """Map registered names and known aliases to a canonical tool name."""
    if not isinstance(name, str) or not name.strip():
        return None
    stripped = name.strip()
    if stripped in KNOWN_TOOL_NAMES:
        return stripped
    return TOOL_ALIASES.get(stripped.lower())


def decode_tool_args(tool_name: str, raw: Any) -> dict[str, Any]:
    """Decode tool arguments that may arrive as an object or as text.

    Text is decoded as JSON first. A JSON object is used as-is; a bare JSON
    string becomes the video title for the video-fetch tool. Anything that
    does not decode falls back to ``{"video_title": <dequoted>}`` for the
    video-fetch tool and ``{"arg": <raw>}`` for everything else.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return {"arg": raw}

    text = raw.strip()
    if not text:
        return {}

    try:
        decoded = json.loads(text)
    except ValueError:
        decoded = None
    else:
        if isinstance(decoded, dict):
            return decoded

    if tool_name in VIDEO_FETCH_TOOLS:
        if isinstance(decoded, str):
            return {"video_title": dequote(decoded)}
        match = _TITLE_KV_RE.search(text)
        if match:
            return {"video_title": match.group(1)}
        return {"video_title": dequote(text)}
    return {"arg": text}


def _remap_command_title(tool_call: ToolCall) -> ToolCall:
    """Turn ``fetch_video("pause")`` into ``pause_video``."""
    if tool_call.name not in VIDEO_FETCH_TOOLS or not tool_call.args:
        return tool_call
    title = tool_call.args.get("video_title") or tool_call.args.get("title")
    if not isinstance(title, str):
        return tool_call
    command = TOOL_ALIASES.get(dequote(title).lower().rstrip(".!?"))
    if command and command not in VIDEO_FETCH_TOOLS:
        return ToolCall(name=command, args={})
    return tool_call


# ─────────────────────────────────────────────────────────────────────────────
# Shapes
# ─────────────────────────────────────────────────────────────────────────────


def _is_tool_call_type(event_type: str) -> bool:
    return "tool_call" in event_type or "toolcall" in event_type


def _extract_structured(event: dict[str, Any]) -> ToolCall:
    data = _as_dict(event.get("data"))
    function = _as_dict(data.get("function"))
    properties = _as_dict(data.get("properties"))

    raw_name = data.get("name") or function.get("name") or properties.get("name")
    if not isinstance(raw_name, str) or not raw_name.strip():
        return NO_TOOL_CALL
    name = canonical_tool_name(raw_name) or raw_name.strip()

    raw_args = data.get("args")
    if raw_args is None:
        raw_args = data.get("arguments", function.get("arguments", properties.get("args")))
    return _remap_command_title(ToolCall(name=name, args=decode_tool_args(name, raw_args)))


def _is_transcription_type(event_type: str) -> bool:
    return "transcription" in event_type


def _extract_transcript(event: dict[str, Any]) -> ToolCall:
    transcript = _as_dict(event.get("data")).get("transcript")
    if not isinstance(transcript, list):
        return NO_TOOL_CALL

    with_calls = [
        msg
        for msg in transcript
        if isinstance(msg, dict) and msg.get("role") == "assistant" and msg.get("tool_calls")
    ]
    if not with_calls:
        return NO_TOOL_CALL

    tool_calls = with_calls[-1]["tool_calls"]
    if not isinstance(tool_calls, list) or not isinstance(tool_calls[0], dict):
        return NO_TOOL_CALL
    function = _as_dict(tool_calls[0].get("function"))

    name = canonical_tool_name(function.get("name"))
    if name is None:
        return NO_TOOL_CALL
    if name in VIDEO_FETCH_TOOLS:
        args = decode_tool_args(name, function.get("arguments"))
        return _remap_command_title(ToolCall(name=name, args=args))
    return ToolCall(name=name, args={})


def _is_utterance_type(event_type: str) -> bool:
    return "utterance" in event_type


def _extract_utterance(event: dict[str, Any]) -> ToolCall:
    data = _as_dict(event.get("data"))
    speech = (
        data.get("speech")
        or _as_dict(data.get("properties")).get("speech")
        or event.get("speech")
    )
    if not isinstance(speech, str):
        return NO_TOOL_CALL
    speech = speech.strip()

    if speech in NO_ARG_TOOL_NAMES:
        return ToolCall(name=speech, args={})

    match = UTTERANCE_CALL_RE.match(speech)
    if not match:
        return NO_TOOL_CALL
    name, raw_args = match.group(1), match.group(2)
    return _remap_command_title(ToolCall(name=name, args=decode_tool_args(name, raw_args)))


EVENT_SHAPES: tuple[EventShape, ...] = (
    EventShape("structured_tool_call", _is_tool_call_type, _extract_structured),
    EventShape("transcript_ready", _is_transcription_type, _extract_transcript),
    EventShape("utterance", _is_utterance_type, _extract_utterance),
)


def parse_tool_call(event: Any) -> ToolCall:
    """Convert any Tavus event into a canonical tool call.

    Args:
        event: Decoded webhook payload.

    Returns:
        The canonical tool call, or ``NO_TOOL_CALL`` when the event does
        not carry one. Never raises.
    """
    if not isinstance(event, dict):
        return NO_TOOL_CALL

    event_type = normalize_event_type(event)
    for shape in EVENT_SHAPES:
        if shape.detect(event_type):
            return shape.extract(event)
    return NO_TOOL_CALL
