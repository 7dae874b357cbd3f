"""Tavus CVI tool names for the Domo demo agent.

When the persona's LLM invokes one of these, Tavus reports it through the
webhook in one of several shapes (see ``tavus_events``), and the dispatcher
carries out the side effect: playing a demo video or showing the trial
call-to-action. The remaining video controls are UI-only signals.
"""

FETCH_VIDEO = "fetch_video"
PLAY_VIDEO = "play_video"  # alias of fetch_video
PAUSE_VIDEO = "pause_video"
NEXT_VIDEO = "next_video"
CLOSE_VIDEO = "close_video"
SHOW_TRIAL_CTA = "show_trial_cta"

VIDEO_FETCH_TOOLS: frozenset[str] = frozenset({FETCH_VIDEO, PLAY_VIDEO})
# Acknowledged without persistence or broadcast; the browser drives the player
UI_SIGNAL_TOOLS: frozenset[str] = frozenset({PAUSE_VIDEO, NEXT_VIDEO, CLOSE_VIDEO})
KNOWN_TOOL_NAMES: frozenset[str] = VIDEO_FETCH_TOOLS | UI_SIGNAL_TOOLS | {SHOW_TRIAL_CTA}
# Tools that may be spoken bare (no parentheses) in an utterance
NO_ARG_TOOL_NAMES: frozenset[str] = KNOWN_TOOL_NAMES - {FETCH_VIDEO}
