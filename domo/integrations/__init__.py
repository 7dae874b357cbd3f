"""Tavus integration: webhook authentication, event normalization and tool schemas."""

from domo.integrations.tavus_events import NO_TOOL_CALL, ToolCall, parse_tool_call
from domo.integrations.tavus_signature import AuthResult, authenticate

__all__ = ["NO_TOOL_CALL", "AuthResult", "ToolCall", "authenticate", "parse_tool_call"]
