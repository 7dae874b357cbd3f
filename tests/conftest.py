"""Shared fixtures for Domo webhook tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from domo.core.error_tracker import ErrorTracker
from domo.db.webhook_store import WebhookStore


class FakeChannel:
    """Realtime channel double that records what was sent."""

    def __init__(self, name: str, client: FakeRealtimeClient) -> None:
        self.name = name
        self._client = client
        self.subscribed = False

    async def subscribe(self, callback: Any) -> FakeChannel:
        if self._client.acknowledge:
            self.subscribed = True
            callback("SUBSCRIBED", None)
        return self

    async def send_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        if self._client.fail_send:
            raise RuntimeError("socket closed")
        self._client.sent.append(
            {
                "channel": self.name,
                "event": event,
                "payload": payload,
                "subscribed": self.subscribed,
            }
        )


class FakeRealtimeClient:
    """Stands in for the async Supabase client's channel API."""

    def __init__(self, acknowledge: bool = True, fail_send: bool = False) -> None:
        self.acknowledge = acknowledge
        self.fail_send = fail_send
        self.sent: list[dict[str, Any]] = []
        self.opened: list[str] = []
        self.removed: list[str] = []

    def channel(self, name: str) -> FakeChannel:
        self.opened.append(name)
        return FakeChannel(name, self)

    async def remove_channel(self, channel: FakeChannel) -> None:
        self.removed.append(channel.name)


@pytest.fixture
def pubsub() -> FakeRealtimeClient:
    return FakeRealtimeClient()


@pytest.fixture
def mock_store() -> MagicMock:
    """WebhookStore double; every lookup misses unless a test says otherwise."""
    store = MagicMock(spec=WebhookStore)
    store.get_demo_by_conversation.return_value = None
    store.get_video.return_value = None
    store.list_video_titles.return_value = []
    store.record_processed_event.return_value = True
    store.get_conversation_details.return_value = None
    store.update_conversation_details.return_value = 1
    store.compare_and_set_module_state.return_value = True
    store.get_video_showcase.return_value = None
    store.get_cta_tracking.return_value = None
    return store


@pytest.fixture(autouse=True)
def reset_error_tracker() -> None:
    ErrorTracker.get_instance().reset()


@pytest.fixture
def pubsub_factory() -> type[FakeRealtimeClient]:
    """Build a realtime double with non-default behavior."""
    return FakeRealtimeClient
