"""Tests for subscribe-before-send realtime broadcasts."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from domo.services.realtime import RealtimeBroadcaster, demo_channel, demo_modules_channel


def test_channel_names() -> None:
    assert demo_channel("d1") == "demo-d1"
    assert demo_modules_channel("d1") == "demo-d1-modules"


@pytest.mark.asyncio
async def test_sends_after_subscribe_and_removes_channel(pubsub: Any) -> None:
    broadcaster = RealtimeBroadcaster(subscribe_timeout=0.5)

    sent = await broadcaster.publish("demo-d1", "play_video", {"url": "https://x"}, pubsub)

    assert sent is True
    assert pubsub.sent == [
        {
            "channel": "demo-d1",
            "event": "play_video",
            "payload": {"url": "https://x"},
            "subscribed": True,
        }
    ]
    assert pubsub.removed == ["demo-d1"]


@pytest.mark.asyncio
async def test_subscribe_timeout_abandons_broadcast(pubsub_factory: Any) -> None:
    pubsub = pubsub_factory(acknowledge=False)
    broadcaster = RealtimeBroadcaster(subscribe_timeout=0.05)

    sent = await broadcaster.publish("demo-d1", "play_video", {"url": "u"}, pubsub)

    assert sent is False
    assert pubsub.sent == []
    assert pubsub.removed == ["demo-d1"]


@pytest.mark.asyncio
async def test_send_failure_is_swallowed_and_channel_removed(pubsub_factory: Any) -> None:
    pubsub = pubsub_factory(fail_send=True)

    sent = await RealtimeBroadcaster(0.5).publish("demo-d1", "show_trial_cta", {}, pubsub)

    assert sent is False
    assert pubsub.removed == ["demo-d1"]


@pytest.mark.asyncio
async def test_subscribe_error_is_swallowed() -> None:
    channel = MagicMock()
    channel.subscribe = AsyncMock(side_effect=RuntimeError("connect refused"))
    channel.send_broadcast = AsyncMock()
    client = MagicMock()
    client.channel.return_value = channel
    client.remove_channel = AsyncMock()

    sent = await RealtimeBroadcaster(0.5).publish("demo-d1", "play_video", {}, client)

    assert sent is False
    channel.send_broadcast.assert_not_awaited()
    client.remove_channel.assert_awaited_once_with(channel)


@pytest.mark.asyncio
async def test_missing_client_is_skipped() -> None:
    assert await RealtimeBroadcaster().publish("demo-d1", "play_video", {}, None) is False
