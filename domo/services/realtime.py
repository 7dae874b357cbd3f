"""Broadcasts to per-demo Supabase Realtime channels.

Supabase silently drops broadcasts sent on a channel that is not yet
subscribed, so every publish subscribes first and waits for the SUBSCRIBED
acknowledgement. The wait is bounded; a webhook must never hang on it.
"""

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBE_TIMEOUT = 2.0
SUBSCRIBED = "SUBSCRIBED"


def demo_channel(demo_id: str) -> str:
    """Channel the demo experience page listens on."""
    return f"demo-{demo_id}"


def demo_modules_channel(demo_id: str) -> str:
    """Channel the module progress indicator listens on."""
    return f"demo-{demo_id}-modules"


class RealtimeBroadcaster:
    """Publishes one event per call with subscribe-before-send discipline."""

    def __init__(self, subscribe_timeout: float = DEFAULT_SUBSCRIBE_TIMEOUT) -> None:
        self._subscribe_timeout = subscribe_timeout

    async def publish(
        self,
        channel_name: str,
        event: str,
        payload: dict[str, Any],
        pubsub: Any,
    ) -> bool:
        """Subscribe to ``channel_name``, send ``event`` and close the channel.

        Args:
            channel_name: Realtime channel, e.g. ``demo-<id>``.
            event: Broadcast event name.
            payload: JSON-serializable payload.
            pubsub: Async Supabase client (anything with ``channel`` and
                ``remove_channel``).

        Returns:
            True if the broadcast was sent. Failures are logged, never raised.
        """
        if pubsub is None:
            logger.warning(
                "Realtime client unavailable, broadcast skipped",
                extra={"channel": channel_name, "event": event},
            )
            return False

        try:
            channel = pubsub.channel(channel_name)
        except Exception as e:
            logger.warning(
                "Realtime channel could not be opened",
                extra={"channel": channel_name, "event": event, "error": str(e)},
            )
            return False

        subscribed = asyncio.Event()

        def _on_status(status: Any, err: Exception | None = None) -> None:
            if str(getattr(status, "value", status)) == SUBSCRIBED:
                subscribed.set()
            elif err is not None:
                logger.debug(
                    "Realtime subscribe status",
                    extra={"channel": channel_name, "status": str(status), "error": str(err)},
                )

        try:
            async with asyncio.timeout(self._subscribe_timeout):
                await channel.subscribe(_on_status)
                await subscribed.wait()
        except TimeoutError:
            logger.warning(
                "Realtime subscribe timed out, broadcast abandoned",
                extra={
                    "channel": channel_name,
                    "event": event,
                    "timeout_seconds": self._subscribe_timeout,
                },
            )
            await self._release(pubsub, channel, channel_name)
            return False
        except Exception as e:
            logger.warning(
                "Realtime subscribe failed, broadcast abandoned",
                extra={"channel": channel_name, "event": event, "error": str(e)},
            )
            await self._release(pubsub, channel, channel_name)
            return False

        sent = False
        try:
            await channel.send_broadcast(event, payload)
            sent = True
            logger.info(
                "Realtime broadcast sent",
                extra={"channel": channel_name, "event": event},
            )
        except Exception as e:
            logger.warning(
                "Realtime broadcast failed",
                extra={"channel": channel_name, "event": event, "error": str(e)},
            )
        finally:
            await self._release(pubsub, channel, channel_name)
        return sent

    @staticmethod
    async def _release(pubsub: Any, channel: Any, channel_name: str) -> None:
        try:
            await pubsub.remove_channel(channel)
        except Exception as e:
            logger.debug(
                "Failed to remove realtime channel",
                extra={"channel": channel_name, "error": str(e)},
            )
