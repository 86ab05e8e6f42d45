"""In-process publish/subscribe hub for live updates.

Subscribers are asyncio queues bound to the event loop that created them.
Publishers may run on worker threads (sync route handlers, background
tasks), so delivery goes through ``loop.call_soon_threadsafe``.
"""
import asyncio
import json
import logging
from threading import Lock

logger = logging.getLogger(__name__)


def notifications_channel(uid: str) -> str:
    return f"notifications:{uid}"


def appointments_channel(uid: str) -> str:
    return f"appointments:{uid}"


class Subscription:
    def __init__(self, hub: "RealtimeHub", channel: str, loop: asyncio.AbstractEventLoop):
        self.hub = hub
        self.channel = channel
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()

    async def get(self, timeout: float | None = None):
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)

    def close(self) -> None:
        self.hub.unsubscribe(self)


class RealtimeHub:
    def __init__(self):
        self._lock = Lock()
        self._subscriptions: dict[str, set[Subscription]] = {}

    def subscribe(self, channel: str) -> Subscription:
        subscription = Subscription(self, channel, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.setdefault(channel, set()).add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.channel)
            if not subscribers:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscriptions[subscription.channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(channel, ()))

    def publish(self, channel: str, event: dict) -> int:
        with self._lock:
            subscribers = list(self._subscriptions.get(channel, ()))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.loop.call_soon_threadsafe(subscription.queue.put_nowait, event)
                delivered += 1
            except RuntimeError:
                # Loop already closed; the stream is gone.
                self.unsubscribe(subscription)
        return delivered


def format_sse(event: dict, event_name: str | None = None) -> str:
    lines = []
    if event_name:
        lines.append(f"event: {event_name}")
    lines.append(f"data: {json.dumps(event, default=str)}")
    return "\n".join(lines) + "\n\n"


async def stream_channel(request, channel: str, keepalive_seconds: float, hub: RealtimeHub | None = None):
    """Yield Server-Sent Events for ``channel`` until the client disconnects."""
    hub = hub or realtime_hub
    subscription = hub.subscribe(channel)
    logger.debug("Subscribed to %s", channel)
    try:
        yield ": connected\n\n"
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await subscription.get(timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_sse(event, event.get("event"))
    finally:
        subscription.close()
        logger.debug("Unsubscribed from %s", channel)


realtime_hub = RealtimeHub()
