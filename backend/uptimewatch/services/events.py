"""Event bus for per-check events.

Observers (such as a realtime transport) subscribe an async handler. Each
subscriber gets its own bounded queue and worker task, so ``publish`` never
waits on a slow subscriber: a full queue drops the event for that subscriber.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from ..config import settings

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]


class Subscription:
    """One subscriber's queue and worker."""

    def __init__(self, handler: EventHandler, maxsize: int):
        self.handler = handler
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._task: Optional[asyncio.Task] = None

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self):
        while True:
            event = await self.queue.get()
            try:
                await self.handler(event)
            except Exception as e:
                logger.error(f"Event handler {getattr(self.handler, '__name__', self.handler)!s} failed: {e}")
            finally:
                self.queue.task_done()

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class EventBus:
    """Publishes events to subscribers without blocking the publisher."""

    def __init__(self, maxsize: Optional[int] = None):
        self.maxsize = maxsize if maxsize is not None else settings.event_queue_size
        self._subscriptions: List[Subscription] = []

    def subscribe(self, handler: EventHandler) -> Subscription:
        """Register an async handler. Must be called from a running event loop."""
        subscription = Subscription(handler, self.maxsize)
        subscription.start()
        self._subscriptions.append(subscription)
        return subscription

    async def unsubscribe(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        await subscription.stop()

    def publish(self, event: Any):
        """Queue an event for every subscriber."""
        for subscription in list(self._subscriptions):
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.warning(
                    f"Event queue full, dropping event for {getattr(subscription.handler, '__name__', 'subscriber')}"
                )

    async def drain(self):
        """Wait until every queued event has been handled."""
        await asyncio.gather(*[s.queue.join() for s in self._subscriptions])

    async def close(self):
        """Stop all subscriber workers."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.stop()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


# Global instance
event_bus = EventBus()
