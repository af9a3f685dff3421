"""
In-process broadcast channels.

Each subscriber owns a bounded asyncio.Queue. Publishing never blocks: when a
subscriber's queue is full its oldest item is dropped, so a slow consumer
loses history instead of stalling the event loop.
"""

import asyncio
import logging
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 256

_CLOSED = object()


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the subscription has been closed."""

logger = logging.getLogger(__name__)


class Subscription(Generic[T]):
    def __init__(self, broadcast: "Broadcast[T]", maxsize: int):
        self._broadcast = broadcast
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, item: object) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    async def get(self) -> T:
        item = await self._queue.get()
        if item is _CLOSED:
            raise SubscriptionClosed(self._broadcast.name)
        return item  # type: ignore[return-value]

    def get_nowait(self) -> T:
        """Raises asyncio.QueueEmpty when nothing is buffered."""
        item = self._queue.get_nowait()
        if item is _CLOSED:
            raise asyncio.QueueEmpty
        return item  # type: ignore[return-value]

    def drain(self) -> list[T]:
        """Return every buffered item without waiting."""
        items: list[T] = []
        while True:
            try:
                items.append(self.get_nowait())
            except asyncio.QueueEmpty:
                return items

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broadcast._remove(self)
        self._offer(_CLOSED)

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


class Broadcast(Generic[T]):
    """Fan one stream of items out to any number of subscribers."""

    def __init__(self, name: str = "broadcast", maxsize: int = DEFAULT_QUEUE_SIZE):
        self.name = name
        self._maxsize = maxsize
        self._subscribers: list[Subscription[T]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self, maxsize or self._maxsize)
        self._subscribers.append(sub)
        return sub

    def publish(self, item: T) -> int:
        """Deliver to every current subscriber. Returns the number of subscribers reached."""
        for sub in list(self._subscribers):
            before = sub.dropped
            sub._offer(item)
            if sub.dropped != before:
                logger.debug(f"{self.name}: subscriber queue full, dropped oldest item")
        return len(self._subscribers)

    def close(self) -> None:
        for sub in list(self._subscribers):
            sub.close()

    def _remove(self, sub: Subscription[T]) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass
