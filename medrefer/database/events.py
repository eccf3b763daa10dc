"""
Change notification

In-process publish/subscribe for repository activity.

- EventChannel fans each published item out to every current subscriber
- No replay: a late subscriber only sees items published after it subscribed
- At-most-once, best-effort: publishing never blocks and never raises,
  even with zero subscribers
- Each subscriber holds at most max_pending undelivered items; when full,
  the oldest item is dropped to make room
- ListingNotifier debounces "current listing" pushes so a burst of writes
  causes one re-query instead of one per write
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, Set, TypeVar

from medrefer.core.errors import RepositoryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()

MAX_PENDING = 256
LISTING_MAX_PENDING = 8


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"


@dataclass
class ChangeEvent(Generic[T]):
    """
    One create/update/delete/status-change on an entity

    Transient: published to subscribers, never persisted.
    """
    kind: ChangeKind
    entity_id: str
    entity: Optional[T] = None
    new_status: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


class Subscription(Generic[T]):
    """
    A subscriber's view of a channel

    Usage:
        >>> subscription = channel.subscribe()
        >>> async for event in subscription:
        ...     handle(event)
    """
    def __init__(self, channel: "EventChannel[T]", max_pending: int = MAX_PENDING):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.closed = False
        self.dropped = 0

    def _deliver(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.debug("Subscriber on %s is behind, dropped oldest item", self._channel.name)
        self._queue.put_nowait(item)

    async def get(self) -> Optional[T]:
        """Wait for the next item; None once the subscription is closed"""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        return None if item is _CLOSED else item

    def get_nowait(self) -> Optional[T]:
        """Next already-delivered item, or None"""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._channel._detach(self)
            # a full queue has no waiting reader to wake; get() sees closed
            if not self._queue.full():
                self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item


class EventChannel(Generic[T]):
    """
    Broadcast channel: every subscriber gets its own bounded queue
    """
    def __init__(self, name: str = "", max_pending: int = MAX_PENDING):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self.name = name
        self.max_pending = max_pending
        self._subscribers: Set[Subscription[T]] = set()
        self.closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        if self.closed:
            raise RuntimeError(f"Channel {self.name!r} is closed")
        subscription = Subscription(self, self.max_pending)
        self._subscribers.add(subscription)
        return subscription

    def _detach(self, subscription: Subscription[T]) -> None:
        self._subscribers.discard(subscription)

    def publish(self, item: T) -> int:
        """
        Fan item out to current subscribers

        Returns:
            Number of subscribers the item was delivered to
        """
        if self.closed:
            return 0
        for subscription in list(self._subscribers):
            subscription._deliver(item)
        return len(self._subscribers)

    def close(self) -> None:
        self.closed = True
        for subscription in list(self._subscribers):
            subscription.close()


class ListingNotifier:
    """
    Debounced "current listing" refresh

    schedule() marks the listing dirty; one background task waits for the
    debounce window, then calls refresh() (which re-queries and publishes).
    Writes that land while a refresh is pending share it. Nothing is
    scheduled while the listing channel has no subscribers.
    """
    def __init__(
        self,
        channel: EventChannel,
        refresh: Callable[[], Awaitable[object]],
        debounce_seconds: float = 0.25,
    ):
        self.channel = channel
        self.refresh = refresh
        self.debounce_seconds = debounce_seconds
        self._dirty = False
        self._task: Optional[asyncio.Task] = None

    def schedule(self) -> None:
        if self.channel.subscriber_count == 0:
            return
        self._dirty = True
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self._dirty:
            if self.debounce_seconds:
                await asyncio.sleep(self.debounce_seconds)
            self._dirty = False
            if self.channel.subscriber_count == 0:
                return
            try:
                await self.refresh()
            except RepositoryError as exc:
                logger.error("Listing refresh for %s failed: %s", self.channel.name, exc)

    async def flush(self) -> None:
        """Wait for a pending refresh (if any) to finish"""
        if self._task is not None and not self._task.done():
            await self._task

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._dirty = False
