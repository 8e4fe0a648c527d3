"""Per-run event broadcast.

BroadcastChannel fans each run's events out to every subscriber attached to
that run at publication time. Delivery contract:

- At most once per attached subscriber, no replay: a subscriber sees only
  events published after it attached.
- Per-run order is preserved for every subscriber. Nothing is promised
  across runs.
- Publication never blocks. Each subscriber has its own bounded queue; when
  it is full the oldest queued event is dropped, so a slow viewer only ever
  loses its own backlog.

All mutation happens synchronously on the event loop (no await inside a
critical section), which serializes access per run without a lock shared
between unrelated runs.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Final, Self

from script_panel._logging import get_logger, run_ref
from script_panel.constants import SUBSCRIBER_QUEUE_DEPTH
from script_panel.exceptions import RunNotFoundError

if TYPE_CHECKING:
    from script_panel.events import Event

logger = get_logger(__name__)

# Queue marker: no more events for this subscription
_CLOSED: Final = object()


class Subscription:
    """One observer attached to one run.

    Iterate with ``async for event in subscription``. When the run's channel
    is closed (once the terminal event has been published) iteration ends
    after the events already queued. unsubscribe() ends it immediately.
    """

    def __init__(self, run_id: str, channel: BroadcastChannel, depth: int) -> None:
        self.run_id = run_id
        self._channel = channel
        self._depth = depth
        # Unbounded on purpose: depth is enforced in _deliver so the close
        # marker always fits behind the retained events.
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: Event) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._depth:
            self._queue.get_nowait()
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(
                    "Slow subscriber, dropping oldest events",
                    extra={"run": run_ref(self.run_id), "dropped": self.dropped},
                )
        self._queue.put_nowait(event)

    def _close(self, *, discard_pending: bool = False) -> None:
        if discard_pending:
            while not self._queue.empty():
                self._queue.get_nowait()
        if discard_pending or not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> Event | None:
        """Next event, or None once the subscription is closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so repeated get() calls keep returning None
            self._queue.put_nowait(_CLOSED)
            return None
        return item  # type: ignore[return-value]

    def unsubscribe(self) -> None:
        """Detach from the run. Never affects the run itself.

        Events still queued are discarded: get() returns None from now on.
        """
        self._channel.unsubscribe(self)

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: object,
    ) -> None:
        self.unsubscribe()


class _Topic:
    """Subscribers of one run."""

    __slots__ = ("subscribers", "terminal_published")

    def __init__(self) -> None:
        self.subscribers: list[Subscription] = []
        self.terminal_published = False


class BroadcastChannel:
    """run_id-keyed publish/subscribe.

    A run's topic exists from open() (at submission, before the process is
    launched) until close() (after the terminal event and cleanup).
    """

    def __init__(self, queue_depth: int = SUBSCRIBER_QUEUE_DEPTH) -> None:
        self._queue_depth = queue_depth
        self._topics: dict[str, _Topic] = {}

    def open(self, run_id: str) -> None:
        """Create the topic for a new run. Idempotent."""
        self._topics.setdefault(run_id, _Topic())

    def is_open(self, run_id: str) -> bool:
        return run_id in self._topics

    def subscriber_count(self, run_id: str) -> int:
        topic = self._topics.get(run_id)
        return len(topic.subscribers) if topic else 0

    def subscribe(self, run_id: str) -> Subscription:
        """Attach a new observer to *run_id*.

        Raises:
            RunNotFoundError: run_id unknown or its channel already closed.
        """
        topic = self._topics.get(run_id)
        if topic is None:
            raise RunNotFoundError("Run not found or already finished", context={"run": run_ref(run_id)})
        subscription = Subscription(run_id, self, self._queue_depth)
        topic.subscribers.append(subscription)
        if topic.terminal_published:
            # Joined between the terminal event and teardown: nothing left to see
            subscription._close()
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Detach *subscription* and drop its backlog. Idempotent."""
        topic = self._topics.get(subscription.run_id)
        if topic is not None and subscription in topic.subscribers:
            topic.subscribers.remove(subscription)
        subscription._close(discard_pending=True)

    def publish(self, run_id: str, event: Event) -> int:
        """Deliver *event* to every subscriber currently attached to *run_id*.

        Events published after the run's terminal event are discarded.

        Returns:
            Number of subscribers the event was delivered to.
        """
        topic = self._topics.get(run_id)
        if topic is None:
            logger.debug("Publish to closed channel discarded", extra={"run": run_ref(run_id), "event": event.type})
            return 0
        if topic.terminal_published:
            logger.warning(
                "Event after terminal event discarded",
                extra={"run": run_ref(run_id), "event": event.type},
            )
            return 0
        if event.is_terminal:
            topic.terminal_published = True
        for subscription in tuple(topic.subscribers):
            subscription._deliver(event)
        return len(topic.subscribers)

    def close(self, run_id: str) -> None:
        """Tear down the run's topic; every subscription ends after its queued events."""
        topic = self._topics.pop(run_id, None)
        if topic is None:
            return
        for subscription in topic.subscribers:
            subscription._close()
        topic.subscribers.clear()

    def close_all(self) -> None:
        for run_id in list(self._topics):
            self.close(run_id)
