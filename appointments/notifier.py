"""Per-booking event mailbox.

Each correlation id gets a NotificationChannel.  Events published while
nobody is listening are buffered; when a subscriber attaches, the buffer is
flushed to it in order and later events go straight to its sink.  A
``Close`` event ends the channel: it is delivered like any other event, then
the channel's state is dropped and the id is remembered as finished so that
stray late events are ignored.

Channels live in an explicit ChannelRegistry rather than module globals.
The registry evicts channels nobody has touched for ``ttl_seconds`` so
abandoned bookings don't accumulate.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from appointments.models.events import CLOSE, StatusEvent

log = logging.getLogger("appointments.notifier")

Sink = Callable[[StatusEvent], None]


class NotificationChannel:
    """Subscriber sink + pending queue for one correlation id."""

    def __init__(self, correlation_id: str, now: float) -> None:
        self.correlation_id = correlation_id
        self.sink: Optional[Sink] = None
        self.pending: list[StatusEvent] = []
        self.closed = False
        self.touched_at = now

    def __repr__(self) -> str:
        return (
            f"NotificationChannel({self.correlation_id!r}, "
            f"live={self.sink is not None}, pending={len(self.pending)}, "
            f"closed={self.closed})"
        )


class ChannelRegistry:
    """Correlation id → NotificationChannel, with TTL eviction."""

    def __init__(
        self,
        ttl_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._channels: dict[str, NotificationChannel] = {}
        self._finished: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._channels

    def get(self, correlation_id: str) -> Optional[NotificationChannel]:
        return self._channels.get(correlation_id)

    def get_or_create(self, correlation_id: str) -> NotificationChannel:
        now = self._clock()
        channel = self._channels.get(correlation_id)
        if channel is None:
            channel = NotificationChannel(correlation_id, now)
            self._channels[correlation_id] = channel
            log.debug("Channel created: %s", correlation_id)
        channel.touched_at = now
        return channel

    def discard(self, correlation_id: str, finished: bool = False) -> None:
        """Drop a channel; ``finished`` ids ignore any later events."""
        self._channels.pop(correlation_id, None)
        if finished:
            self._finished[correlation_id] = self._clock()
        log.debug("Channel discarded: %s (finished=%s)", correlation_id, finished)

    def is_finished(self, correlation_id: str) -> bool:
        return correlation_id in self._finished

    def evict_stale(self, now: Optional[float] = None) -> list[str]:
        """Remove channels and finished markers older than the TTL.

        Channels with a live subscriber are kept however old they are.
        """
        now = self._clock() if now is None else now
        cutoff = now - self._ttl

        stale = [
            cid for cid, ch in self._channels.items()
            if ch.sink is None and ch.touched_at < cutoff
        ]
        for cid in stale:
            del self._channels[cid]

        for cid in [cid for cid, ts in self._finished.items() if ts < cutoff]:
            del self._finished[cid]

        if stale:
            log.info("Evicted %d stale channel(s): %s", len(stale), ", ".join(stale))
        return stale


class EventNotifier:
    """Publish/subscribe front end over a ChannelRegistry.

    At most one sink is registered per id; a second ``subscribe`` replaces
    the first, which is sent ``Close``.  Delivery is synchronous and in call
    order.
    """

    def __init__(self, registry: Optional[ChannelRegistry] = None) -> None:
        self.registry = registry if registry is not None else ChannelRegistry()

    def publish(self, correlation_id: str, event: StatusEvent) -> None:
        """Deliver ``event`` to the live sink, or buffer it."""
        if self.registry.is_finished(correlation_id):
            log.warning("Dropping event for finished stream %s: %r", correlation_id, event)
            return

        channel = self.registry.get_or_create(correlation_id)
        if channel.closed:
            log.warning("Dropping event for closed stream %s: %r", correlation_id, event)
            return

        if channel.sink is not None:
            self._deliver(channel, event)
            return

        log.debug("Queueing event (no subscriber) for %s: %r", correlation_id, event)
        channel.pending.append(event)
        if event.terminal:
            channel.closed = True

    def close(self, correlation_id: str) -> None:
        """End the stream for ``correlation_id``."""
        self.publish(correlation_id, CLOSE)

    def subscribe(self, correlation_id: str, sink: Sink) -> Callable[[], None]:
        """Attach ``sink`` and flush any buffered events to it.

        Returns:
            A callable that detaches this sink.
        """
        if self.registry.is_finished(correlation_id):
            log.warning("Subscribe to finished stream %s ignored", correlation_id)
            return lambda: None

        channel = self.registry.get_or_create(correlation_id)
        displaced, channel.sink = channel.sink, sink
        if displaced is not None:
            log.info("Replacing existing subscriber for %s", correlation_id)
            _close_sink(correlation_id, displaced)

        queued, channel.pending = channel.pending, []
        log.info("Subscriber attached to %s, flushing %d queued event(s)",
                 correlation_id, len(queued))
        for event in queued:
            if not self._deliver(channel, event):
                break

        def unsubscribe() -> None:
            self._unsubscribe(correlation_id, sink)

        return unsubscribe

    def is_finished(self, correlation_id: str) -> bool:
        return self.registry.is_finished(correlation_id)

    def _unsubscribe(self, correlation_id: str, sink: Sink) -> None:
        channel = self.registry.get(correlation_id)
        if channel is None or channel.sink is not sink:
            return
        channel.sink = None
        if channel.closed:
            self.registry.discard(correlation_id, finished=True)
        log.info("Subscriber detached from %s", correlation_id)

    def _deliver(self, channel: NotificationChannel, event: StatusEvent) -> bool:
        """Push one event into the channel's sink. Returns False once the channel ends."""
        try:
            channel.sink(event)
        except Exception:
            log.exception("Subscriber for %s failed; closing stream", channel.correlation_id)
            channel.closed = True
            channel.sink = None
            self.registry.discard(channel.correlation_id, finished=True)
            return False

        if event.terminal:
            channel.closed = True
            channel.sink = None
            self.registry.discard(channel.correlation_id, finished=True)
            log.info("Stream %s closed", channel.correlation_id)
            return False
        return True


def _close_sink(correlation_id: str, sink: Sink) -> None:
    """End a replaced subscriber's stream so it doesn't wait forever."""
    try:
        sink(CLOSE)
    except Exception:
        log.exception("Replaced subscriber for %s failed on close", correlation_id)
