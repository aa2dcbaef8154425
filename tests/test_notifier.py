"""Tests for the per-booking event mailbox and its channel registry."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from appointments.models.events import CLOSE, Error, Final, Progress
from appointments.notifier import ChannelRegistry, EventNotifier


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier(clock):
    return EventNotifier(ChannelRegistry(ttl_seconds=60, clock=clock))


# ── Publish / subscribe ─────────────────────────────────────────────


class TestDelivery:
    def test_live_delivery(self, notifier):
        got = []
        notifier.subscribe("req_1", got.append)
        notifier.publish("req_1", Progress("one"))
        notifier.publish("req_1", Progress("two"))
        assert got == [Progress("one"), Progress("two")]

    def test_buffered_events_flushed_in_order(self, notifier):
        for i in range(5):
            notifier.publish("req_1", Progress(f"m{i}"))
        got = []
        notifier.subscribe("req_1", got.append)
        notifier.publish("req_1", Progress("live"))
        assert [e.message for e in got] == ["m0", "m1", "m2", "m3", "m4", "live"]

    def test_queue_emptied_after_flush(self, notifier):
        notifier.publish("req_1", Progress("queued"))
        notifier.subscribe("req_1", lambda e: None)
        assert notifier.registry.get("req_1").pending == []

    def test_channels_are_independent(self, notifier):
        a, b = [], []
        notifier.subscribe("req_a", a.append)
        notifier.publish("req_b", Progress("for b"))
        notifier.publish("req_a", Progress("for a"))
        notifier.subscribe("req_b", b.append)
        assert a == [Progress("for a")]
        assert b == [Progress("for b")]

    def test_subscribe_creates_channel(self, notifier):
        notifier.subscribe("req_1", lambda e: None)
        assert "req_1" in notifier.registry


# ── Closing ─────────────────────────────────────────────────────────


class TestClose:
    def test_close_delivered_once_and_channel_removed(self, notifier):
        got = []
        notifier.subscribe("req_1", got.append)
        notifier.publish("req_1", Final("All set"))
        notifier.close("req_1")
        notifier.close("req_1")
        assert got == [Final("All set"), CLOSE]
        assert "req_1" not in notifier.registry
        assert notifier.is_finished("req_1")

    def test_stray_event_after_close_dropped(self, notifier):
        got = []
        notifier.subscribe("req_1", got.append)
        notifier.close("req_1")
        notifier.publish("req_1", Progress("late"))
        assert got == [CLOSE]
        assert "req_1" not in notifier.registry

    def test_close_without_subscriber_waits_for_one(self, notifier):
        notifier.publish("req_1", Progress("a"))
        notifier.publish("req_1", Error("Booking failed: nope"))
        notifier.close("req_1")
        notifier.publish("req_1", Progress("stray"))

        got = []
        notifier.subscribe("req_1", got.append)
        assert got == [Progress("a"), Error("Booking failed: nope"), CLOSE]
        assert "req_1" not in notifier.registry

    def test_subscribe_after_finish_is_ignored(self, notifier):
        notifier.subscribe("req_1", lambda e: None)
        notifier.close("req_1")
        got = []
        unsubscribe = notifier.subscribe("req_1", got.append)
        unsubscribe()
        assert got == []
        assert "req_1" not in notifier.registry


# ── Subscriber lifecycle ────────────────────────────────────────────


class TestSubscribers:
    def test_second_subscriber_replaces_first(self, notifier):
        first, second = [], []
        notifier.subscribe("req_1", first.append)
        notifier.subscribe("req_1", second.append)
        notifier.publish("req_1", Progress("x"))
        assert first == [CLOSE]
        assert second == [Progress("x")]

    def test_displaced_sink_failure_is_absorbed(self, notifier):
        def broken(event):
            raise ConnectionResetError("client went away")

        second = []
        notifier.subscribe("req_1", broken)
        notifier.subscribe("req_1", second.append)
        notifier.publish("req_1", Progress("x"))
        assert second == [Progress("x")]

    def test_stale_unsubscribe_keeps_replacement(self, notifier):
        first, second = [], []
        unsub_first = notifier.subscribe("req_1", first.append)
        notifier.subscribe("req_1", second.append)
        unsub_first()
        notifier.publish("req_1", Progress("x"))
        assert second == [Progress("x")]

    def test_unsubscribe_resumes_buffering(self, notifier):
        first = []
        unsubscribe = notifier.subscribe("req_1", first.append)
        unsubscribe()
        notifier.publish("req_1", Progress("while away"))
        assert first == []

        again = []
        notifier.subscribe("req_1", again.append)
        assert again == [Progress("while away")]

    def test_failing_sink_does_not_raise(self, notifier):
        def broken(event):
            raise ConnectionResetError("client went away")

        notifier.subscribe("req_1", broken)
        notifier.publish("req_1", Progress("x"))  # must not raise
        notifier.publish("req_1", Progress("y"))
        notifier.close("req_1")
        assert "req_1" not in notifier.registry
        assert notifier.is_finished("req_1")

    def test_failing_sink_during_flush(self, notifier):
        calls = []

        def broken(event):
            calls.append(event)
            raise RuntimeError("dead")

        notifier.publish("req_1", Progress("a"))
        notifier.publish("req_1", Progress("b"))
        notifier.subscribe("req_1", broken)
        assert calls == [Progress("a")]
        assert "req_1" not in notifier.registry


# ── Registry / TTL eviction ─────────────────────────────────────────


class TestRegistry:
    def test_len_and_contains(self, notifier):
        notifier.publish("req_1", Progress("a"))
        notifier.publish("req_2", Progress("b"))
        assert len(notifier.registry) == 2
        assert "req_1" in notifier.registry
        assert "req_3" not in notifier.registry

    def test_evicts_abandoned_channels(self, notifier, clock):
        notifier.publish("req_old", Progress("nobody listening"))
        clock.now += 30
        notifier.publish("req_new", Progress("recent"))
        clock.now += 45

        evicted = notifier.registry.evict_stale()
        assert evicted == ["req_old"]
        assert "req_old" not in notifier.registry
        assert "req_new" in notifier.registry

    def test_publish_refreshes_ttl(self, notifier, clock):
        notifier.publish("req_1", Progress("a"))
        clock.now += 50
        notifier.publish("req_1", Progress("b"))
        clock.now += 50
        assert notifier.registry.evict_stale() == []

    def test_finished_markers_expire(self, notifier, clock):
        notifier.subscribe("req_1", lambda e: None)
        notifier.close("req_1")
        assert notifier.is_finished("req_1")
        clock.now += 61
        notifier.registry.evict_stale()
        assert not notifier.is_finished("req_1")

    def test_default_registry(self):
        assert len(EventNotifier().registry) == 0

    def test_injected_registry_is_used(self, clock):
        registry = ChannelRegistry(ttl_seconds=5, clock=clock)
        assert EventNotifier(registry).registry is registry

    def test_live_channel_survives_sweep(self, notifier, clock):
        got = []
        notifier.subscribe("req_1", got.append)
        notifier.publish("req_1", Progress("started"))
        clock.now += 61

        assert notifier.registry.evict_stale() == []
        notifier.publish("req_1", Final("done"))
        notifier.close("req_1")
        assert got == [Progress("started"), Final("done"), CLOSE]

    def test_detached_channel_evicted_after_ttl(self, notifier, clock):
        unsubscribe = notifier.subscribe("req_1", lambda e: None)
        unsubscribe()
        clock.now += 61
        assert notifier.registry.evict_stale() == ["req_1"]
