"""Status events delivered on a booking's stream.

Internally every event is one of these variants. Only ``appointments.sse``
turns them into the prefixed wire text the browser understands.
"""

from __future__ import annotations

from dataclasses import dataclass


class StatusEvent:
    """Base class for everything published to a notification channel."""

    terminal = False


@dataclass(frozen=True)
class Progress(StatusEvent):
    """A status line from the provider, e.g. "Checking availability"."""

    message: str


@dataclass(frozen=True)
class Final(StatusEvent):
    """Confirmation text shown once the booking succeeds."""

    text: str


@dataclass(frozen=True)
class Error(StatusEvent):
    """Failure or timeout text shown instead of a confirmation."""

    text: str


@dataclass(frozen=True)
class Connected(StatusEvent):
    """Heartbeat sent when a subscriber attaches. Not a progress event."""


@dataclass(frozen=True)
class Close(StatusEvent):
    """No more events for this booking."""

    terminal = True


CONNECTED = Connected()
CLOSE = Close()
