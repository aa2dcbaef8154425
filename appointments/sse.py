"""Server-sent events encoding for booking status streams.

Wire format (one JSON object per ``data:`` line)::

    {"message": "Connected"}            heartbeat on open, not progress
    {"message": "<status text>"}        Progress
    {"message": "final:<text>"}         Final
    {"message": "Error: <text>"}        Error
    {"done": true}                      Close; the client disconnects
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

from appointments.models.events import (
    CLOSE,
    CONNECTED,
    Close,
    Connected,
    Error,
    Final,
    Progress,
    StatusEvent,
)
from appointments.notifier import EventNotifier

log = logging.getLogger("appointments.sse")

FINAL_PREFIX = "final:"
ERROR_PREFIX = "Error: "
CONNECTED_MESSAGE = "Connected"


def encode_event(event: StatusEvent) -> dict:
    """Map a StatusEvent to its wire payload."""
    if isinstance(event, Progress):
        return {"message": event.message}
    if isinstance(event, Final):
        return {"message": FINAL_PREFIX + event.text}
    if isinstance(event, Error):
        return {"message": ERROR_PREFIX + event.text}
    if isinstance(event, Connected):
        return {"message": CONNECTED_MESSAGE}
    if isinstance(event, Close):
        return {"done": True}
    raise TypeError(f"Unknown status event: {event!r}")


def format_sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def stream_status(notifier: EventNotifier, correlation_id: str) -> AsyncIterator[str]:
    """Yield SSE frames for one booking until its stream closes.

    Buffered events are flushed on subscribe; the subscription is dropped
    when the client disconnects (generator closed or cancelled).  A stream
    that has already finished, or whose subscriber is replaced, ends with
    ``{"done": true}``.
    """
    queue: asyncio.Queue[StatusEvent] = asyncio.Queue()

    yield format_sse(encode_event(CONNECTED))

    if notifier.is_finished(correlation_id):
        # Finished while the response was starting; nothing will arrive.
        log.info("Status stream %s already complete", correlation_id)
        yield format_sse(encode_event(CLOSE))
        return

    unsubscribe = notifier.subscribe(correlation_id, queue.put_nowait)
    try:
        while True:
            event = await queue.get()
            yield format_sse(encode_event(event))
            if isinstance(event, Close):
                log.info("Status stream %s complete", correlation_id)
                break
    finally:
        unsubscribe()
