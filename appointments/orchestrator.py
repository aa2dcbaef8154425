"""Booking orchestrator — runs a booking job in the background and reports on it.

``start_booking`` submits the job, allocates a correlation id, spawns an
asyncio task that polls the job and returns the id straight away.  The task
forwards provider progress to the EventNotifier and, whatever happens,
finishes with exactly one terminal event (``Final`` or ``Error``) followed
by ``Close``::

    Progress* → (Final | Error) → Close

Confirmation text for a successful booking comes from a ``Confirmer``
callable, normally the chat assistant.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from appointments.errors import BookingError, BookingFailed, BookingTimedOut
from appointments.models.booking import BookingRequest, BookingResult, JobHandle
from appointments.models.events import Error, Final, Progress, StatusEvent
from appointments.models.outcome import Failure, Success, TerminalOutcome, Timeout
from appointments.notifier import EventNotifier
from appointments.poller import JobPoller
from appointments.utils import new_correlation_id, redact_pii

log = logging.getLogger("appointments.orchestrator")

Confirmer = Callable[[BookingResult], Awaitable[str]]

DEFAULT_CONFIRMATION = "Booking completed."
PLACEHOLDER_REPLY = "I'm processing your booking request..."


def outcome_error(outcome: TerminalOutcome) -> BookingError:
    """The exception a non-success outcome stands for."""
    if isinstance(outcome, Failure):
        return BookingFailed(outcome.reason)
    if isinstance(outcome, Timeout):
        return BookingTimedOut(outcome.elapsed_ms)
    raise TypeError(f"Not a failure outcome: {outcome!r}")


class BookingOrchestrator:
    """Bridges booking requests to the JobPoller / EventNotifier pair."""

    def __init__(
        self,
        poller: JobPoller,
        notifier: EventNotifier,
        confirmer: Optional[Confirmer] = None,
        close_grace_seconds: float = 0.1,
    ) -> None:
        self._poller = poller
        self._notifier = notifier
        self._confirmer = confirmer
        self._close_grace = close_grace_seconds
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def start_booking(
        self,
        request: BookingRequest,
        confirmer: Optional[Confirmer] = None,
    ) -> str:
        """Submit ``request`` and return the correlation id for its status stream.

        Only the provider's submission is awaited; polling runs in a
        background task.

        Raises:
            SubmissionFailed: the provider did not accept the job.  No
                correlation id is issued and no channel is opened.
        """
        handle = await self._poller.submit(request)
        correlation_id = new_correlation_id()
        log.info(
            "Booking %s started (job %s): %s for %s at %s with %s",
            correlation_id, handle.job_id, request.service_name,
            redact_pii(request.customer_phone), request.start_time, request.provider,
        )
        task = asyncio.create_task(
            self._run(correlation_id, handle, request, confirmer or self._confirmer),
            name=f"booking-{correlation_id}",
        )
        self._tasks[correlation_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(correlation_id, None))
        return correlation_id

    async def wait(self, correlation_id: str) -> None:
        """Wait for a booking task to finish (no-op if it already has)."""
        task = self._tasks.get(correlation_id)
        if task is not None:
            await task

    async def shutdown(self) -> None:
        """Cancel and drain any in-flight bookings."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            log.info("Cancelled %d in-flight booking(s)", len(tasks))

    async def aclose(self) -> None:
        await self._poller.aclose()

    async def _run(
        self,
        correlation_id: str,
        handle: JobHandle,
        request: BookingRequest,
        confirmer: Optional[Confirmer],
    ) -> None:
        def on_progress(message: str) -> None:
            self._notifier.publish(correlation_id, Progress(message))

        try:
            outcome = await self._poller.await_job(handle, request, on_progress)
            if isinstance(outcome, Success):
                text = await self._confirmation_text(correlation_id, outcome.result, confirmer)
                terminal: StatusEvent = Final(text)
            else:
                raise outcome_error(outcome)
        except asyncio.CancelledError:
            log.warning("Booking %s cancelled", correlation_id)
            await self._finish(correlation_id, Error("Booking was cancelled"))
            raise
        except BookingError as exc:
            log.error("Booking %s error: %s", correlation_id, exc)
            await self._finish(correlation_id, Error(str(exc) or "Failed to book appointment"))
            return
        except Exception:
            log.exception("Booking %s crashed", correlation_id)
            await self._finish(correlation_id, Error("Failed to book appointment"))
            return

        await self._finish(correlation_id, terminal)

    async def _confirmation_text(
        self,
        correlation_id: str,
        result: BookingResult,
        confirmer: Optional[Confirmer],
    ) -> str:
        if confirmer is None:
            return DEFAULT_CONFIRMATION
        try:
            text = await confirmer(result)
        except Exception:
            log.exception("Confirmation text for %s failed; using default", correlation_id)
            return DEFAULT_CONFIRMATION
        return (text or "").strip() or DEFAULT_CONFIRMATION

    async def _finish(self, correlation_id: str, terminal: StatusEvent) -> None:
        """Publish the one terminal event, then close after the grace delay."""
        self._notifier.publish(correlation_id, terminal)
        try:
            await asyncio.sleep(self._close_grace)
        finally:
            self._notifier.close(correlation_id)
