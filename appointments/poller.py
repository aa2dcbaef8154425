"""Job poller — turns a submit + poll booking API into discrete status events.

The poller submits a booking, then reads the job's status on a fixed
interval until the provider reports ``success`` or ``error`` or the attempt
ceiling runs out.  Each status read may carry ``recentEvents``; the poller
keeps a timestamp watermark and forwards only events newer than it, so a
provider that repeats its recent history on every read never produces
duplicate status lines.

Nothing is retried.  A failed submission raises ``SubmissionFailed`` before
any polling starts, and a failed status read raises ``PollTransportError``
immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from appointments.models.booking import BookingRequest, BookingResult, JobHandle, ProgressEvent
from appointments.models.outcome import Failure, Success, TerminalOutcome, Timeout
from appointments.providers.base import IN_PROGRESS, QUEUED, JobProvider, JobStatus

log = logging.getLogger("appointments.poller")

ProgressCallback = Callable[[str], None]


def normalize_result(job_id: str, request: BookingRequest, status: JobStatus) -> BookingResult:
    """Shape a provider success payload into a BookingResult."""
    booking_id = status.result.get("appointmentId") or job_id
    return BookingResult(
        booking_id=str(booking_id),
        start_time=request.start_time,
        service_name=request.service_name,
        customer_name=request.customer_name,
        status="success",
        raw=status.raw,
    )


def failure_reason(status: JobStatus) -> str:
    return status.error_message or str(status.result.get("error") or "") or "Unknown error"


class JobPoller:
    """Submit a booking job and wait for its terminal outcome.

    Args:
        provider: Backend that accepts and reports on jobs.
        poll_interval: Seconds to wait between status reads.
        max_attempts: Number of status reads before giving up.
        sleep: Awaitable sleep; swapped out in tests.
    """

    def __init__(
        self,
        provider: JobProvider,
        poll_interval: float = 2.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    @property
    def timeout_seconds(self) -> float:
        return self._poll_interval * self._max_attempts

    async def aclose(self) -> None:
        await self._provider.aclose()

    async def submit(self, request: BookingRequest) -> JobHandle:
        job_id = await self._provider.submit(request)
        return JobHandle(job_id=job_id, submitted_at=datetime.now(tz=timezone.utc))

    async def submit_and_await(
        self,
        request: BookingRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TerminalOutcome:
        """Submit ``request`` and poll until success, error or timeout.

        ``on_progress`` is called synchronously once per new provider event,
        before the next status read.  It should hand the message off, not
        process it.

        Raises:
            SubmissionFailed: the provider did not accept the job.
            PollTransportError: a status read failed.
        """
        handle = await self.submit(request)
        return await self.await_job(handle, request, on_progress)

    async def await_job(
        self,
        handle: JobHandle,
        request: BookingRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TerminalOutcome:
        started = time.monotonic()
        watermark: Optional[datetime] = None

        for attempt in range(1, self._max_attempts + 1):
            log.debug("Polling attempt %d, jobId: %s", attempt, handle.job_id)
            status = await self._provider.get_job(handle.job_id)
            watermark = self._forward_new_events(status.events, watermark, on_progress)

            if status.is_success:
                log.info("Job %s succeeded after %d polls", handle.job_id, attempt)
                return Success(normalize_result(handle.job_id, request, status))

            if status.is_error:
                reason = failure_reason(status)
                log.warning("Job %s failed: %s", handle.job_id, reason)
                return Failure(reason)

            if status.status not in (QUEUED, IN_PROGRESS):
                # Unknown vocabulary is treated as still running.
                log.warning("Job %s has unrecognised status %r", handle.job_id, status.status)

            if attempt < self._max_attempts:
                await self._sleep(self._poll_interval)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        log.error(
            "Job %s timed out after %d polls (%d ms)",
            handle.job_id, self._max_attempts, elapsed_ms,
        )
        return Timeout(elapsed_ms)

    @staticmethod
    def _forward_new_events(
        events: Iterable[ProgressEvent],
        watermark: Optional[datetime],
        on_progress: Optional[ProgressCallback],
    ) -> Optional[datetime]:
        """Forward events newer than ``watermark``; return the new watermark.

        The watermark advances for every newer event, including events with
        no message, so they are never reconsidered.
        """
        for event in events:
            if watermark is not None and event.timestamp <= watermark:
                continue
            watermark = event.timestamp
            if event.message and on_progress is not None:
                log.info("Status update: %s", event.message)
                on_progress(event.message)
        return watermark
