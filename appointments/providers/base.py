"""Abstract base class for job-based booking providers.

A provider accepts a booking as an asynchronous job and exposes the job's
status for polling. Any backend (Block, a test double, ...) implements this
ABC.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from appointments.errors import PollTransportError
from appointments.models.booking import BookingRequest, ProgressEvent, parse_timestamp

log = logging.getLogger("appointments.providers")

QUEUED = "queued"
IN_PROGRESS = "in_progress"
SUCCESS = "success"
ERROR = "error"


@dataclass
class JobStatus:
    """One status read of a provider job."""

    status: str
    result: dict[str, Any] = field(default_factory=dict)
    error_message: str = ""
    events: list[ProgressEvent] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == ERROR

    @classmethod
    def from_payload(cls, data: Any) -> "JobStatus":
        """Build a JobStatus from a decoded ``/jobs/{id}`` response.

        ``recentEvents`` entries without a readable ``created_at`` are
        dropped here; their order is otherwise preserved.
        """
        if not isinstance(data, dict):
            raise PollTransportError(
                f"Job status response is not an object: {type(data).__name__}"
            )

        result = data.get("result") or {}
        if not isinstance(result, dict):
            result = {"value": result}

        events: list[ProgressEvent] = []
        for item in data.get("recentEvents") or []:
            if not isinstance(item, dict):
                continue
            ts = parse_timestamp(item.get("created_at"))
            if ts is None:
                log.debug("Skipping job event without timestamp: %s", item)
                continue
            events.append(ProgressEvent(timestamp=ts, message=item.get("message") or ""))

        return cls(
            status=str(data.get("status") or ""),
            result=result,
            error_message=data.get("errorMessage") or "",
            events=events,
            raw=data,
        )


class JobProvider(ABC):
    """Abstract job backend.

    Subclasses must implement job submission and status reads.
    """

    @abstractmethod
    async def submit(self, request: BookingRequest) -> str:
        """Submit a booking job.

        Returns:
            The provider's job id.

        Raises:
            SubmissionFailed: on transport errors, error responses or a
                response without a job id.
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> JobStatus:
        """Read the current status of a job.

        Raises:
            PollTransportError: on transport errors, error responses or an
                unparseable body.
        """

    async def aclose(self) -> None:
        """Release any network resources held by the provider."""
