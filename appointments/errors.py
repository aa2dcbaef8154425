"""Exception hierarchy for the booking flow.

Nothing here is retried. Every terminal condition ends up as a single
message on the booking's status stream (see ``orchestrator``).
"""

from __future__ import annotations


class BookingError(Exception):
    """Base class for all booking errors."""


class ConfigurationError(BookingError):
    """Required settings are missing."""


class BookingValidationError(BookingError):
    """The booking request is missing fields or has a bad start time.

    Raised before any correlation id is issued.
    """

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class SubmissionFailed(BookingError):
    """The provider did not accept the job or returned no job id."""


class PollTransportError(BookingError):
    """A status read failed at the network or parse level."""


class BookingFailed(BookingError):
    """The provider reported the job as failed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Booking failed: {reason}")
        self.reason = reason


class BookingTimedOut(BookingError):
    """The poll ceiling was reached without a terminal status."""

    def __init__(self, elapsed_ms: int) -> None:
        super().__init__(f"Booking timed out after {elapsed_ms / 1000:.0f} seconds")
        self.elapsed_ms = elapsed_ms
