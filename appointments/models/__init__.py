"""Data models for the booking layer."""

from .booking import BookingRequest, BookingResult, JobHandle, ProgressEvent
from .events import CLOSE, CONNECTED, Close, Connected, Error, Final, Progress, StatusEvent
from .outcome import Failure, Success, TerminalOutcome, Timeout

__all__ = [
    "BookingRequest",
    "BookingResult",
    "JobHandle",
    "ProgressEvent",
    "StatusEvent",
    "Progress",
    "Final",
    "Error",
    "Connected",
    "Close",
    "CONNECTED",
    "CLOSE",
    "TerminalOutcome",
    "Success",
    "Failure",
    "Timeout",
]
