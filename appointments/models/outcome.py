"""Terminal outcomes of a booking job. Exactly one is produced per attempt."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .booking import BookingResult


@dataclass(frozen=True)
class Success:
    result: BookingResult


@dataclass(frozen=True)
class Failure:
    reason: str


@dataclass(frozen=True)
class Timeout:
    elapsed_ms: int


TerminalOutcome = Union[Success, Failure, Timeout]
