"""Models for booking requests, provider jobs and their results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from appointments.errors import BookingValidationError


class BookingRequest(BaseModel):
    """Details needed to book one appointment.

    Accepts both the LLM tool-call field names (``customer_name``,
    ``provider_name``, ``notes``) and the public API names
    (``customerName``, ``provider``, ``startTimeISO8601``, ``optionalNote``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provider: str = Field(validation_alias=AliasChoices("provider", "provider_name"))
    customer_name: str = Field(validation_alias=AliasChoices("customer_name", "customerName"))
    customer_phone: str = Field(validation_alias=AliasChoices("customer_phone", "customerPhone"))
    service_name: str = Field(validation_alias=AliasChoices("service_name", "serviceName"))
    start_time: str = Field(
        validation_alias=AliasChoices("start_time", "startTimeISO8601", "startTime")
    )
    notes: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("notes", "optionalNote", "note")
    )

    @field_validator("provider", "customer_name", "customer_phone", "service_name", "start_time")
    @classmethod
    def _required(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("start_time")
    @classmethod
    def _has_offset(cls, value: str) -> str:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise ValueError("must be an ISO 8601 timestamp, e.g. 2025-11-20T10:00:00-08:00")
        if parsed.tzinfo is None:
            raise ValueError("must include a UTC offset, e.g. -08:00")
        return value

    @field_validator("notes")
    @classmethod
    def _blank_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @classmethod
    def from_payload(cls, data: dict[str, Any], default_provider: str = "") -> "BookingRequest":
        """Validate raw input, filling in the default provider when blank.

        Raises:
            BookingValidationError: when a required field is missing or the
                start time has no offset.
        """
        if not isinstance(data, dict):
            raise BookingValidationError("Booking request must be a JSON object")

        data = dict(data)
        provider = data.get("provider") or data.get("provider_name") or ""
        if not str(provider).strip() and default_provider:
            data.pop("provider_name", None)
            data["provider"] = default_provider

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            details = [
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in exc.errors()
            ]
            fields = ", ".join(d["field"] for d in details)
            raise BookingValidationError(f"Invalid booking request: {fields}", details) from exc

    @property
    def first_name(self) -> str:
        return self.customer_name.split()[0]

    @property
    def last_name(self) -> str:
        return " ".join(self.customer_name.split()[1:])


class BookingResult(BaseModel):
    """Normalized result of a successful booking job."""

    booking_id: str
    start_time: str
    service_name: str
    customer_name: str
    status: str = "success"
    raw: dict[str, Any] = {}


@dataclass(frozen=True)
class JobHandle:
    """A job accepted by the provider."""

    job_id: str
    submitted_at: datetime


@dataclass(frozen=True)
class ProgressEvent:
    """One entry from a job's ``recentEvents`` list."""

    timestamp: datetime
    message: str = ""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a provider timestamp (ISO string or epoch seconds).

    Naive values are taken as UTC. Returns None when the value can't be read.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None
