"""Booking tool for the chat assistant.

The LLM calls ``book_appointment`` once it has collected the customer's
details.  The arguments are validated into a BookingRequest; the booking
itself runs in the background (see ``appointments.orchestrator``).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from appointments.errors import BookingValidationError
from appointments.models.booking import BookingRequest

logger = logging.getLogger(__name__)


class BookAppointmentTool:
    """Book an appointment through the job provider.

    Parameters accepted from the LLM:

    * ``provider_name``  -- Staff member to book with (default applied if blank).
    * ``customer_name``  -- Customer's full name.
    * ``customer_phone`` -- Customer's phone number.
    * ``service_name``   -- Service being booked, e.g. ``haircut``.
    * ``start_time``     -- ISO 8601 start time with UTC offset.
    * ``notes``          -- Optional free-text notes for the business.
    """

    def __init__(self, default_provider: str = "") -> None:
        self._default_provider = default_provider

    @property
    def name(self) -> str:
        return "book_appointment"

    @property
    def description(self) -> str:
        return (
            "Book an appointment for the user via the Block API. "
            "Use this once you have all required information."
        )

    @property
    def parameters_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "provider_name": {
                    "type": "string",
                    "description": "Name of the provider booking the appointment.",
                },
                "customer_name": {
                    "type": "string",
                    "description": "Full name of the customer.",
                },
                "customer_phone": {
                    "type": "string",
                    "description": (
                        "Customer phone number in a format usable by the business, "
                        "e.g. +1-555-555-5555."
                    ),
                },
                "service_name": {
                    "type": "string",
                    "description": "The service being booked, e.g. 'haircut', 'AC repair'.",
                },
                "start_time": {
                    "type": "string",
                    "description": (
                        "Requested appointment start time in ISO 8601 format, "
                        "e.g. 2025-11-20T10:00:00-08:00."
                    ),
                },
                "notes": {
                    "type": "string",
                    "description": (
                        "Optional free-text notes to send to the business "
                        "(pet name, special instructions, etc.)."
                    ),
                },
            },
            "required": [
                "customer_name",
                "customer_phone",
                "service_name",
                "start_time",
                "provider_name",
            ],
        }

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }

    def parse_arguments(self, arguments: str | dict[str, Any] | None) -> BookingRequest:
        """Turn the tool call's JSON arguments into a BookingRequest.

        Raises:
            BookingValidationError: arguments are not JSON or fail validation.
        """
        if isinstance(arguments, dict):
            data = arguments
        else:
            try:
                data = json.loads(arguments or "{}")
            except json.JSONDecodeError as exc:
                raise BookingValidationError(f"Tool arguments are not valid JSON: {exc}") from exc

        request = BookingRequest.from_payload(data, default_provider=self._default_provider)
        logger.info("book_appointment arguments validated for %s", request.service_name)
        return request
