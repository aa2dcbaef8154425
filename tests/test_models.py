"""Tests for booking models, timestamp parsing and job status parsing."""

import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from appointments.errors import BookingValidationError, PollTransportError
from appointments.models.booking import BookingRequest, parse_timestamp
from appointments.providers.base import JobStatus


def _payload(**overrides):
    data = {
        "customer_name": "Jane Doe",
        "customer_phone": "+12065551212",
        "service_name": "Haircut",
        "start_time": "2025-11-15T14:00:00-08:00",
        "provider_name": "Carl Morris",
    }
    data.update(overrides)
    return data


# ── BookingRequest ──────────────────────────────────────────────────


class TestBookingRequest:
    def test_tool_call_field_names(self):
        req = BookingRequest.from_payload(_payload(notes="Bring photo"))
        assert req.provider == "Carl Morris"
        assert req.customer_name == "Jane Doe"
        assert req.notes == "Bring photo"

    def test_api_field_names(self, booking_request):
        assert booking_request.customer_phone == "+12065551212"
        assert booking_request.start_time == "2025-11-15T14:00:00-08:00"
        assert booking_request.notes is None

    def test_default_provider_applied_when_blank(self):
        req = BookingRequest.from_payload(_payload(provider_name="  "), default_provider="Ana")
        assert req.provider == "Ana"

    def test_default_provider_applied_when_missing(self):
        data = _payload()
        del data["provider_name"]
        req = BookingRequest.from_payload(data, default_provider="Ana")
        assert req.provider == "Ana"

    def test_explicit_provider_wins(self):
        req = BookingRequest.from_payload(_payload(), default_provider="Ana")
        assert req.provider == "Carl Morris"

    def test_missing_provider_without_default(self):
        data = _payload()
        del data["provider_name"]
        with pytest.raises(BookingValidationError) as exc_info:
            BookingRequest.from_payload(data)
        assert any("provider" in d["field"] for d in exc_info.value.details)

    @pytest.mark.parametrize("field", ["customer_name", "customer_phone", "service_name", "start_time"])
    def test_required_fields(self, field):
        data = _payload()
        del data[field]
        with pytest.raises(BookingValidationError):
            BookingRequest.from_payload(data)

    def test_blank_required_field(self):
        with pytest.raises(BookingValidationError):
            BookingRequest.from_payload(_payload(customer_name="   "))

    def test_start_time_without_offset_rejected(self):
        with pytest.raises(BookingValidationError) as exc_info:
            BookingRequest.from_payload(_payload(start_time="2025-11-15T14:00:00"))
        assert "offset" in exc_info.value.details[0]["error"]

    def test_start_time_garbage_rejected(self):
        with pytest.raises(BookingValidationError):
            BookingRequest.from_payload(_payload(start_time="next tuesday at 3"))

    def test_utc_z_suffix_accepted(self):
        req = BookingRequest.from_payload(_payload(start_time="2025-11-15T22:00:00Z"))
        assert req.start_time == "2025-11-15T22:00:00Z"

    def test_non_object_rejected(self):
        with pytest.raises(BookingValidationError):
            BookingRequest.from_payload(["not", "a", "dict"])

    def test_blank_notes_become_none(self):
        req = BookingRequest.from_payload(_payload(notes="   "))
        assert req.notes is None

    def test_name_split(self):
        req = BookingRequest.from_payload(_payload(customer_name="Mary Ann  van Dyke"))
        assert req.first_name == "Mary"
        assert req.last_name == "Ann van Dyke"

    def test_single_name(self):
        req = BookingRequest.from_payload(_payload(customer_name="Cher"))
        assert req.first_name == "Cher"
        assert req.last_name == ""

    def test_immutable(self, booking_request):
        with pytest.raises(Exception):
            booking_request.customer_name = "Someone Else"


# ── Timestamps ──────────────────────────────────────────────────────


class TestParseTimestamp:
    def test_iso_with_offset(self):
        ts = parse_timestamp("2025-11-15T14:00:00-08:00")
        assert ts == datetime(2025, 11, 15, 22, 0, tzinfo=timezone.utc)

    def test_z_suffix(self):
        ts = parse_timestamp("2025-11-15T22:00:00.123Z")
        assert ts.tzinfo is not None
        assert ts.microsecond == 123000

    def test_naive_is_utc(self):
        assert parse_timestamp("2025-11-15T22:00:00") == datetime(2025, 11, 15, 22, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, {"a": 1}])
    def test_unreadable(self, value):
        assert parse_timestamp(value) is None

    @pytest.mark.parametrize("value", [1e20, -1e20, float("inf"), float("nan")])
    def test_out_of_range_epoch(self, value):
        assert parse_timestamp(value) is None


# ── JobStatus ───────────────────────────────────────────────────────


class TestJobStatus:
    def test_full_payload(self):
        status = JobStatus.from_payload({
            "status": "in_progress",
            "recentEvents": [
                {"created_at": "2025-11-15T10:00:00Z", "message": "Queued"},
                {"created_at": "2025-11-15T10:00:01Z", "message": "Checking availability"},
            ],
        })
        assert status.status == "in_progress"
        assert [e.message for e in status.events] == ["Queued", "Checking availability"]
        assert not status.is_success and not status.is_error

    def test_success_result(self):
        status = JobStatus.from_payload({"status": "success", "result": {"appointmentId": "appt_1"}})
        assert status.is_success
        assert status.result == {"appointmentId": "appt_1"}

    def test_error_message(self):
        status = JobStatus.from_payload({"status": "error", "errorMessage": "Slot taken"})
        assert status.is_error
        assert status.error_message == "Slot taken"

    def test_events_without_timestamp_dropped(self):
        status = JobStatus.from_payload({
            "status": "queued",
            "recentEvents": [{"message": "no time"}, "junk", {"created_at": 5, "message": "ok"}],
        })
        assert [e.message for e in status.events] == ["ok"]

    def test_events_with_out_of_range_epoch_dropped(self):
        status = JobStatus.from_payload({
            "status": "queued",
            "recentEvents": [{"created_at": 10**20, "message": "far future"}, {"created_at": 5, "message": "ok"}],
        })
        assert [e.message for e in status.events] == ["ok"]

    def test_missing_message_is_empty(self):
        status = JobStatus.from_payload({
            "status": "queued",
            "recentEvents": [{"created_at": "2025-11-15T10:00:00Z"}],
        })
        assert status.events[0].message == ""

    def test_non_dict_result_wrapped(self):
        status = JobStatus.from_payload({"status": "success", "result": "ok"})
        assert status.result == {"value": "ok"}

    def test_non_object_payload(self):
        with pytest.raises(PollTransportError):
            JobStatus.from_payload(["status", "success"])


# ── Helpers ─────────────────────────────────────────────────────────


class TestHelpers:
    def test_redacts_phone(self):
        from appointments.utils import redact_pii
        assert redact_pii("+12065551212") == "+12***12"

    def test_redacts_short_value(self):
        from appointments.utils import redact_pii
        assert redact_pii("abc") == "***"
        assert redact_pii("") == "***"

    def test_correlation_ids_unique(self):
        from appointments.utils import new_correlation_id
        ids = {new_correlation_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(i.startswith("req_") for i in ids)
