"""Shared fakes for booking tests."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from appointments.errors import SubmissionFailed
from appointments.models.booking import BookingRequest
from appointments.providers.base import JobProvider, JobStatus


class ScriptedProvider(JobProvider):
    """JobProvider that plays back a fixed list of status payloads.

    Entries may be dicts (decoded job responses) or exceptions to raise.
    Once the script runs out, the last entry repeats.
    """

    def __init__(self, statuses=None, job_id="job_1", submit_error=None):
        self.statuses = list(statuses or [{"status": "in_progress"}])
        self.job_id = job_id
        self.submit_error = submit_error
        self.submitted: list[BookingRequest] = []
        self.polls = 0
        self.closed = False

    async def submit(self, request):
        self.submitted.append(request)
        if self.submit_error is not None:
            raise self.submit_error
        if not self.job_id:
            raise SubmissionFailed("Block API did not return a jobId")
        return self.job_id

    async def get_job(self, job_id):
        assert job_id == self.job_id
        index = min(self.polls, len(self.statuses) - 1)
        self.polls += 1
        entry = self.statuses[index]
        if isinstance(entry, Exception):
            raise entry
        return JobStatus.from_payload(entry)

    async def aclose(self):
        self.closed = True


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def booking_request():
    return BookingRequest.from_payload({
        "customerName": "Jane Doe",
        "customerPhone": "+12065551212",
        "serviceName": "Haircut",
        "startTimeISO8601": "2025-11-15T14:00:00-08:00",
        "provider": "Carl Morris",
    })


@pytest.fixture
def scripted_provider():
    return ScriptedProvider


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
