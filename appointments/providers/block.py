"""Block API job provider.

Bookings are submitted to ``POST /v1/actions`` and tracked through
``GET /v1/jobs/{jobId}``. Both calls use a bearer API key.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from appointments.errors import ConfigurationError, PollTransportError, SubmissionFailed
from appointments.models.booking import BookingRequest
from appointments.providers.base import JobProvider, JobStatus
from appointments.utils import redact_pii

log = logging.getLogger("appointments.providers.block")


class BlockJobProvider(JobProvider):
    """Submit bookings as Block API ``BookAppointment`` actions."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        connection_id: str,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url or not api_key or not connection_id:
            raise ConfigurationError(
                "BLOCK_API_BASE_URL, BLOCK_API_KEY, or CONNECTION_ID is not configured"
            )
        self._base_url = base_url.rstrip("/")
        self._connection_id = connection_id
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, request: BookingRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "datetime": request.start_time,
            "provider": request.provider,
            "service": request.service_name,
            "customer": {
                "firstName": request.first_name,
                "lastName": request.last_name,
                "phone": request.customer_phone,
            },
        }
        if request.notes:
            payload["note"] = request.notes
        return {
            "action": "BookAppointment",
            "connectionId": self._connection_id,
            "payload": payload,
        }

    async def submit(self, request: BookingRequest) -> str:
        url = f"{self._base_url}/v1/actions"
        body = self.build_payload(request)
        log.info(
            "Submitting BookAppointment to %s (service=%s, phone=%s)",
            url, request.service_name, redact_pii(request.customer_phone),
        )

        try:
            resp = await self._client.post(url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise SubmissionFailed(f"Failed to connect to Block API: {exc}") from exc

        if resp.is_error:
            log.error("Block API error response: %s %s", resp.status_code, resp.text)
            raise SubmissionFailed(
                f"Block API error ({resp.status_code}): {resp.text or resp.reason_phrase}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            log.error("Unparseable Block API response: %s", resp.text)
            raise SubmissionFailed(f"Failed to parse Block API response: {exc}") from exc

        job_id = data.get("jobId") if isinstance(data, dict) else None
        if not job_id:
            log.error("No jobId in Block API response: %s", data)
            raise SubmissionFailed("Block API did not return a jobId")

        log.info("Job created, jobId: %s", job_id)
        return str(job_id)

    async def get_job(self, job_id: str) -> JobStatus:
        url = f"{self._base_url}/v1/jobs/{job_id}"

        try:
            resp = await self._client.get(url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise PollTransportError(f"Failed to poll job status: {exc}") from exc

        if resp.is_error:
            log.error("Job polling error response: %s %s", resp.status_code, resp.text)
            raise PollTransportError(
                f"Block API job polling error ({resp.status_code}): "
                f"{resp.text or resp.reason_phrase}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            log.error("Unparseable job status response: %s", resp.text)
            raise PollTransportError(f"Failed to parse job status response: {exc}") from exc

        return JobStatus.from_payload(data)

    async def aclose(self) -> None:
        await self._client.aclose()
