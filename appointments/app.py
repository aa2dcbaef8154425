"""FastAPI application — chat, booking submission and status streaming.

Endpoints:

  POST /api/chat                   Chat turn; may start a booking
  POST /api/bookings               Start a booking directly from form fields
  GET  /api/status/{request_id}    Server-sent events for one booking
  GET  /health                     Health check

The booking flow:
  1. A booking is submitted (by the chat tool call or /api/bookings)
  2. The provider accepts the job and we return a correlation id at once
  3. The browser opens GET /api/status/{id}; events buffered so far are
     flushed, then progress streams live
  4. The stream ends with a final (or error) message and {"done": true}
"""

from __future__ import annotations

# Load .env into os.environ early so OPENAI_API_KEY is visible to the SDK.
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

# Configure root logger early so all app loggers have a handler when run
# via `uvicorn appointments.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from appointments.assistant import ChatAssistant
from appointments.config import settings
from appointments.errors import BookingValidationError, ConfigurationError, SubmissionFailed
from appointments.models.booking import BookingRequest
from appointments.notifier import ChannelRegistry, EventNotifier
from appointments.orchestrator import PLACEHOLDER_REPLY, BookingOrchestrator
from appointments.poller import JobPoller
from appointments.providers.block import BlockJobProvider
from appointments.sse import stream_status

log = logging.getLogger("appointments.app")

_START_TIME = time.time()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_app(
    orchestrator: Optional[BookingOrchestrator] = None,
    notifier: Optional[EventNotifier] = None,
    assistant: Optional[ChatAssistant] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not passed in are built from ``settings``.  If the booking
    provider isn't configured the app still starts; booking endpoints then
    answer 503.
    """
    notifier = notifier or EventNotifier(ChannelRegistry(ttl_seconds=settings.channel_ttl_seconds))
    if orchestrator is None:
        orchestrator = _create_orchestrator(notifier)
    assistant = assistant or ChatAssistant(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        default_provider=settings.default_provider_name,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(
            _sweep_channels(notifier.registry, settings.channel_sweep_interval_seconds),
            name="channel-sweeper",
        )
        try:
            yield
        finally:
            sweeper.cancel()
            if orchestrator is not None:
                await orchestrator.shutdown()
                await orchestrator.aclose()

    app = FastAPI(
        title="Appointment Booking Relay",
        description="Chat-driven appointment booking with live job status over SSE",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.notifier = notifier
    app.state.orchestrator = orchestrator
    app.state.assistant = assistant

    @app.exception_handler(BookingValidationError)
    async def booking_validation_error(request: Request, exc: BookingValidationError) -> JSONResponse:
        return JSONResponse({"error": str(exc), "details": exc.details}, status_code=400)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check — confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok" if orchestrator is not None else "degraded",
            "uptime": uptime,
            "active_bookings": orchestrator.active_count if orchestrator else 0,
            "open_channels": len(notifier.registry),
        })

    # ── Booking submission ─────────────────────────────────────

    @app.post("/api/bookings")
    async def submit_booking(request: Request) -> JSONResponse:
        """Start a booking and return its correlation id without waiting for it."""
        if orchestrator is None:
            return _not_configured()

        body = await _json_body(request)
        booking = BookingRequest.from_payload(body, default_provider=settings.default_provider_name)

        try:
            correlation_id = await orchestrator.start_booking(booking)
        except SubmissionFailed as e:
            log.error("Booking submission failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=502)

        return JSONResponse(
            {"correlationId": correlation_id, "reply": PLACEHOLDER_REPLY},
            status_code=202,
        )

    # ── Status stream (SSE) ────────────────────────────────────

    @app.get("/api/status/{request_id}")
    async def booking_status(request_id: str):
        """Stream a booking's progress as server-sent events."""
        if notifier.is_finished(request_id):
            return JSONResponse({"error": "Status stream already completed"}, status_code=404)
        log.info("Status stream opened for %s", request_id)
        return StreamingResponse(
            stream_status(notifier, request_id),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    # ── Chat ───────────────────────────────────────────────────

    @app.post("/api/chat")
    async def chat(request: Request) -> JSONResponse:
        """One chat turn. Booking results arrive later on the status stream."""
        body = await _json_body(request)
        message = body.get("message")
        if not message:
            return JSONResponse({"error": "Missing 'message' in request body"}, status_code=400)
        if orchestrator is None:
            return _not_configured()

        try:
            reply = await assistant.chat(message, body.get("history"), orchestrator)
        except Exception as e:
            log.error("Error in /api/chat: %s", e, exc_info=True)
            return JSONResponse({"error": str(e) or "Unknown server error"}, status_code=500)

        return JSONResponse(reply.to_dict())

    return app


# ── Helper functions ──────────────────────────────────────────────

def _create_orchestrator(notifier: EventNotifier) -> BookingOrchestrator | None:
    """Build the orchestrator from settings, or None if the provider isn't configured."""
    try:
        for warning in settings.validate_startup():
            log.warning(warning)
        provider = BlockJobProvider(
            base_url=settings.block_api_base_url,
            api_key=settings.block_api_key,
            connection_id=settings.connection_id,
            timeout=settings.http_timeout_seconds,
        )
    except ConfigurationError as e:
        log.error("Booking provider not configured: %s", e)
        return None

    poller = JobPoller(
        provider,
        poll_interval=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
    )
    return BookingOrchestrator(
        poller,
        notifier,
        close_grace_seconds=settings.close_grace_seconds,
    )


async def _sweep_channels(registry: ChannelRegistry, interval: float) -> None:
    """Periodically evict channels for abandoned bookings."""
    while True:
        await asyncio.sleep(interval)
        registry.evict_stale()


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise BookingValidationError("Request body must be JSON")
    if not isinstance(body, dict):
        raise BookingValidationError("Request body must be a JSON object")
    return body


def _not_configured() -> JSONResponse:
    return JSONResponse(
        {"error": "Booking provider is not configured"},
        status_code=503,
    )


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "appointments.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
