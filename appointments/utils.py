"""Small helpers shared across the booking layer."""

from __future__ import annotations

import secrets
import time


def redact_pii(value: str) -> str:
    """Mask PII for logging — show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


def new_correlation_id() -> str:
    """Return a fresh ``req_<millis>_<random>`` token for a booking stream."""
    return f"req_{int(time.time() * 1000)}_{secrets.token_urlsafe(9)}"
