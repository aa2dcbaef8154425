"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

from appointments.errors import ConfigurationError

log = logging.getLogger("appointments.config")


class Settings(BaseSettings):
    # LLM
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Block API (booking provider)
    block_api_base_url: str = ""
    block_api_key: str = ""
    connection_id: str = ""
    default_provider_name: str = ""
    http_timeout_seconds: float = 15.0

    # Job polling
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 60

    # Status streaming
    close_grace_seconds: float = 0.1
    channel_ttl_seconds: float = 900.0
    channel_sweep_interval_seconds: float = 60.0

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk-...", "your-api-key", "https://api.example.com"}

        missing = [
            name.upper()
            for name in ("block_api_base_url", "block_api_key", "connection_id")
            if not getattr(self, name) or getattr(self, name) in _placeholders
        ]
        if missing:
            raise ConfigurationError(
                f"{', '.join(missing)} is not configured. "
                "Set it in .env to reach the booking provider."
            )

        if not self.openai_api_key or self.openai_api_key in _placeholders:
            warnings.append("OPENAI_API_KEY not set. /api/chat will fail on first use.")

        if not self.default_provider_name:
            warnings.append(
                "DEFAULT_PROVIDER_NAME not set. Bookings must always name a provider."
            )

        if self.poll_interval_seconds * self.poll_max_attempts < 10:
            warnings.append(
                "Polling window is under 10 seconds. Most bookings will time out."
            )

        return warnings


settings = Settings()
