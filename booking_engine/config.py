"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("booking_engine.config")


class Settings(BaseSettings):
    # Scheduling
    default_timezone: str = "UTC"
    data_dir: str = ""                      # empty = in-memory store

    # Booking commits
    booking_max_attempts: int = 3
    booking_backoff_ms: float = 50
    lock_timeout_seconds: float = 5.0

    # Availability queries
    query_timeout_seconds: float = 10.0

    # Collaborators
    notification_webhook_url: str = ""
    google_service_account_json: str = ""
    static_calendar_file: str = ""          # JSONL of busy intervals, served as "static"

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        try:
            ZoneInfo(self.default_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"DEFAULT_TIMEZONE {self.default_timezone!r} is not a known IANA timezone."
            )

        if self.booking_max_attempts < 1:
            raise ValueError("BOOKING_MAX_ATTEMPTS must be at least 1.")

        # Admin API key: warn if unset
        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        if not self.data_dir:
            warnings.append(
                "DATA_DIR not set. Bookings and round-robin counters live in memory "
                "and are lost on restart."
            )

        if not self.google_service_account_json:
            warnings.append(
                "GOOGLE_SERVICE_ACCOUNT_JSON not set. Google calendars are not checked for conflicts."
            )

        return warnings


settings = Settings()
