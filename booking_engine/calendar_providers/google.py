"""Google Calendar provider implementation.

Uses a Google Cloud service account to query the Calendar API v3 freebusy
endpoint.  The service account JSON key path is read from the
``GOOGLE_SERVICE_ACCOUNT_JSON`` environment variable when not passed in.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from functools import partial
from typing import Any

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from .base import CalendarProvider, TimeSlot

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by the Google Calendar freebusy API."""

    def __init__(self, service_account_path: str | None = None) -> None:
        sa_path = service_account_path or os.environ.get(
            "GOOGLE_SERVICE_ACCOUNT_JSON", ""
        )
        if not sa_path:
            raise ValueError(
                "Google service account JSON path must be provided via "
                "constructor argument or GOOGLE_SERVICE_ACCOUNT_JSON env var."
            )
        self._credentials = Credentials.from_service_account_file(
            sa_path, scopes=SCOPES
        )
        self._service = build(
            "calendar", "v3", credentials=self._credentials
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 string with timezone."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()

    @staticmethod
    def _parse(value: str) -> datetime:
        # Google answers in UTC with a trailing "Z"
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt.astimezone(timezone.utc)

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def get_busy_intervals(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        """Query the freebusy API for one calendar.

        Raises whatever the Google client raises, plus ``RuntimeError``
        when the API reports a per-calendar error (e.g. ``notFound``); a
        calendar we can't read must not be mistaken for a free one.
        """
        body = {
            "timeMin": self._to_rfc3339(start),
            "timeMax": self._to_rfc3339(end),
            "items": [{"id": calendar_id}],
        }

        response = await self._run_in_executor(
            self._service.freebusy().query(body=body).execute
        )

        calendar = response.get("calendars", {}).get(calendar_id, {})
        errors = calendar.get("errors", [])
        if errors:
            reasons = ", ".join(e.get("reason", "unknown") for e in errors)
            raise RuntimeError(f"freebusy failed for calendar {calendar_id}: {reasons}")

        busy = [
            TimeSlot(start=self._parse(interval["start"]), end=self._parse(interval["end"]))
            for interval in calendar.get("busy", [])
        ]
        busy.sort(key=lambda b: b.start)

        logger.debug(
            "Calendar %s has %d busy intervals between %s and %s",
            calendar_id, len(busy), start, end,
        )
        return busy
