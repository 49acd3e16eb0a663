"""Outbound booking notifications.

The transactor hands a :class:`BookingNotification` to a :class:`Notifier`
after every committed change.  Delivery is best effort: the booking is
already committed, so a failing notifier is logged and never undoes it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Literal, Optional

import httpx
from pydantic import BaseModel

from booking_engine.models import Booking

log = logging.getLogger("booking_engine.notifications")

ChangeType = Literal["created", "rescheduled", "cancelled", "confirmed", "completed", "no_show"]


def redact_pii(value: str) -> str:
    """Mask PII for logging. Shows first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class BookingNotification(BaseModel):
    booking_id: str
    event_type_id: str
    guest_contact: str
    host_id: str
    start_time: datetime
    change_type: ChangeType

    @classmethod
    def for_booking(cls, booking: Booking, change_type: ChangeType) -> "BookingNotification":
        return cls(
            booking_id=booking.id,
            event_type_id=booking.event_type_id,
            guest_contact=booking.guest.email,
            host_id=booking.host_id,
            start_time=booking.start,
            change_type=change_type,
        )


class Notifier(ABC):
    @abstractmethod
    async def send(self, notification: BookingNotification) -> None:
        """Deliver one notification. May raise; callers log and carry on."""


class LogNotifier(Notifier):
    """Writes notifications to the log. The default when nothing else is configured."""

    async def send(self, notification: BookingNotification) -> None:
        log.info(
            "Booking %s %s for %s with host %s at %s",
            notification.booking_id,
            notification.change_type,
            redact_pii(notification.guest_contact),
            notification.host_id,
            notification.start_time.isoformat(),
        )


class WebhookNotifier(Notifier):
    """POSTs each notification as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    async def send(self, notification: BookingNotification) -> None:
        payload = notification.model_dump(mode="json")
        if self._client is not None:
            resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
            resp.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._url, json=payload)
            resp.raise_for_status()
