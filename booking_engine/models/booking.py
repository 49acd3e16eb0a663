"""Pydantic models for bookings, their lifecycle, and transient slots."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


class GuestInfo(BaseModel):
    """Contact details of the person booking the meeting."""

    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    timezone: str = "UTC"


class Booking(BaseModel):
    """A committed booking.

    ``end`` is derived from ``start`` and ``duration`` and cannot be set on
    its own.  Bookings are never removed; cancelling keeps the record.
    """

    id: str
    event_type_id: str
    host_id: str
    guest: GuestInfo
    start: datetime
    duration: int = Field(gt=0)  # minutes
    status: BookingStatus = BookingStatus.CONFIRMED
    notes: str = ""
    cancel_reason: Optional[str] = None
    idempotency_key: Optional[str] = None
    idempotency_fingerprint: Optional[str] = None  # see transactor.idempotency_fingerprint
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)

    @property
    def is_active(self) -> bool:
        """Whether the booking still occupies its host's time."""
        return self.status != BookingStatus.CANCELLED

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def can_transition(self, target: BookingStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]


class AvailableSlot(BaseModel):
    """A bookable slot. Computed per request, never stored."""

    model_config = {"frozen": True}

    start: datetime
    end: datetime
    host_id: str
    host_name: str = ""
