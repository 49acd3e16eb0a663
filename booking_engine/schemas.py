"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from booking_engine.models import GuestInfo, TeamSettings, WeeklyAvailability


class SlotOut(BaseModel):
    start: datetime
    end: datetime
    host_id: str
    host_name: str = ""


class SlotsResponse(BaseModel):
    event_type_id: str
    timezone: str
    slots: list[SlotOut]


class BookingCreate(BaseModel):
    event_type_id: str
    start: datetime
    guest: GuestInfo
    idempotency_key: Optional[str] = None


class BookingReschedule(BaseModel):
    start: datetime


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class HostCreate(BaseModel):
    id: Optional[str] = None
    name: str
    email: str = ""
    timezone: Optional[str] = None
    availability: Optional[WeeklyAvailability] = None


class CalendarConnect(BaseModel):
    provider: Literal["google", "outlook", "apple", "caldav", "static"]
    calendar_id: str = "primary"
    check_for_conflicts: bool = True


class EventTypeCreate(BaseModel):
    id: Optional[str] = None
    owner_id: str
    name: str
    duration: int
    buffer_before: int = 0
    buffer_after: int = 0
    slot_interval: int = 15
    min_notice: int = 60
    max_advance: int = 60 * 24 * 60
    max_per_day: Optional[int] = None
    require_confirmation: bool = False
    allow_reschedule: bool = True
    team: Optional[TeamSettings] = None


class EventTypeUpdate(BaseModel):
    name: Optional[str] = None
    duration: Optional[int] = None
    buffer_before: Optional[int] = None
    buffer_after: Optional[int] = None
    slot_interval: Optional[int] = None
    min_notice: Optional[int] = None
    max_advance: Optional[int] = None
    max_per_day: Optional[int] = None
    require_confirmation: Optional[bool] = None
    allow_reschedule: Optional[bool] = None
    team: Optional[TeamSettings] = None
    active: Optional[bool] = None
