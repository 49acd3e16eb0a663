"""Data models for the booking engine."""

from .booking import ALLOWED_TRANSITIONS, AvailableSlot, Booking, BookingStatus, GuestInfo
from .event_type import (
    AvailabilityPolicy,
    DistributionPolicy,
    EventType,
    PriorityPolicy,
    RoundRobinPolicy,
    TeamMember,
    TeamSettings,
)
from .host import WEEKDAYS, ConnectedCalendar, Host, TimeOfDayWindow, WeeklyAvailability

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AvailabilityPolicy",
    "AvailableSlot",
    "Booking",
    "BookingStatus",
    "ConnectedCalendar",
    "DistributionPolicy",
    "EventType",
    "GuestInfo",
    "Host",
    "PriorityPolicy",
    "RoundRobinPolicy",
    "TeamMember",
    "TeamSettings",
    "TimeOfDayWindow",
    "WEEKDAYS",
    "WeeklyAvailability",
]
