"""Calendar provider abstractions and implementations."""

from .base import CalendarProvider, TimeSlot
from .static import StaticCalendarProvider
from .sync import CalendarSync, gather_or_cancel

__all__ = ["CalendarProvider", "CalendarSync", "StaticCalendarProvider", "TimeSlot", "gather_or_cancel"]
