"""Abstract base class for calendar providers.

The booking engine only ever reads from external calendars: a provider
reports the busy intervals of one calendar over a time range.  Any backend
(Google, Outlook, CalDAV, ...) implements this ABC.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class TimeSlot:
    """A span of time on a calendar."""

    start: datetime
    end: datetime


class CalendarProvider(ABC):
    """Abstract calendar backend."""

    @abstractmethod
    async def get_busy_intervals(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        """Return busy intervals overlapping the given range.

        Args:
            calendar_id: The calendar to query.
            start: Beginning of the search window.
            end: End of the search window.

        Returns:
            List of TimeSlot objects, sorted by start, during which the
            calendar's owner is unavailable.
        """
