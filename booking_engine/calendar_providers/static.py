"""In-process calendar provider serving a fixed set of busy intervals.

Busy times can be added in code or loaded from a JSONL file written by
some other sync job, one interval per line::

    {"calendar_id": "grace-work", "start": "2026-03-16T10:00:00Z", "end": "2026-03-16T11:00:00Z"}
"""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path

from booking_engine.intervals import as_utc, overlaps

from .base import CalendarProvider, TimeSlot


class StaticCalendarProvider(CalendarProvider):
    def __init__(self, busy: dict[str, list[TimeSlot]] | None = None) -> None:
        self._busy: dict[str, list[TimeSlot]] = defaultdict(list)
        for calendar_id, slots in (busy or {}).items():
            for slot in slots:
                self.add_busy(calendar_id, slot.start, slot.end)

    @classmethod
    def from_jsonl(cls, path: str | Path) -> "StaticCalendarProvider":
        """Load busy intervals from a JSONL file (one interval per line)."""
        provider = cls()
        for line in Path(path).read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            data = json.loads(line)
            provider.add_busy(
                data["calendar_id"],
                datetime.fromisoformat(data["start"]),
                datetime.fromisoformat(data["end"]),
            )
        return provider

    def add_busy(self, calendar_id: str, start: datetime, end: datetime) -> None:
        self._busy[calendar_id].append(TimeSlot(start=as_utc(start), end=as_utc(end)))
        self._busy[calendar_id].sort(key=lambda s: s.start)

    async def get_busy_intervals(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        start, end = as_utc(start), as_utc(end)
        return [
            slot for slot in self._busy.get(calendar_id, [])
            if overlaps(slot.start, slot.end, start, end)
        ]
