"""Interval arithmetic on absolute instants.

All intervals are half-open ``[start, end)``: two intervals that only touch
at an endpoint do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def as_utc(dt: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """A concrete span of time, e.g. one availability window on one day."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True iff ``[a_start, a_end)`` and ``[b_start, b_end)`` share an instant."""
    return a_start < b_end and a_end > b_start


def slice_window(
    window_start: datetime,
    window_end: datetime,
    slot_duration: timedelta,
    slot_interval: timedelta,
) -> list[tuple[datetime, datetime]]:
    """Cut a window into candidate slots.

    Slots start at ``window_start`` and every ``slot_interval`` after it, as
    long as the whole slot still fits before ``window_end``.
    """
    if slot_duration <= timedelta(0):
        raise ValueError("slot_duration must be positive")
    if slot_interval <= timedelta(0):
        raise ValueError("slot_interval must be positive")

    slots: list[tuple[datetime, datetime]] = []
    start = window_start
    while start + slot_duration <= window_end:
        slots.append((start, start + slot_duration))
        start += slot_interval
    return slots
