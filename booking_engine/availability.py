"""Expand weekly availability into concrete windows and candidate slots.

Windows are built in the host's own timezone and immediately converted to
absolute UTC instants; every later step (slicing, notice limits, conflict
checks) works on absolute time only.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from booking_engine.intervals import TimeWindow, slice_window
from booking_engine.models import AvailableSlot, Booking, EventType, Host


def local_days(tz: ZoneInfo, range_start: datetime, range_end: datetime) -> list[date]:
    """Host-local calendar days touched by ``[range_start, range_end]``."""
    first = range_start.astimezone(tz).date()
    last = range_end.astimezone(tz).date()
    days: list[date] = []
    day = first
    while day <= last:
        days.append(day)
        day += timedelta(days=1)
    return days


def resolve_day(host: Host, event_type: EventType, day: date) -> list[TimeWindow]:
    """The host's windows for ``day`` with the event's buffers cut off the edges."""
    before = timedelta(minutes=event_type.buffer_before)
    after = timedelta(minutes=event_type.buffer_after)
    tz = host.tz

    windows: list[TimeWindow] = []
    for window in host.availability.for_weekday(day):
        start = datetime.combine(day, window.start, tzinfo=tz).astimezone(timezone.utc) + before
        if window.ends_at_midnight:
            local_end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=tz)
        else:
            local_end = datetime.combine(day, window.end, tzinfo=tz)
        end = local_end.astimezone(timezone.utc) - after
        if start < end:
            windows.append(TimeWindow(start, end))
    return windows


def candidate_slots(
    windows: Iterable[TimeWindow],
    event_type: EventType,
    host: Host,
    now: datetime,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> list[AvailableSlot]:
    """Slice windows into slots and drop those outside the booking horizon.

    A slot survives when its start is no earlier than ``now + min_notice``,
    no later than ``now + max_advance`` and, if a range is given, inside
    ``[range_start, range_end]``.
    """
    duration = timedelta(minutes=event_type.duration)
    interval = timedelta(minutes=event_type.slot_interval)
    earliest = now + timedelta(minutes=event_type.min_notice)
    latest = now + timedelta(minutes=event_type.max_advance)

    slots: list[AvailableSlot] = []
    for window in windows:
        for start, end in slice_window(window.start, window.end, duration, interval):
            if start < earliest or start > latest:
                continue
            if range_start is not None and start < range_start:
                continue
            if range_end is not None and start > range_end:
                continue
            slots.append(
                AvailableSlot(start=start, end=end, host_id=host.id, host_name=host.name)
            )
    return slots


def count_bookings_on_day(
    host: Host,
    day: date,
    bookings: Iterable[Booking],
    event_type_id: Optional[str] = None,
) -> int:
    """Non-cancelled bookings of ``host`` starting on the host-local ``day``."""
    tz = host.tz
    return sum(
        1
        for b in bookings
        if b.is_active
        and b.host_id == host.id
        and (event_type_id is None or b.event_type_id == event_type_id)
        and b.start.astimezone(tz).date() == day
    )


def day_cap_reached(
    event_type: EventType, host: Host, day: date, bookings: Iterable[Booking]
) -> bool:
    if event_type.max_per_day is None:
        return False
    taken = count_bookings_on_day(host, day, bookings, event_type_id=event_type.id)
    return taken >= event_type.max_per_day
