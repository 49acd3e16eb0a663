"""Remove candidate slots that collide with a host's existing commitments.

A commitment is anything that occupies a host's time: a non-cancelled
booking in our own store or a busy interval reported by one of the host's
external calendars.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from booking_engine.intervals import overlaps
from booking_engine.models import AvailableSlot, Booking


@dataclass(frozen=True)
class Commitment:
    host_id: str
    start: datetime
    end: datetime
    source: str = "booking"  # "booking" or "calendar"


def commitments_from_bookings(
    bookings: Iterable[Booking], exclude_booking_id: Optional[str] = None
) -> list[Commitment]:
    return [
        Commitment(b.host_id, b.start, b.end, "booking")
        for b in bookings
        if b.is_active and b.id != exclude_booking_id
    ]


def index_by_host(commitments: Iterable[Commitment]) -> dict[str, list[Commitment]]:
    """Group commitments per host, each list sorted by start."""
    by_host: dict[str, list[Commitment]] = defaultdict(list)
    for c in commitments:
        by_host[c.host_id].append(c)
    for items in by_host.values():
        items.sort(key=lambda c: c.start)
    return dict(by_host)


def has_conflict(host_commitments: list[Commitment], start: datetime, end: datetime) -> bool:
    """True if any of the host's commitments overlaps ``[start, end)``."""
    return any(overlaps(start, end, c.start, c.end) for c in host_commitments)


def filter_conflicts(
    candidates: Iterable[AvailableSlot], commitments: Iterable[Commitment]
) -> list[AvailableSlot]:
    by_host = index_by_host(commitments)
    return [
        slot
        for slot in candidates
        if not has_conflict(by_host.get(slot.host_id, []), slot.start, slot.end)
    ]
