"""Availability pipeline: windows -> candidates -> conflicts -> host assignment.

``compute_slots`` is the pure part.  It takes a :class:`Snapshot` of every
input (hosts, bookings, external busy intervals, rotation counter) and
never touches I/O, so it can run in parallel for any number of queries.

``SlotEngine`` builds the snapshot: it reads bookings from the store and
awaits the calendar collaborator *before* the pure pipeline starts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from booking_engine.availability import candidate_slots, day_cap_reached, local_days, resolve_day
from booking_engine.calendar_providers import CalendarSync, gather_or_cancel
from booking_engine.clock import Clock, Deadline, SystemClock
from booking_engine.conflicts import Commitment, commitments_from_bookings, filter_conflicts
from booking_engine.errors import DeadlineExceeded
from booking_engine.models import AvailableSlot, Booking, EventType, Host
from booking_engine.store import SchedulingStore
from booking_engine.team import TeamResolver

log = logging.getLogger("booking_engine.engine")

# Bookings are at most a day long and local days can sit up to a day away
# from the UTC range, so the snapshot reads this much extra on each side.
SNAPSHOT_MARGIN = timedelta(days=2)


@dataclass
class Snapshot:
    hosts: dict[str, Host]
    bookings: list[Booking] = field(default_factory=list)
    busy: list[Commitment] = field(default_factory=list)
    rotation: int = 0


def compute_slots(
    event_type: EventType,
    snapshot: Snapshot,
    now: datetime,
    range_start: datetime,
    range_end: datetime,
    deadline: Optional[Deadline] = None,
    exclude_booking_id: Optional[str] = None,
) -> list[AvailableSlot]:
    """Bookable slots for ``event_type`` starting within ``[range_start, range_end]``.

    ``exclude_booking_id`` ignores one existing booking entirely, which is
    how a reschedule may move a booking onto time it currently occupies.
    """
    deadline = deadline or Deadline.none()
    if not event_type.active:
        return []

    bookings = [b for b in snapshot.bookings if b.id != exclude_booking_id]
    commitments = commitments_from_bookings(bookings) + list(snapshot.busy)

    if event_type.team is None:
        host = snapshot.hosts.get(event_type.owner_id)
        if host is None or not host.active:
            return []
        candidates = _host_candidates(
            host, event_type, bookings, now, range_start, range_end, deadline
        )
        return filter_conflicts(candidates, commitments)

    return _team_slots(
        event_type, snapshot, bookings, commitments, now, range_start, range_end, deadline
    )


def _host_candidates(
    host: Host,
    event_type: EventType,
    bookings: list[Booking],
    now: datetime,
    range_start: datetime,
    range_end: datetime,
    deadline: Deadline,
) -> list[AvailableSlot]:
    slots: list[AvailableSlot] = []
    for day in local_days(host.tz, range_start, range_end):
        deadline.check("availability query")
        if day_cap_reached(event_type, host, day, bookings):
            continue
        windows = resolve_day(host, event_type, day)
        slots.extend(candidate_slots(windows, event_type, host, now, range_start, range_end))
    return slots


def _team_slots(
    event_type: EventType,
    snapshot: Snapshot,
    bookings: list[Booking],
    commitments: list[Commitment],
    now: datetime,
    range_start: datetime,
    range_end: datetime,
    deadline: Deadline,
) -> list[AvailableSlot]:
    resolver = TeamResolver(
        event_type.team, snapshot.hosts, bookings, commitments, snapshot.rotation
    )
    members = resolver.active_members
    if not members:
        return []

    # start -> (end, members whose own availability covers the slot)
    candidates: dict[datetime, tuple[datetime, set[str]]] = {}
    for member in members:
        host = snapshot.hosts[member.host_id]
        for slot in _host_candidates(
            host, event_type, bookings, now, range_start, range_end, deadline
        ):
            _, eligible = candidates.setdefault(slot.start, (slot.end, set()))
            eligible.add(host.id)

    slots: list[AvailableSlot] = []
    for start in sorted(candidates):
        deadline.check("availability query")
        end, eligible = candidates[start]
        host_id = resolver.assign_host(start, end, eligible)
        if host_id is None:
            continue
        host = snapshot.hosts[host_id]
        slots.append(AvailableSlot(start=start, end=end, host_id=host.id, host_name=host.name))
    return slots


class SlotEngine:
    """Gathers a consistent snapshot and runs the availability pipeline."""

    def __init__(
        self,
        store: SchedulingStore,
        calendar_sync: Optional[CalendarSync] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._calendar_sync = calendar_sync
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    async def snapshot(
        self,
        event_type: EventType,
        range_start: datetime,
        range_end: datetime,
        deadline: Optional[Deadline] = None,
    ) -> Snapshot:
        deadline = deadline or Deadline.none()
        hosts: dict[str, Host] = {}
        for host_id in event_type.host_ids():
            host = self._store.get_host(host_id)
            if host is not None:
                hosts[host_id] = host

        lo = range_start - SNAPSHOT_MARGIN
        hi = range_end + SNAPSHOT_MARGIN
        bookings = self._store.list_bookings(
            host_ids=list(hosts), start=lo, end=hi, include_cancelled=False
        )
        busy = await self._fetch_busy(list(hosts.values()), lo, hi, deadline)
        return Snapshot(
            hosts=hosts,
            bookings=bookings,
            busy=busy,
            rotation=self._store.get_rotation(event_type.id),
        )

    async def _fetch_busy(
        self, hosts: list[Host], start: datetime, end: datetime, deadline: Deadline
    ) -> list[Commitment]:
        if self._calendar_sync is None:
            return []
        sync = self._calendar_sync

        async def one(host: Host) -> list[Commitment]:
            intervals = await sync.get_busy_intervals(host, start, end)
            return [Commitment(host.id, s.start, s.end, "calendar") for s in intervals]

        deadline.check("calendar busy lookup")
        gathered = gather_or_cancel(*(one(h) for h in hosts if h.active))
        try:
            results = await asyncio.wait_for(gathered, timeout=deadline.remaining())
        except asyncio.TimeoutError as exc:
            raise DeadlineExceeded(
                "calendar busy lookup exceeded the query deadline",
                details={"timeout": deadline.timeout},
            ) from exc
        return [c for commitments in results for c in commitments]

    async def available_slots(
        self,
        event_type: EventType,
        range_start: datetime,
        range_end: datetime,
        deadline: Optional[Deadline] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> list[AvailableSlot]:
        deadline = deadline or Deadline.none()
        snapshot = await self.snapshot(event_type, range_start, range_end, deadline)
        deadline.check("availability query")
        slots = compute_slots(
            event_type,
            snapshot,
            self._clock.now(),
            range_start,
            range_end,
            deadline,
            exclude_booking_id,
        )
        log.debug(
            "Event type %s: %d slots between %s and %s",
            event_type.id, len(slots), range_start, range_end,
        )
        return slots
