"""Pick a host from a team for a given slot.

Members are tried in an order that depends on the team's distribution
policy:

  priority       ascending priority rank, first free member wins
  round_robin    the member list rotated by the event type's assignment
                 counter, so consecutive bookings start with the next member
  availability   fewest bookings on the slot's day, ties by priority rank

A member is skipped when inactive, not available at that time, busy, or at
their daily cap.  If nobody qualifies the slot is dropped.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from booking_engine.conflicts import Commitment, has_conflict, index_by_host
from booking_engine.models import Booking, Host, TeamMember, TeamSettings


class TeamResolver:
    """Assigns hosts for one team over one snapshot of bookings.

    Args:
        team: The event type's team settings.
        hosts: Every member host, keyed by id.  Missing or inactive hosts
            are never assigned.
        bookings: Snapshot of existing bookings; cancelled ones are ignored.
        commitments: Busy intervals (bookings plus external calendars).
        rotation: Number of prior assignments for this event type.
    """

    def __init__(
        self,
        team: TeamSettings,
        hosts: Mapping[str, Host],
        bookings: Iterable[Booking],
        commitments: Iterable[Commitment],
        rotation: int = 0,
    ) -> None:
        self._team = team
        self._hosts = hosts
        self._rotation = rotation
        self._busy = index_by_host(commitments)

        self._members: list[TeamMember] = []
        for member in team.members:
            host = hosts.get(member.host_id)
            if host is not None and host.active:
                self._members.append(member)

        self._day_counts: Counter[tuple[str, date]] = Counter()
        for b in bookings:
            host = hosts.get(b.host_id)
            if host is not None and b.is_active:
                self._day_counts[(b.host_id, b.start.astimezone(host.tz).date())] += 1

    @property
    def active_members(self) -> list[TeamMember]:
        return list(self._members)

    def bookings_on_day(self, host_id: str, at: datetime) -> int:
        host = self._hosts[host_id]
        return self._day_counts[(host_id, at.astimezone(host.tz).date())]

    def order_members(self, slot_start: datetime) -> list[TeamMember]:
        members = self._members
        if not members:
            return []
        kind = self._team.policy.kind
        if kind == "priority":
            return sorted(members, key=lambda m: m.priority)
        if kind == "availability":
            return sorted(
                members,
                key=lambda m: (self.bookings_on_day(m.host_id, slot_start), m.priority),
            )
        offset = self._rotation % len(members)
        return members[offset:] + members[:offset]

    def assign_host(
        self,
        slot_start: datetime,
        slot_end: datetime,
        eligible: Optional[set[str]] = None,
    ) -> Optional[str]:
        """Return the id of the first qualifying member, or None.

        ``eligible`` restricts the search to members whose own availability
        covers the slot.
        """
        for member in self.order_members(slot_start):
            if eligible is not None and member.host_id not in eligible:
                continue
            if has_conflict(self._busy.get(member.host_id, []), slot_start, slot_end):
                continue
            cap = self._team.cap_for(member)
            if cap is not None and self.bookings_on_day(member.host_id, slot_start) >= cap:
                continue
            return member.host_id
        return None
