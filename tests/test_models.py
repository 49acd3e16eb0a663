"""Tests for model validation and write-time configuration checks."""

from datetime import date, datetime, time, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from booking_engine.errors import ValidationError
from booking_engine.models import (
    Booking,
    BookingStatus,
    EventType,
    GuestInfo,
    Host,
    TeamSettings,
    WeeklyAvailability,
)


class TestWeeklyAvailability:
    def test_default_host_availability_is_workweek(self):
        host = Host(id="h", name="H")
        monday = host.availability.for_weekday(date(2026, 3, 16))
        assert [(w.start, w.end) for w in monday] == [(time(9), time(17))]
        assert host.availability.for_weekday(date(2026, 3, 21)) == []  # Saturday

    def test_windows_are_sorted(self):
        avail = WeeklyAvailability(
            monday=[{"start": "13:00", "end": "17:00"}, {"start": "09:00", "end": "12:00"}]
        )
        assert [w.start for w in avail.monday] == [time(9), time(13)]

    def test_overlapping_windows_rejected(self):
        with pytest.raises(PydanticValidationError):
            WeeklyAvailability(
                monday=[{"start": "09:00", "end": "12:00"}, {"start": "11:00", "end": "14:00"}]
            )

    def test_window_must_have_positive_length(self):
        with pytest.raises(PydanticValidationError):
            WeeklyAvailability(monday=[{"start": "12:00", "end": "12:00"}])

    def test_end_of_day_window(self):
        avail = WeeklyAvailability(friday=[{"start": "20:00", "end": "24:00"}])
        [window] = avail.friday
        assert window.ends_at_midnight
        assert avail.model_dump(mode="json")["friday"] == [{"start": "20:00:00", "end": "24:00"}]
        assert WeeklyAvailability(**avail.model_dump()) == avail

    def test_end_of_day_cannot_start_a_window(self):
        with pytest.raises(PydanticValidationError):
            WeeklyAvailability(monday=[{"start": "24:00", "end": "24:00"}])

    def test_unknown_timezone_rejected(self):
        with pytest.raises(PydanticValidationError):
            Host(id="h", name="H", timezone="Mars/Olympus_Mons")


class TestEventType:
    def test_slug_is_derived(self):
        et = EventType(id="e", owner_id="h", name="30 Min Intro Call!", duration=30)
        assert et.slug == "30-min-intro-call"

    def test_defaults(self):
        et = EventType(id="e", owner_id="h", name="Call", duration=30)
        assert et.slot_interval == 15
        assert et.min_notice == 60
        assert et.max_advance == 60 * 24 * 60
        assert et.is_team is False
        assert et.host_ids() == ["h"]

    def test_policy_is_a_tagged_union(self):
        team = TeamSettings(
            policy={"kind": "equal"},
            members=[{"host_id": "a", "priority": 1}, {"host_id": "b", "priority": 2}],
        )
        assert team.policy.kind == "equal"
        team = TeamSettings(
            policy={"kind": "availability"}, members=[{"host_id": "a", "priority": 1}]
        )
        assert type(team.policy).__name__ == "AvailabilityPolicy"

    def test_member_cap_falls_back_to_team_cap(self):
        team = TeamSettings(
            members=[{"host_id": "a", "priority": 1, "daily_cap": 2}, {"host_id": "b", "priority": 2}],
            member_daily_cap=5,
        )
        assert team.cap_for(team.members[0]) == 2
        assert team.cap_for(team.members[1]) == 5


class TestServiceValidation:
    """Misconfiguration is rejected when written, as ValidationError."""

    def test_zero_duration(self, service, host):
        with pytest.raises(ValidationError):
            service.create_event_type(host.id, "Broken", 0)

    def test_zero_interval(self, service, host):
        with pytest.raises(ValidationError):
            service.create_event_type(host.id, "Broken", 30, slot_interval=0)

    def test_min_notice_above_max_advance(self, service, host):
        with pytest.raises(ValidationError) as exc_info:
            service.create_event_type(host.id, "Broken", 30, min_notice=600, max_advance=60)
        assert exc_info.value.details["errors"]

    def test_empty_team(self, service, host):
        with pytest.raises(ValidationError):
            service.create_event_type(host.id, "Team", 30, team={"members": []})

    def test_duplicate_team_members(self, service, host):
        team = {"members": [{"host_id": host.id, "priority": 1}, {"host_id": host.id, "priority": 2}]}
        with pytest.raises(ValidationError):
            service.create_event_type(host.id, "Team", 30, team=team)

    def test_unknown_team_member(self, service, host):
        team = {"members": [{"host_id": "ghost", "priority": 1}]}
        with pytest.raises(ValidationError) as exc_info:
            service.create_event_type(host.id, "Team", 30, team=team)
        assert exc_info.value.details["unknown_hosts"] == ["ghost"]

    def test_unknown_owner(self, service):
        with pytest.raises(ValidationError):
            service.create_event_type("nobody", "Call", 30)

    def test_bad_host_timezone(self, service):
        with pytest.raises(ValidationError):
            service.create_host("X", timezone="Not/AZone")

    def test_update_is_revalidated(self, service, event_type):
        with pytest.raises(ValidationError):
            service.update_event_type(event_type.id, duration=-1)
        assert service.get_event_type(event_type.id).duration == 30


class TestBooking:
    def _booking(self, **overrides):
        now = datetime(2026, 3, 16, 8, 0, tzinfo=timezone.utc)
        data = dict(
            id="b1",
            event_type_id="e",
            host_id="h",
            guest=GuestInfo(name="G", email="g@example.com"),
            start=datetime(2026, 3, 16, 10, 0, tzinfo=timezone.utc),
            duration=45,
            created_at=now,
            updated_at=now,
        )
        data.update(overrides)
        return Booking(**data)

    def test_end_is_derived_from_duration(self):
        booking = self._booking()
        assert booking.end == datetime(2026, 3, 16, 10, 45, tzinfo=timezone.utc)
        assert booking.model_dump()["end"] == booking.end

    def test_transitions(self):
        pending = self._booking(status=BookingStatus.PENDING)
        assert pending.can_transition(BookingStatus.CONFIRMED)
        assert pending.can_transition(BookingStatus.CANCELLED)
        assert not pending.can_transition(BookingStatus.COMPLETED)

        confirmed = self._booking()
        assert confirmed.can_transition(BookingStatus.NO_SHOW)
        assert not confirmed.can_transition(BookingStatus.PENDING)

        for status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW):
            assert self._booking(status=status).is_terminal

    def test_cancelled_booking_is_inactive(self):
        assert self._booking().is_active
        assert not self._booking(status=BookingStatus.CANCELLED).is_active
