"""Shared fixtures: a frozen clock, a static calendar and a fresh in-memory service per test."""

import os
import sys
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from booking_engine.calendar_providers import CalendarSync, StaticCalendarProvider
from booking_engine.clock import FixedClock
from booking_engine.models import GuestInfo
from booking_engine.notifications import Notifier
from booking_engine.service import SchedulingService

UTC = timezone.utc
MONDAY = date(2026, 3, 16)
TUESDAY = date(2026, 3, 17)


def at(day: date, hour: int, minute: int = 0, tz: str | None = None) -> datetime:
    """An aware datetime on ``day``; UTC unless ``tz`` names another zone."""
    zone = ZoneInfo(tz) if tz else UTC
    return datetime.combine(day, time(hour, minute), tzinfo=zone)


def guest(name: str = "Ada Lovelace", email: str = "ada@example.com") -> GuestInfo:
    return GuestInfo(name=name, email=email)


class RecordingNotifier(Notifier):
    """Notifier that remembers what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, notification):
        self.sent.append(notification)
        if self.fail:
            raise RuntimeError("smtp down")


@pytest.fixture
def clock():
    return FixedClock(at(MONDAY, 8))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def static_provider():
    return StaticCalendarProvider()


@pytest.fixture
def service(clock, notifier, static_provider):
    sync = CalendarSync({"static": static_provider})
    return SchedulingService(calendar_sync=sync, clock=clock, notifier=notifier, backoff_ms=1)


@pytest.fixture
def host(service):
    return service.create_host("Grace Hopper", "grace@example.com", "UTC", host_id="grace")


@pytest.fixture
def event_type(service, host):
    return service.create_event_type(
        host.id, "Intro Call", 30, id="intro", slot_interval=15, min_notice=60
    )
