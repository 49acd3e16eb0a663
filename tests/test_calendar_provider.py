"""Tests for CalendarProvider ABC, GoogleCalendarProvider and CalendarSync."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from booking_engine.calendar_providers import (
    CalendarProvider,
    CalendarSync,
    StaticCalendarProvider,
    TimeSlot,
    gather_or_cancel,
)
from booking_engine.models import Host


# ── TimeSlot dataclass tests ───────────────────────────────────────


class TestDataclasses:
    def test_timeslot_creation(self):
        now = datetime.now(tz=timezone.utc)
        slot = TimeSlot(start=now, end=now + timedelta(hours=1))
        assert (slot.end - slot.start).total_seconds() == 3600


# ── ABC contract tests ─────────────────────────────────────────────


class TestCalendarProviderABC:
    def test_cannot_instantiate(self):
        """CalendarProvider is abstract and can't be instantiated directly."""
        with pytest.raises(TypeError):
            CalendarProvider()

    def test_concrete_implementation(self):
        """A concrete subclass only needs get_busy_intervals."""
        class MockProvider(CalendarProvider):
            async def get_busy_intervals(self, calendar_id, start, end):
                return []

        provider = MockProvider()
        assert isinstance(provider, CalendarProvider)


# ── GoogleCalendarProvider tests (mocked API) ──────────────────────


class TestGoogleCalendarProvider:
    @pytest.fixture
    def mock_provider(self):
        """Create a GoogleCalendarProvider with mocked Google APIs."""
        with patch(
            "booking_engine.calendar_providers.google.Credentials"
        ) as mock_creds, patch(
            "booking_engine.calendar_providers.google.build"
        ) as mock_build:
            mock_creds.from_service_account_file.return_value = MagicMock()

            from booking_engine.calendar_providers.google import GoogleCalendarProvider

            provider = GoogleCalendarProvider(
                service_account_path="/fake/path.json"
            )
            provider._service = mock_build.return_value
            return provider

    def test_requires_service_account(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SERVICE_ACCOUNT_JSON", raising=False)
        from booking_engine.calendar_providers.google import GoogleCalendarProvider

        with pytest.raises(ValueError):
            GoogleCalendarProvider()

    async def test_free_calendar(self, mock_provider):
        """Fully free calendar has no busy intervals."""
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 3, 15, 18, 0, tzinfo=timezone.utc)

        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "primary": {"busy": []}
            }
        }

        busy = await mock_provider.get_busy_intervals("primary", start, end)

        assert busy == []

    async def test_busy_blocks(self, mock_provider):
        """Busy blocks are parsed, normalized to UTC and sorted."""
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 3, 15, 18, 0, tzinfo=timezone.utc)

        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "primary": {
                    "busy": [
                        {
                            "start": "2026-03-15T14:00:00Z",
                            "end": "2026-03-15T15:00:00Z",
                        },
                        {
                            "start": "2026-03-15T06:00:00-04:00",
                            "end": "2026-03-15T07:00:00-04:00",
                        },
                    ]
                }
            }
        }

        busy = await mock_provider.get_busy_intervals("primary", start, end)

        assert len(busy) == 2
        assert busy[0].start == datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)
        assert busy[0].end == datetime(2026, 3, 15, 11, 0, tzinfo=timezone.utc)
        assert busy[1].start.hour == 14
        assert busy[1].end.hour == 15

        query = mock_provider._service.freebusy.return_value.query
        body = query.call_args.kwargs["body"]
        assert body["items"] == [{"id": "primary"}]
        assert body["timeMin"] == start.isoformat()

    async def test_calendar_error_raises(self, mock_provider):
        """A calendar the API can't read must not look free."""
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 3, 15, 18, 0, tzinfo=timezone.utc)

        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "missing": {"errors": [{"domain": "global", "reason": "notFound"}]}
            }
        }

        with pytest.raises(RuntimeError, match="notFound"):
            await mock_provider.get_busy_intervals("missing", start, end)


# ── Static provider and CalendarSync ───────────────────────────────


def _day(hour):
    return datetime(2026, 3, 16, hour, 0, tzinfo=timezone.utc)


class TestStaticCalendarProvider:
    async def test_returns_only_overlapping_intervals(self):
        provider = StaticCalendarProvider()
        provider.add_busy("cal", _day(14), _day(15))
        provider.add_busy("cal", _day(9), _day(10))
        provider.add_busy("cal", _day(20), _day(21))

        busy = await provider.get_busy_intervals("cal", _day(9), _day(16))
        assert [(b.start.hour, b.end.hour) for b in busy] == [(9, 10), (14, 15)]

    async def test_unknown_calendar_is_free(self):
        assert await StaticCalendarProvider().get_busy_intervals("nope", _day(0), _day(23)) == []


class TestCalendarSync:
    def _host(self, *calendars):
        return Host(id="h", name="H", connected_calendars=list(calendars))

    async def test_merges_calendars(self):
        work = StaticCalendarProvider({"work": [TimeSlot(_day(14), _day(15))]})
        home = StaticCalendarProvider({"home": [TimeSlot(_day(9), _day(10))]})
        sync = CalendarSync({"static": work})
        sync.register("google", home)
        host = self._host(
            {"id": "c1", "provider": "static", "calendar_id": "work"},
            {"id": "c2", "provider": "google", "calendar_id": "home"},
        )

        busy = await sync.get_busy_intervals(host, _day(0), _day(23))
        assert [b.start.hour for b in busy] == [9, 14]
        assert sync.provider_names == ["google", "static"]

    async def test_skips_calendars_not_checked_for_conflicts(self):
        provider = StaticCalendarProvider({"work": [TimeSlot(_day(14), _day(15))]})
        sync = CalendarSync({"static": provider})
        host = self._host(
            {"id": "c1", "provider": "static", "calendar_id": "work", "check_for_conflicts": False}
        )
        assert await sync.get_busy_intervals(host, _day(0), _day(23)) == []

    async def test_unregistered_provider_raises(self, caplog):
        sync = CalendarSync()
        host = self._host({"id": "c1", "provider": "outlook", "calendar_id": "work"})
        with caplog.at_level("ERROR", logger="booking_engine.calendar_sync"):
            with pytest.raises(RuntimeError, match="no outlook provider registered"):
                await sync.get_busy_intervals(host, _day(0), _day(23))
        assert "No outlook provider registered" in caplog.text

    async def test_unregistered_provider_ignored_without_conflict_check(self):
        sync = CalendarSync()
        host = self._host(
            {"id": "c1", "provider": "outlook", "calendar_id": "work", "check_for_conflicts": False}
        )
        assert await sync.get_busy_intervals(host, _day(0), _day(23)) == []

    async def test_provider_errors_propagate(self):
        class Broken(CalendarProvider):
            async def get_busy_intervals(self, calendar_id, start, end):
                raise RuntimeError("calendar API down")

        sync = CalendarSync({"static": Broken()})
        host = self._host({"id": "c1", "provider": "static", "calendar_id": "work"})
        with pytest.raises(RuntimeError, match="calendar API down"):
            await sync.get_busy_intervals(host, _day(0), _day(23))

    async def test_failure_cancels_sibling_lookups(self):
        class Broken(CalendarProvider):
            async def get_busy_intervals(self, calendar_id, start, end):
                raise RuntimeError("calendar API down")

        class Slow(CalendarProvider):
            cancelled = False

            async def get_busy_intervals(self, calendar_id, start, end):
                try:
                    await asyncio.sleep(5)
                except asyncio.CancelledError:
                    self.cancelled = True
                    raise
                return []

        slow = Slow()
        sync = CalendarSync({"static": Broken(), "google": slow})
        host = self._host(
            {"id": "c1", "provider": "google", "calendar_id": "home"},
            {"id": "c2", "provider": "static", "calendar_id": "work"},
        )
        with pytest.raises(RuntimeError, match="calendar API down"):
            await sync.get_busy_intervals(host, _day(0), _day(23))
        assert slow.cancelled


class TestGatherOrCancel:
    async def test_results_keep_argument_order(self):
        async def after(delay, value):
            await asyncio.sleep(delay)
            return value

        assert await gather_or_cancel(after(0.02, "a"), after(0, "b")) == ["a", "b"]

    async def test_outer_cancellation_reaches_children(self):
        started = asyncio.Event()
        seen = []

        async def wait_forever():
            started.set()
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                seen.append("cancelled")
                raise

        task = asyncio.ensure_future(gather_or_cancel(wait_forever()))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert seen == ["cancelled"]


class TestStaticCalendarFile:
    async def test_from_jsonl(self, tmp_path):
        path = tmp_path / "busy.jsonl"
        path.write_text(
            '{"calendar_id": "work", "start": "2026-03-16T10:00:00+00:00", "end": "2026-03-16T11:00:00+00:00"}\n'
            "\n"
            '{"calendar_id": "work", "start": "2026-03-16T09:00:00-04:00", "end": "2026-03-16T09:30:00-04:00"}\n',
            encoding="utf-8",
        )
        provider = StaticCalendarProvider.from_jsonl(path)

        busy = await provider.get_busy_intervals("work", _day(0), _day(23))
        assert [(b.start.hour, b.start.minute) for b in busy] == [(10, 0), (13, 0)]
        assert all(b.start.tzinfo == timezone.utc for b in busy)

    def test_service_registers_static_provider_only_when_configured(self, tmp_path):
        from booking_engine.config import Settings
        from booking_engine.service import SchedulingService

        service = SchedulingService.from_settings(Settings(_env_file=None))
        assert "static" not in service.calendar_sync.provider_names

        path = tmp_path / "busy.jsonl"
        path.write_text(
            '{"calendar_id": "work", "start": "2026-03-16T10:00:00Z", "end": "2026-03-16T11:00:00Z"}\n',
            encoding="utf-8",
        )
        service = SchedulingService.from_settings(
            Settings(_env_file=None, static_calendar_file=str(path))
        )
        assert service.calendar_sync.provider_names == ["static"]
