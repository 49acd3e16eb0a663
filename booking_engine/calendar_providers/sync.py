"""Collect a host's external busy intervals across all connected calendars."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from booking_engine.models import Host

from .base import CalendarProvider, TimeSlot

log = logging.getLogger("booking_engine.calendar_sync")


async def gather_or_cancel(*aws):
    """Like ``asyncio.gather``, but a failure cancels the remaining lookups.

    Results come back in argument order. The first exception propagates
    once every sibling has been cancelled and has finished unwinding.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class CalendarSync:
    """Dispatches busy-interval lookups to the provider of each calendar.

    Providers are registered by name (``"google"``, ``"static"``, ...) and
    matched against ``ConnectedCalendar.provider``.  A calendar checked for
    conflicts whose provider isn't registered raises ``RuntimeError``, as do
    errors from a registered provider: an unreadable calendar never looks free.
    """

    def __init__(self, providers: dict[str, CalendarProvider] | None = None) -> None:
        self._providers: dict[str, CalendarProvider] = dict(providers or {})

    def register(self, name: str, provider: CalendarProvider) -> None:
        self._providers[name] = provider

    @property
    def provider_names(self) -> list[str]:
        return sorted(self._providers)

    async def get_busy_intervals(
        self, host: Host, start: datetime, end: datetime
    ) -> list[TimeSlot]:
        lookups = []
        for calendar in host.connected_calendars:
            if not calendar.check_for_conflicts:
                continue
            provider = self._providers.get(calendar.provider)
            if provider is None:
                log.error(
                    "No %s provider registered for calendar %s of host %s",
                    calendar.provider, calendar.id, host.id,
                )
                for lookup in lookups:
                    lookup.close()
                raise RuntimeError(
                    f"no {calendar.provider} provider registered "
                    f"for calendar {calendar.id} of host {host.id}"
                )
            lookups.append(provider.get_busy_intervals(calendar.calendar_id, start, end))

        if not lookups:
            return []

        results = await gather_or_cancel(*lookups)
        busy = [slot for slots in results for slot in slots]
        busy.sort(key=lambda s: s.start)
        return busy
