"""SchedulingService: the single entry point used by the HTTP layer.

Wires the store, calendar collaborator, availability engine, transactor
and notifier together, and owns write-time validation of hosts and event
types: a malformed configuration is rejected here with ``ValidationError``
so queries never have to deal with one.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from booking_engine.calendar_providers import CalendarSync, StaticCalendarProvider
from booking_engine.clock import Clock, Deadline, SystemClock
from booking_engine.engine import SlotEngine
from booking_engine.errors import NotFound, ValidationError
from booking_engine.intervals import as_utc
from booking_engine.locks import HostLockRegistry
from booking_engine.models import (
    AvailableSlot,
    Booking,
    BookingStatus,
    ConnectedCalendar,
    EventType,
    GuestInfo,
    Host,
    WeeklyAvailability,
)
from booking_engine.notifications import LogNotifier, Notifier, WebhookNotifier
from booking_engine.store import JsonlSchedulingStore, SchedulingStore
from booking_engine.transactor import BookingTransactor

log = logging.getLogger("booking_engine.service")

M = TypeVar("M", bound=BaseModel)


def _build(model: type[M], **data: Any) -> M:
    """Construct a model, turning pydantic errors into our ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as exc:
        errors = [
            {"loc": [str(part) for part in e["loc"]], "msg": e["msg"]} for e in exc.errors()
        ]
        raise ValidationError(
            f"invalid {model.__name__}: {errors[0]['msg'] if errors else exc}",
            details={"errors": errors},
        ) from exc


class SchedulingService:
    def __init__(
        self,
        store: Optional[SchedulingStore] = None,
        calendar_sync: Optional[CalendarSync] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        locks: Optional[HostLockRegistry] = None,
        max_attempts: int = 3,
        backoff_ms: float = 50,
        query_timeout: Optional[float] = None,
        default_timezone: str = "UTC",
    ) -> None:
        self.store = store or SchedulingStore()
        self.clock = clock or SystemClock()
        self.calendar_sync = calendar_sync or CalendarSync()
        self.engine = SlotEngine(self.store, self.calendar_sync, self.clock)
        self.transactor = BookingTransactor(
            self.store,
            self.engine,
            notifier=notifier,
            locks=locks,
            max_attempts=max_attempts,
            backoff_ms=backoff_ms,
        )
        self._query_timeout = query_timeout
        self._default_timezone = default_timezone

    @classmethod
    def from_settings(cls, settings) -> "SchedulingService":
        store: SchedulingStore
        if settings.data_dir:
            store = JsonlSchedulingStore(settings.data_dir)
        else:
            store = SchedulingStore()

        calendar_sync = CalendarSync()
        if settings.static_calendar_file:
            calendar_sync.register(
                "static", StaticCalendarProvider.from_jsonl(settings.static_calendar_file)
            )
        if settings.google_service_account_json:
            try:
                from booking_engine.calendar_providers.google import GoogleCalendarProvider
                calendar_sync.register(
                    "google",
                    GoogleCalendarProvider(
                        service_account_path=settings.google_service_account_json,
                    ),
                )
            except Exception as e:
                log.warning("Google Calendar not configured: %s", e)

        notifier: Notifier
        if settings.notification_webhook_url:
            notifier = WebhookNotifier(settings.notification_webhook_url)
        else:
            notifier = LogNotifier()

        return cls(
            store=store,
            calendar_sync=calendar_sync,
            notifier=notifier,
            locks=HostLockRegistry(timeout=settings.lock_timeout_seconds),
            max_attempts=settings.booking_max_attempts,
            backoff_ms=settings.booking_backoff_ms,
            query_timeout=settings.query_timeout_seconds,
            default_timezone=settings.default_timezone,
        )

    # ── Hosts ──────────────────────────────────────────────────────

    def create_host(
        self,
        name: str,
        email: str = "",
        timezone: Optional[str] = None,
        availability: WeeklyAvailability | dict | None = None,
        host_id: Optional[str] = None,
    ) -> Host:
        data: dict[str, Any] = {
            "id": host_id or f"host_{secrets.token_urlsafe(8)}",
            "name": name,
            "email": email,
            "timezone": timezone or self._default_timezone,
        }
        if availability is not None:
            data["availability"] = availability
        if self.store.get_host(data["id"]) is not None:
            raise ValidationError(f"host {data['id']} already exists")
        host = _build(Host, **data)
        log.info("Host %s created (%s)", host.id, host.timezone)
        return self.store.save_host(host)

    def get_host(self, host_id: str) -> Host:
        host = self.store.get_host(host_id)
        if host is None:
            raise NotFound(f"host {host_id} not found")
        return host

    def update_availability(self, host_id: str, availability: WeeklyAvailability | dict) -> Host:
        host = self.get_host(host_id)
        data = host.model_dump()
        data["availability"] = availability
        return self.store.save_host(_build(Host, **data))

    def connect_calendar(
        self,
        host_id: str,
        provider: str,
        calendar_id: str = "primary",
        check_for_conflicts: bool = True,
    ) -> ConnectedCalendar:
        host = self.get_host(host_id)
        if check_for_conflicts and provider not in self.calendar_sync.provider_names:
            # Its busy time could never be read, so the host would look free.
            raise ValidationError(
                f"no {provider} calendar provider is configured",
                details={"provider": provider, "available": self.calendar_sync.provider_names},
            )
        calendar = _build(
            ConnectedCalendar,
            id=f"cal_{secrets.token_urlsafe(6)}",
            provider=provider,
            calendar_id=calendar_id,
            check_for_conflicts=check_for_conflicts,
        )
        self.store.save_host(
            host.model_copy(update={"connected_calendars": [*host.connected_calendars, calendar]})
        )
        return calendar

    def deactivate_host(self, host_id: str) -> Host:
        host = self.get_host(host_id)
        log.info("Host %s deactivated", host_id)
        return self.store.save_host(host.model_copy(update={"active": False}))

    # ── Event types ────────────────────────────────────────────────

    def create_event_type(self, owner_id: str, name: str, duration: int, **options: Any) -> EventType:
        event_type_id = options.pop("id", None) or f"evt_{secrets.token_urlsafe(8)}"
        if self.store.get_event_type(event_type_id) is not None:
            raise ValidationError(f"event type {event_type_id} already exists")
        event_type = _build(
            EventType,
            id=event_type_id,
            owner_id=owner_id,
            name=name,
            duration=duration,
            **options,
        )
        self._check_references(event_type)
        log.info(
            "Event type %s created (owner=%s, team=%s)",
            event_type.id, owner_id, event_type.team.policy.kind if event_type.team else None,
        )
        return self.store.save_event_type(event_type)

    def update_event_type(self, event_type_id: str, **updates: Any) -> EventType:
        current = self.get_event_type(event_type_id)
        data = current.model_dump()
        data.update(updates)
        data["id"] = current.id
        event_type = _build(EventType, **data)
        self._check_references(event_type)
        return self.store.save_event_type(event_type)

    def get_event_type(self, event_type_id: str) -> EventType:
        event_type = self.store.get_event_type(event_type_id)
        if event_type is None:
            raise NotFound(f"event type {event_type_id} not found")
        return event_type

    def list_event_types(self, owner_id: Optional[str] = None) -> list[EventType]:
        return self.store.list_event_types(owner_id)

    def _check_references(self, event_type: EventType) -> None:
        if self.store.get_host(event_type.owner_id) is None:
            raise ValidationError(
                f"owner {event_type.owner_id} is not a known host",
                details={"owner_id": event_type.owner_id},
            )
        unknown = [h for h in event_type.host_ids() if self.store.get_host(h) is None]
        if unknown:
            raise ValidationError(
                f"team members {', '.join(unknown)} are not known hosts",
                details={"unknown_hosts": unknown},
            )

    # ── Availability ───────────────────────────────────────────────

    async def get_available_slots(
        self,
        event_type_id: str,
        range_start: datetime,
        range_end: datetime,
        timeout: Optional[float] = None,
    ) -> list[AvailableSlot]:
        """Bookable slots starting within ``[range_start, range_end]``.

        Raises ``DeadlineExceeded`` instead of returning a partial list when
        the query runs past ``timeout`` (or the configured default).
        """
        event_type = self.get_event_type(event_type_id)
        range_start, range_end = as_utc(range_start), as_utc(range_end)
        if range_end < range_start:
            raise ValidationError("range end is before range start")
        deadline = Deadline(timeout if timeout is not None else self._query_timeout)
        return await self.engine.available_slots(event_type, range_start, range_end, deadline)

    # ── Bookings ───────────────────────────────────────────────────

    async def create_booking(
        self,
        event_type_id: str,
        slot_start: datetime,
        guest: GuestInfo | dict,
        idempotency_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Booking:
        if isinstance(guest, dict):
            guest = _build(GuestInfo, **guest)
        deadline = Deadline(timeout if timeout is not None else self._query_timeout)
        return await self.transactor.create_booking(
            event_type_id, slot_start, guest, idempotency_key, deadline
        )

    async def reschedule_booking(
        self, booking_id: str, new_start: datetime, timeout: Optional[float] = None
    ) -> Booking:
        deadline = Deadline(timeout if timeout is not None else self._query_timeout)
        return await self.transactor.reschedule_booking(booking_id, new_start, deadline)

    async def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        return await self.transactor.cancel_booking(booking_id, reason)

    async def confirm_booking(self, booking_id: str) -> Booking:
        return await self.transactor.confirm_booking(booking_id)

    async def complete_booking(self, booking_id: str) -> Booking:
        return await self.transactor.complete_booking(booking_id)

    async def mark_no_show(self, booking_id: str) -> Booking:
        return await self.transactor.mark_no_show(booking_id)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"booking {booking_id} not found")
        return booking

    def list_bookings(
        self,
        host_id: Optional[str] = None,
        event_type_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        return self.store.list_bookings(
            host_ids=[host_id] if host_id else None,
            event_type_id=event_type_id,
            status=status,
            start=as_utc(start) if start else None,
            end=as_utc(end) if end else None,
        )
