"""The booking write path.

Every mutation follows the same shape:

  1. re-run the availability pipeline for just the requested slot
  2. take the lock of every host the write touches
  3. re-check under the lock, then write through the store
  4. notify, outside the lock, without letting failures undo the write

``ConcurrencyConflict`` (lock timeout, store constraint, a booking or host
assignment that changed underneath us) is retried with jittered backoff a
bounded number of times.  Everything else propagates unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from booking_engine.clock import Deadline
from booking_engine.engine import SlotEngine
from booking_engine.errors import ConcurrencyConflict, InvalidTransition, NotFound, SlotUnavailable
from booking_engine.intervals import as_utc
from booking_engine.locks import HostLockRegistry
from booking_engine.models import AvailableSlot, Booking, BookingStatus, EventType, GuestInfo
from booking_engine.notifications import BookingNotification, ChangeType, Notifier, redact_pii
from booking_engine.store import SchedulingStore

log = logging.getLogger("booking_engine.transactor")

T = TypeVar("T")


def idempotency_fingerprint(
    event_type_id: str, guest_email: str, slot_start: datetime, idempotency_key: str
) -> str:
    return "|".join(
        [event_type_id, guest_email.strip().lower(), as_utc(slot_start).isoformat(), idempotency_key]
    )


class BookingTransactor:
    def __init__(
        self,
        store: SchedulingStore,
        engine: SlotEngine,
        notifier: Optional[Notifier] = None,
        locks: Optional[HostLockRegistry] = None,
        max_attempts: int = 3,
        backoff_ms: float = 50,
    ) -> None:
        self._store = store
        self._engine = engine
        self._notifier = notifier
        self._locks = locks or HostLockRegistry()
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_ms / 1000

    # ── Public operations ──────────────────────────────────────────

    async def create_booking(
        self,
        event_type_id: str,
        slot_start: datetime,
        guest: GuestInfo,
        idempotency_key: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> Booking:
        """Book ``slot_start`` for ``guest``.

        Raises:
            NotFound: unknown event type.
            SlotUnavailable: no valid slot starts at ``slot_start`` any more.
            ConcurrencyConflict: contention persisted through every retry.
        """
        event_type = self._event_type(event_type_id)
        slot_start = as_utc(slot_start)
        fingerprint = None
        if idempotency_key:
            fingerprint = idempotency_fingerprint(
                event_type_id, guest.email, slot_start, idempotency_key
            )
            existing = self._store.find_idempotent(fingerprint)
            if existing is not None:
                log.info("Idempotent replay of booking %s (key=%s)", existing.id, idempotency_key)
                return existing

        booking, created = await self._with_retries(
            "create_booking",
            lambda: self._commit_create(event_type, slot_start, guest, idempotency_key, fingerprint, deadline),
        )
        if created:
            log.info(
                "Booking %s created: event_type=%s host=%s start=%s guest=%s status=%s",
                booking.id, event_type_id, booking.host_id, booking.start.isoformat(),
                redact_pii(guest.email), booking.status.value,
            )
            await self._notify(booking, "created")
        return booking

    async def reschedule_booking(
        self,
        booking_id: str,
        new_start: datetime,
        deadline: Optional[Deadline] = None,
    ) -> Booking:
        """Move a booking to ``new_start``, re-resolving its host for team events."""
        new_start = as_utc(new_start)
        booking = await self._with_retries(
            "reschedule_booking",
            lambda: self._commit_reschedule(booking_id, new_start, deadline),
        )
        log.info(
            "Booking %s rescheduled to %s with host %s",
            booking.id, booking.start.isoformat(), booking.host_id,
        )
        await self._notify(booking, "rescheduled")
        return booking

    async def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel a booking. Cancelling an already cancelled booking is a no-op."""
        changes = {
            "cancel_reason": reason,
            "notes": f"Cancelled: {reason}" if reason else "Cancelled",
        }
        return await self._transition(booking_id, BookingStatus.CANCELLED, "cancelled", changes)

    async def confirm_booking(self, booking_id: str) -> Booking:
        return await self._transition(booking_id, BookingStatus.CONFIRMED, "confirmed")

    async def complete_booking(self, booking_id: str) -> Booking:
        return await self._transition(booking_id, BookingStatus.COMPLETED, "completed")

    async def mark_no_show(self, booking_id: str) -> Booking:
        return await self._transition(booking_id, BookingStatus.NO_SHOW, "no_show")

    # ── Commit steps ───────────────────────────────────────────────

    async def _commit_create(
        self,
        event_type: EventType,
        slot_start: datetime,
        guest: GuestInfo,
        idempotency_key: Optional[str],
        fingerprint: Optional[str],
        deadline: Optional[Deadline],
    ) -> tuple[Booking, bool]:
        trial = await self._revalidate(event_type, slot_start, deadline)

        async with self._locks.hold(trial.host_id):
            if fingerprint is not None:
                existing = self._store.find_idempotent(fingerprint)
                if existing is not None:
                    return existing, False

            event_type = self._event_type(event_type.id)
            slot = await self._revalidate(event_type, slot_start, deadline)
            if slot.host_id != trial.host_id:
                raise ConcurrencyConflict(
                    f"slot {slot_start.isoformat()} moved from host {trial.host_id} to {slot.host_id}",
                    details={"event_type_id": event_type.id},
                )

            now = self._engine.clock.now()
            booking = Booking(
                id=f"bk_{secrets.token_urlsafe(12)}",
                event_type_id=event_type.id,
                host_id=slot.host_id,
                guest=guest,
                start=slot_start,
                duration=event_type.duration,
                status=(
                    BookingStatus.PENDING
                    if event_type.require_confirmation
                    else BookingStatus.CONFIRMED
                ),
                idempotency_key=idempotency_key,
                idempotency_fingerprint=fingerprint,
                created_at=now,
                updated_at=now,
            )
            self._store.insert_booking(booking)
            if event_type.is_team:
                self._store.increment_rotation(event_type.id)
            current = self._event_type(event_type.id)
            self._store.save_event_type(
                current.model_copy(update={"bookings_count": current.bookings_count + 1})
            )
            return booking, True

    async def _commit_reschedule(
        self, booking_id: str, new_start: datetime, deadline: Optional[Deadline]
    ) -> Booking:
        booking = self._booking(booking_id)
        event_type = self._event_type(booking.event_type_id)
        self._check_reschedulable(booking, event_type)
        trial = await self._revalidate(event_type, new_start, deadline, exclude_booking_id=booking.id)

        async with self._locks.hold(booking.host_id, trial.host_id):
            current = self._booking(booking_id)
            if current.updated_at != booking.updated_at:
                raise ConcurrencyConflict(
                    f"booking {booking_id} changed while rescheduling",
                    details={"booking_id": booking_id},
                )
            slot = await self._revalidate(
                event_type, new_start, deadline, exclude_booking_id=booking.id
            )
            if slot.host_id != trial.host_id:
                raise ConcurrencyConflict(
                    f"slot {new_start.isoformat()} moved from host {trial.host_id} to {slot.host_id}",
                    details={"booking_id": booking_id},
                )
            updated = current.model_copy(
                update={
                    "start": new_start,
                    "host_id": slot.host_id,
                    "duration": event_type.duration,
                    "updated_at": self._touch(current),
                }
            )
            return self._store.update_booking(updated, expected_updated_at=current.updated_at)

    async def _transition(
        self,
        booking_id: str,
        target: BookingStatus,
        change_type: ChangeType,
        changes: Optional[dict] = None,
    ) -> Booking:
        async def attempt() -> tuple[Booking, bool]:
            booking = self._booking(booking_id)
            async with self._locks.hold(booking.host_id):
                current = self._booking(booking_id)
                if current.host_id != booking.host_id:
                    raise ConcurrencyConflict(
                        f"booking {booking_id} moved to another host",
                        details={"booking_id": booking_id},
                    )
                if current.status == target:
                    return current, False
                if not current.can_transition(target):
                    raise InvalidTransition(
                        f"cannot change booking {booking_id} from {current.status.value} to {target.value}",
                        details={"booking_id": booking_id, "status": current.status.value},
                    )
                if target in (BookingStatus.COMPLETED, BookingStatus.NO_SHOW):
                    if self._engine.clock.now() < current.start:
                        raise InvalidTransition(
                            f"booking {booking_id} has not started yet",
                            details={"booking_id": booking_id},
                        )
                update = dict(changes or {})
                update.update(status=target, updated_at=self._touch(current))
                updated = current.model_copy(update=update)
                return (
                    self._store.update_booking(updated, expected_updated_at=current.updated_at),
                    True,
                )

        booking, changed = await self._with_retries(change_type, attempt)
        if changed:
            log.info("Booking %s is now %s", booking.id, booking.status.value)
            await self._notify(booking, change_type)
        return booking

    # ── Helpers ────────────────────────────────────────────────────

    async def _revalidate(
        self,
        event_type: EventType,
        slot_start: datetime,
        deadline: Optional[Deadline],
        exclude_booking_id: Optional[str] = None,
    ) -> AvailableSlot:
        slots = await self._engine.available_slots(
            event_type, slot_start, slot_start, deadline, exclude_booking_id
        )
        for slot in slots:
            if slot.start == slot_start:
                return slot
        raise SlotUnavailable(
            f"slot {slot_start.isoformat()} is no longer available",
            details={"event_type_id": event_type.id, "start": slot_start.isoformat()},
        )

    async def _with_retries(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await fn()
            except ConcurrencyConflict as exc:
                if attempt >= self._max_attempts:
                    log.warning(
                        "%s gave up after %d attempts: %s", operation, attempt, exc.message
                    )
                    raise
                delay = self._backoff * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)
                log.info(
                    "%s conflict on attempt %d (%s); retrying in %.3fs",
                    operation, attempt, exc.message, delay,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def _notify(self, booking: Booking, change_type: ChangeType) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.send(BookingNotification.for_booking(booking, change_type))
        except Exception:
            log.exception("Notification %s for booking %s failed", change_type, booking.id)

    def _touch(self, booking: Booking) -> datetime:
        """A timestamp strictly later than the booking's last update."""
        return max(self._engine.clock.now(), booking.updated_at + timedelta(microseconds=1))

    def _check_reschedulable(self, booking: Booking, event_type: EventType) -> None:
        if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            raise InvalidTransition(
                f"booking {booking.id} is {booking.status.value} and cannot be rescheduled",
                details={"booking_id": booking.id, "status": booking.status.value},
            )
        if not event_type.allow_reschedule:
            raise InvalidTransition(
                f"event type {event_type.id} does not allow rescheduling",
                details={"booking_id": booking.id},
            )

    def _event_type(self, event_type_id: str) -> EventType:
        event_type = self._store.get_event_type(event_type_id)
        if event_type is None:
            raise NotFound(f"event type {event_type_id} not found")
        return event_type

    def _booking(self, booking_id: str) -> Booking:
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"booking {booking_id} not found")
        return booking
