"""Durable state for hosts, event types, bookings and assignment counters.

``SchedulingStore`` keeps everything in process memory.
``JsonlSchedulingStore`` adds JSONL persistence under a data directory so
state, including the round-robin counters, survives restarts.

The store is the last line of defence for the no-overlap invariant:
inserting or moving a booking onto time its host already has booked raises
:class:`ConcurrencyConflict`, the same way a range constraint would in a
relational database.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from booking_engine.errors import ConcurrencyConflict, NotFound
from booking_engine.intervals import overlaps
from booking_engine.models import Booking, BookingStatus, EventType, Host

log = logging.getLogger("booking_engine.store")


class SchedulingStore:
    """In-memory store. Returned models must be treated as read-only."""

    def __init__(self) -> None:
        self._hosts: dict[str, Host] = {}
        self._event_types: dict[str, EventType] = {}
        self._bookings: dict[str, Booking] = {}
        self._rotation: dict[str, int] = {}
        self._idempotency: dict[str, str] = {}  # fingerprint -> booking id, derived from bookings

    # ── Hosts ──────────────────────────────────────────────────────

    def get_host(self, host_id: str) -> Optional[Host]:
        return self._hosts.get(host_id)

    def save_host(self, host: Host) -> Host:
        self._hosts[host.id] = host
        self._persist("hosts")
        return host

    def list_hosts(self) -> list[Host]:
        return list(self._hosts.values())

    # ── Event types ────────────────────────────────────────────────

    def get_event_type(self, event_type_id: str) -> Optional[EventType]:
        return self._event_types.get(event_type_id)

    def save_event_type(self, event_type: EventType) -> EventType:
        self._event_types[event_type.id] = event_type
        self._persist("event_types")
        return event_type

    def list_event_types(self, owner_id: Optional[str] = None) -> list[EventType]:
        types = list(self._event_types.values())
        if owner_id is not None:
            types = [t for t in types if t.owner_id == owner_id]
        return types

    # ── Bookings ───────────────────────────────────────────────────

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def list_bookings(
        self,
        host_ids: Optional[Iterable[str]] = None,
        event_type_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_cancelled: bool = True,
    ) -> list[Booking]:
        """Bookings matching every given filter, ordered by start.

        ``start``/``end`` bound the booking's start instant (inclusive).
        """
        wanted_hosts = set(host_ids) if host_ids is not None else None
        result = []
        for b in self._bookings.values():
            if wanted_hosts is not None and b.host_id not in wanted_hosts:
                continue
            if event_type_id is not None and b.event_type_id != event_type_id:
                continue
            if status is not None and b.status != status:
                continue
            if not include_cancelled and not b.is_active:
                continue
            if start is not None and b.start < start:
                continue
            if end is not None and b.start > end:
                continue
            result.append(b)
        return sorted(result, key=lambda b: b.start)

    def insert_booking(self, booking: Booking) -> Booking:
        if booking.id in self._bookings:
            raise ConcurrencyConflict(f"booking {booking.id} already exists")
        self._assert_host_free(booking)
        self._bookings[booking.id] = booking
        self._index_idempotent(booking)
        self._persist("bookings")
        return booking

    def update_booking(self, booking: Booking, expected_updated_at: Optional[datetime] = None) -> Booking:
        """Replace a stored booking.

        With ``expected_updated_at`` the write only succeeds if nobody else
        changed the booking since it was read.
        """
        current = self._bookings.get(booking.id)
        if current is None:
            raise NotFound(f"booking {booking.id} not found")
        if expected_updated_at is not None and current.updated_at != expected_updated_at:
            raise ConcurrencyConflict(
                f"booking {booking.id} was modified concurrently",
                details={"booking_id": booking.id},
            )
        self._assert_host_free(booking)
        self._bookings[booking.id] = booking
        self._persist("bookings")
        return booking

    def _assert_host_free(self, booking: Booking) -> None:
        if not booking.is_active:
            return
        for other in self._bookings.values():
            if other.id == booking.id or not other.is_active or other.host_id != booking.host_id:
                continue
            if overlaps(booking.start, booking.end, other.start, other.end):
                raise ConcurrencyConflict(
                    f"host {booking.host_id} already has booking {other.id} at that time",
                    details={"host_id": booking.host_id, "conflicting_booking_id": other.id},
                )

    # ── Counters ───────────────────────────────────────────────────

    def get_rotation(self, event_type_id: str) -> int:
        return self._rotation.get(event_type_id, 0)

    def increment_rotation(self, event_type_id: str) -> int:
        value = self._rotation.get(event_type_id, 0) + 1
        self._rotation[event_type_id] = value
        self._persist("counters")
        return value

    def find_idempotent(self, fingerprint: str) -> Optional[Booking]:
        booking_id = self._idempotency.get(fingerprint)
        return self._bookings.get(booking_id) if booking_id else None

    def _index_idempotent(self, booking: Booking) -> None:
        if booking.idempotency_fingerprint:
            self._idempotency[booking.idempotency_fingerprint] = booking.id

    def _persist(self, collection: str) -> None:
        """Hook for durable subclasses; the in-memory store keeps nothing."""


class JsonlSchedulingStore(SchedulingStore):
    """SchedulingStore persisted as JSONL files in ``data_dir``.

    One file per collection (``hosts.jsonl``, ``event_types.jsonl``,
    ``bookings.jsonl``) with one JSON object per line, plus
    ``counters.json`` for rotation counters.  Idempotency fingerprints live
    on the booking records and are re-indexed on load.  Each write rewrites
    the affected file through a temporary file and an atomic rename.
    """

    _FILES = {
        "hosts": "hosts.jsonl",
        "event_types": "event_types.jsonl",
        "bookings": "bookings.jsonl",
        "counters": "counters.json",
    }

    def __init__(self, data_dir: str | Path) -> None:
        super().__init__()
        self._dir = Path(data_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def _path(self, collection: str) -> Path:
        return self._dir / self._FILES[collection]

    def _load(self) -> None:
        for host in self._read_jsonl("hosts"):
            h = Host.model_validate(host)
            self._hosts[h.id] = h
        for et in self._read_jsonl("event_types"):
            e = EventType.model_validate(et)
            self._event_types[e.id] = e
        for booking in self._read_jsonl("bookings"):
            b = Booking.model_validate(booking)
            self._bookings[b.id] = b
            self._index_idempotent(b)

        counters = self._path("counters")
        if counters.exists():
            data = json.loads(counters.read_text(encoding="utf-8") or "{}")
            self._rotation = {k: int(v) for k, v in data.get("rotation", {}).items()}

        log.info(
            "Loaded store from %s: %d hosts, %d event types, %d bookings",
            self._dir, len(self._hosts), len(self._event_types), len(self._bookings),
        )

    def _read_jsonl(self, collection: str) -> list[dict]:
        path = self._path(collection)
        if not path.exists():
            return []
        rows = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line:
                rows.append(json.loads(line))
        return rows

    def _persist(self, collection: str) -> None:
        if collection == "counters":
            text = json.dumps({"rotation": self._rotation})
        else:
            items = {
                "hosts": self._hosts,
                "event_types": self._event_types,
                "bookings": self._bookings,
            }[collection]
            text = "".join(item.model_dump_json() + "\n" for item in items.values())

        path = self._path(collection)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
