"""FastAPI application: public booking API plus admin endpoints.

Public endpoints:

  GET  /health                               Health check
  GET  /event-types/{id}/slots               Available slots in a range
  POST /bookings                             Book a slot (409 if taken)
  GET  /bookings/{id}                        Fetch a booking
  POST /bookings/{id}/reschedule             Move a booking (409 if taken)
  POST /bookings/{id}/cancel                 Cancel a booking (idempotent)

Admin endpoints (bearer token, see auth.py):

  POST  /hosts                               Provision a host
  PUT   /hosts/{id}/availability             Replace weekly availability
  POST  /hosts/{id}/calendars                Connect an external calendar
  POST  /hosts/{id}/deactivate               Deactivate a host
  POST  /event-types                         Create an event type
  GET   /event-types/{id}                    Fetch an event type
  PATCH /event-types/{id}                    Update an event type
  GET   /bookings                            List bookings with filters
  POST  /bookings/{id}/confirm|complete|no-show   Status changes
"""

from __future__ import annotations

# Load .env into os.environ early so settings and collaborators see it.
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from booking_engine.auth import require_admin_token
from booking_engine.config import settings
from booking_engine.errors import SchedulingError, ValidationError
from booking_engine.models import Booking, BookingStatus, ConnectedCalendar, EventType, Host, WeeklyAvailability
from booking_engine.schemas import (
    BookingCancel,
    BookingCreate,
    BookingReschedule,
    CalendarConnect,
    EventTypeCreate,
    EventTypeUpdate,
    HostCreate,
    SlotOut,
    SlotsResponse,
)
from booking_engine.service import SchedulingService

# Configure root logger early so all booking_engine loggers have a handler
# and are visible when run via `uvicorn booking_engine.app:app`.
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

log = logging.getLogger("booking_engine.app")

_START_TIME = time.time()


def create_app(service: Optional[SchedulingService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Booking Engine",
        description="Availability and booking engine for hosts and teams",
        version="0.1.0",
    )
    if service is None:
        for warning in settings.validate_startup():
            log.warning(warning)
        service = SchedulingService.from_settings(settings)
    app.state.service = service

    admin = [Depends(require_admin_token)]

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
        if exc.status_code >= 500:
            log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check. Confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Availability ───────────────────────────────────────────

    @app.get("/event-types/{event_type_id}/slots", response_model=SlotsResponse)
    async def available_slots(
        event_type_id: str,
        start: datetime,
        end: datetime,
        timezone: str = Query(default="UTC"),
        timeout: Optional[float] = Query(default=None, ge=0),
    ) -> SlotsResponse:
        """Available slots, with timestamps rendered in the guest's timezone.

        ``timeout`` (seconds) overrides the configured query deadline.
        """
        tz = _zone(timezone)
        slots = await service.get_available_slots(event_type_id, start, end, timeout=timeout)
        return SlotsResponse(
            event_type_id=event_type_id,
            timezone=timezone,
            slots=[
                SlotOut(
                    start=s.start.astimezone(tz),
                    end=s.end.astimezone(tz),
                    host_id=s.host_id,
                    host_name=s.host_name,
                )
                for s in slots
            ],
        )

    # ── Bookings ───────────────────────────────────────────────

    @app.post("/bookings", response_model=Booking, status_code=201)
    async def create_booking(body: BookingCreate) -> Booking:
        return await service.create_booking(
            body.event_type_id, body.start, body.guest, body.idempotency_key
        )

    @app.get("/bookings/{booking_id}", response_model=Booking)
    async def get_booking(booking_id: str) -> Booking:
        return service.get_booking(booking_id)

    @app.post("/bookings/{booking_id}/reschedule", response_model=Booking)
    async def reschedule_booking(booking_id: str, body: BookingReschedule) -> Booking:
        return await service.reschedule_booking(booking_id, body.start)

    @app.post("/bookings/{booking_id}/cancel", response_model=Booking)
    async def cancel_booking(booking_id: str, body: Optional[BookingCancel] = None) -> Booking:
        return await service.cancel_booking(booking_id, body.reason if body else None)

    @app.get("/bookings", response_model=list[Booking], dependencies=admin)
    async def list_bookings(
        host_id: Optional[str] = None,
        event_type_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        return service.list_bookings(host_id, event_type_id, status, start, end)

    @app.post("/bookings/{booking_id}/confirm", response_model=Booking, dependencies=admin)
    async def confirm_booking(booking_id: str) -> Booking:
        return await service.confirm_booking(booking_id)

    @app.post("/bookings/{booking_id}/complete", response_model=Booking, dependencies=admin)
    async def complete_booking(booking_id: str) -> Booking:
        return await service.complete_booking(booking_id)

    @app.post("/bookings/{booking_id}/no-show", response_model=Booking, dependencies=admin)
    async def mark_no_show(booking_id: str) -> Booking:
        return await service.mark_no_show(booking_id)

    # ── Hosts (admin) ──────────────────────────────────────────

    @app.post("/hosts", response_model=Host, status_code=201, dependencies=admin)
    async def create_host(body: HostCreate) -> Host:
        return service.create_host(
            name=body.name,
            email=body.email,
            timezone=body.timezone,
            availability=body.availability,
            host_id=body.id,
        )

    @app.put("/hosts/{host_id}/availability", response_model=Host, dependencies=admin)
    async def update_availability(host_id: str, body: WeeklyAvailability) -> Host:
        return service.update_availability(host_id, body)

    @app.post(
        "/hosts/{host_id}/calendars",
        response_model=ConnectedCalendar,
        status_code=201,
        dependencies=admin,
    )
    async def connect_calendar(host_id: str, body: CalendarConnect) -> ConnectedCalendar:
        return service.connect_calendar(
            host_id, body.provider, body.calendar_id, body.check_for_conflicts
        )

    @app.post("/hosts/{host_id}/deactivate", response_model=Host, dependencies=admin)
    async def deactivate_host(host_id: str) -> Host:
        return service.deactivate_host(host_id)

    # ── Event types (admin) ────────────────────────────────────

    @app.post("/event-types", response_model=EventType, status_code=201, dependencies=admin)
    async def create_event_type(body: EventTypeCreate) -> EventType:
        options = body.model_dump(exclude_none=True)
        return service.create_event_type(
            options.pop("owner_id"), options.pop("name"), options.pop("duration"), **options
        )

    @app.get("/event-types/{event_type_id}", response_model=EventType, dependencies=admin)
    async def get_event_type(event_type_id: str) -> EventType:
        return service.get_event_type(event_type_id)

    @app.patch("/event-types/{event_type_id}", response_model=EventType, dependencies=admin)
    async def update_event_type(event_type_id: str, body: EventTypeUpdate) -> EventType:
        return service.update_event_type(event_type_id, **body.model_dump(exclude_unset=True))

    return app


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"unknown timezone {name!r}", details={"timezone": name})


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "booking_engine.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
