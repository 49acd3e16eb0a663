"""Availability and booking engine for hosts and teams."""

from booking_engine.errors import (
    ConcurrencyConflict,
    DeadlineExceeded,
    InvalidTransition,
    NotFound,
    SchedulingError,
    SlotUnavailable,
    ValidationError,
)
from booking_engine.service import SchedulingService

__version__ = "0.1.0"

__all__ = [
    "ConcurrencyConflict",
    "DeadlineExceeded",
    "InvalidTransition",
    "NotFound",
    "SchedulingError",
    "SchedulingService",
    "SlotUnavailable",
    "ValidationError",
]
