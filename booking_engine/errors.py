"""Domain errors raised by the booking engine.

Each error carries a machine-readable ``code`` and optional ``details`` and
knows the HTTP status it maps to, so the API layer can translate any of
them with a single exception handler.
"""

from __future__ import annotations

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for every error the engine raises on purpose."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class ValidationError(SchedulingError):
    """Malformed host, event type or team configuration, rejected at write time."""

    status_code = 422


class NotFound(SchedulingError):
    """Unknown host, event type or booking id."""

    status_code = 404


class SlotUnavailable(SchedulingError):
    """The requested slot failed re-validation at commit time."""

    status_code = 409


class InvalidTransition(SchedulingError):
    """The booking's current status does not allow the requested change."""

    status_code = 409


class ConcurrencyConflict(SchedulingError):
    """Lock or constraint contention detected while committing."""

    status_code = 409


class DeadlineExceeded(SchedulingError):
    """A query or commit ran past the caller-supplied deadline."""

    status_code = 504
