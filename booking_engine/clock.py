"""Injectable wall clock and monotonic query deadlines."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from booking_engine.errors import DeadlineExceeded


class Clock(ABC):
    """Source of the current instant. Always returns an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current instant."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FixedClock(Clock):
    """A clock that only moves when told to. Used by tests and replays."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires an aware datetime")
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant.astimezone(timezone.utc)

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by ``timedelta(**kwargs)`` and return the new instant."""
        self._instant += timedelta(**kwargs)
        return self._instant


class Deadline:
    """A point on the monotonic clock after which work must stop.

    ``Deadline(None)`` never expires.  ``check()`` raises
    :class:`DeadlineExceeded` once the budget is spent.
    """

    def __init__(
        self,
        timeout: Optional[float],
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._monotonic = monotonic
        self.timeout = timeout
        self._expires_at = None if timeout is None else monotonic() + timeout

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._monotonic())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._monotonic() >= self._expires_at

    def check(self, what: str = "operation") -> None:
        if self.expired:
            raise DeadlineExceeded(
                f"{what} exceeded its {self.timeout}s deadline",
                details={"timeout": self.timeout},
            )
