"""Pydantic models for hosts and their weekly availability."""

from __future__ import annotations

from datetime import date, time
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


END_OF_DAY = time.max


class TimeOfDayWindow(BaseModel):
    """A recurring window such as 09:00-17:00, in the host's local time.

    An ``end`` of ``"24:00"`` means the window runs up to the next local
    midnight; it is stored as :data:`END_OF_DAY`.
    """

    start: time
    end: time

    @field_validator("end", mode="before")
    @classmethod
    def _midnight_end(cls, value):
        if isinstance(value, str) and value.strip() in ("24:00", "24:00:00"):
            return END_OF_DAY
        return value

    @field_serializer("end")
    def _serialize_end(self, value: time):
        return "24:00" if value == END_OF_DAY else value

    @property
    def ends_at_midnight(self) -> bool:
        return self.end == END_OF_DAY

    @model_validator(mode="after")
    def _start_before_end(self) -> "TimeOfDayWindow":
        if self.start >= self.end:
            raise ValueError(f"window start {self.start} must be before end {self.end}")
        return self


class WeeklyAvailability(BaseModel):
    """Seven ordered window lists, one per weekday. Any day may be empty."""

    monday: list[TimeOfDayWindow] = []
    tuesday: list[TimeOfDayWindow] = []
    wednesday: list[TimeOfDayWindow] = []
    thursday: list[TimeOfDayWindow] = []
    friday: list[TimeOfDayWindow] = []
    saturday: list[TimeOfDayWindow] = []
    sunday: list[TimeOfDayWindow] = []

    @field_validator(*WEEKDAYS)
    @classmethod
    def _sorted_without_overlap(cls, windows: list[TimeOfDayWindow]) -> list[TimeOfDayWindow]:
        ordered = sorted(windows, key=lambda w: w.start)
        for prev, cur in zip(ordered, ordered[1:]):
            if cur.start < prev.end:
                raise ValueError(
                    f"windows {prev.start}-{prev.end} and {cur.start}-{cur.end} overlap"
                )
        return ordered

    def for_weekday(self, day: date) -> list[TimeOfDayWindow]:
        return getattr(self, WEEKDAYS[day.weekday()])

    @classmethod
    def workweek(cls, start: str = "09:00", end: str = "17:00") -> "WeeklyAvailability":
        """Monday to Friday ``start``-``end``, weekends off."""
        day = [{"start": start, "end": end}]
        return cls(**{name: day for name in WEEKDAYS[:5]})


class ConnectedCalendar(BaseModel):
    """An external calendar consulted for busy intervals only."""

    id: str
    provider: Literal["google", "outlook", "apple", "caldav", "static"]
    calendar_id: str = "primary"
    check_for_conflicts: bool = True


class Host(BaseModel):
    """A schedulable identity. Never deleted, only deactivated."""

    id: str
    name: str
    email: str = ""
    timezone: str = "UTC"
    availability: WeeklyAvailability = Field(default_factory=WeeklyAvailability.workweek)
    connected_calendars: list[ConnectedCalendar] = []
    active: bool = True

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
