"""Pydantic models for bookable event types and their team configuration.

Team distribution is a tagged union keyed on ``kind`` so each policy is an
explicit type instead of a free-form settings blob::

    {"kind": "priority"}
    {"kind": "round_robin"}      # "equal" is accepted as an alias
    {"kind": "availability"}
"""

from __future__ import annotations

import re
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

MINUTES_PER_DAY = 24 * 60


class PriorityPolicy(BaseModel):
    kind: Literal["priority"] = "priority"


class RoundRobinPolicy(BaseModel):
    kind: Literal["round_robin", "equal"] = "round_robin"


class AvailabilityPolicy(BaseModel):
    kind: Literal["availability"] = "availability"


DistributionPolicy = Annotated[
    Union[PriorityPolicy, RoundRobinPolicy, AvailabilityPolicy],
    Field(discriminator="kind"),
]


class TeamMember(BaseModel):
    host_id: str
    priority: int                           # lower rank is tried first
    daily_cap: Optional[int] = Field(default=None, ge=1)


class TeamSettings(BaseModel):
    """Which hosts can take a team event and how load is spread among them."""

    policy: DistributionPolicy = Field(default_factory=RoundRobinPolicy)
    members: list[TeamMember]
    member_daily_cap: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_members(self) -> "TeamSettings":
        if not self.members:
            raise ValueError("a team event needs at least one member")
        host_ids = [m.host_id for m in self.members]
        if len(set(host_ids)) != len(host_ids):
            raise ValueError("team members must be distinct hosts")
        ranks = [m.priority for m in self.members]
        if len(set(ranks)) != len(ranks):
            raise ValueError("team member priorities must be unique")
        return self

    def cap_for(self, member: TeamMember) -> Optional[int]:
        return member.daily_cap if member.daily_cap is not None else self.member_daily_cap

    def member(self, host_id: str) -> Optional[TeamMember]:
        for m in self.members:
            if m.host_id == host_id:
                return m
        return None


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class EventType(BaseModel):
    """A bookable meeting definition. All durations are in minutes."""

    id: str
    owner_id: str
    name: str
    slug: str = ""
    duration: int = Field(gt=0)
    buffer_before: int = Field(default=0, ge=0)
    buffer_after: int = Field(default=0, ge=0)
    slot_interval: int = Field(default=15, gt=0)
    min_notice: int = Field(default=60, ge=0)
    max_advance: int = Field(default=60 * MINUTES_PER_DAY, ge=0)
    max_per_day: Optional[int] = Field(default=None, ge=1)
    require_confirmation: bool = False
    allow_reschedule: bool = True
    team: Optional[TeamSettings] = None
    active: bool = True
    bookings_count: int = 0

    @model_validator(mode="after")
    def _check_limits(self) -> "EventType":
        if self.min_notice > self.max_advance:
            raise ValueError("min_notice must not exceed max_advance")
        if self.buffer_before + self.duration + self.buffer_after > MINUTES_PER_DAY:
            raise ValueError("duration plus buffers must fit in one day")
        if not self.slug:
            self.slug = slugify(self.name)
        return self

    @property
    def is_team(self) -> bool:
        return self.team is not None

    def host_ids(self) -> list[str]:
        """Hosts whose calendars matter for this event type."""
        if self.team is not None:
            return [m.host_id for m in self.team.members]
        return [self.owner_id]
