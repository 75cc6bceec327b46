# nextmeet/schemas/meeting.py
from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from nextmeet.schemas.provider import ProviderId

DEFAULT_MEETING_TITLE = "Untitled Event"


def _is_aware(value: Any) -> bool:
    return isinstance(value, datetime) and value.tzinfo is not None and value.utcoffset() is not None


class Meeting(BaseModel):
    """
    A single calendar entry normalized from any provider.

    Instances are immutable; every refresh recreates them wholesale.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        description="Provider-prefixed identifier, unique across all providers.",
        examples=["google:5t1h0p0c8v1"],
    )
    provider: ProviderId = Field(..., description="Source provider.", examples=["google"])
    title: str = Field(DEFAULT_MEETING_TITLE, description="Meeting title; never empty.")
    start_time: AwareDatetime = Field(..., description="Timezone-aware start instant.")
    end_time: AwareDatetime = Field(..., description="Timezone-aware end instant (>= start_time).")
    is_all_day: bool = Field(False, description="True for day-granular entries.")
    location: str | None = None
    notes: str | None = None
    join_url: str | None = Field(
        None,
        description="Video-meeting link recognised from a known platform host.",
        examples=["https://us02web.zoom.us/j/123456789"],
    )
    calendar_name: str = Field("Calendar", description="Display name of the source calendar.")
    calendar_color: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            data["title"] = DEFAULT_MEETING_TITLE
        start, end = data.get("start_time"), data.get("end_time")
        if _is_aware(start) and _is_aware(end) and end < start:
            data["end_time"] = start
        return data

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def minutes_until_start(self, now: datetime) -> int:
        """
        Whole minutes until start, floored (negative once started).
        """
        return math.floor((self.start_time - now).total_seconds() / 60)

    def is_in_progress(self, now: datetime) -> bool:
        return self.start_time <= now < self.end_time

    def has_ended(self, now: datetime) -> bool:
        return now >= self.end_time

    def has_started(self, now: datetime) -> bool:
        return now >= self.start_time


class UrgencyLevel(str, Enum):
    """
    Coarse classification of how soon the next meeting starts.
    """

    NONE = "none"
    NORMAL = "normal"
    APPROACHING = "approaching"
    SOON = "soon"
    IMMINENT = "imminent"


# Upper bounds (exclusive, in minutes) for each escalated level.
IMMINENT_BELOW_MINUTES = 5
SOON_BELOW_MINUTES = 15
APPROACHING_BELOW_MINUTES = 30


def urgency_for_minutes(minutes_until_start: int) -> UrgencyLevel:
    """
    Map minutes-until-start to an urgency level.

    < 0       -> normal (already started)
    [0, 5)    -> imminent
    [5, 15)   -> soon
    [15, 30)  -> approaching
    >= 30     -> normal
    """
    if minutes_until_start < 0:
        return UrgencyLevel.NORMAL
    if minutes_until_start < IMMINENT_BELOW_MINUTES:
        return UrgencyLevel.IMMINENT
    if minutes_until_start < SOON_BELOW_MINUTES:
        return UrgencyLevel.SOON
    if minutes_until_start < APPROACHING_BELOW_MINUTES:
        return UrgencyLevel.APPROACHING
    return UrgencyLevel.NORMAL
