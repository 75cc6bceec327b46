# nextmeet/schemas/snapshot.py
from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from nextmeet.schemas.meeting import Meeting, UrgencyLevel


class AggregateSnapshot(BaseModel):
    """
    The published, merged view of today's meetings across all providers.

    A snapshot is replaced atomically once per refresh cycle; consumers never
    see a half-merged state.
    """

    model_config = ConfigDict(frozen=True)

    todays_meetings: List[Meeting] = Field(
        default_factory=list,
        description=(
            "Merged meetings for the local day. All-day entries (when shown) come "
            "first, then timed entries, each ascending by start time."
        ),
    )
    next_meeting: Meeting | None = Field(
        None,
        description="Earliest upcoming timed meeting, or the in-progress one if none remain upcoming.",
    )
    urgency_level: UrgencyLevel = Field(UrgencyLevel.NONE, examples=["soon"])
    degraded: bool = Field(
        False,
        description="True when a network-backed provider failed during the cycle.",
    )
    last_error: str | None = Field(
        None,
        description="Short user-facing summary of the last failure; cleared on a clean cycle.",
        examples=["Some calendars couldn't be reached. Showing available data."],
    )
    provider_errors: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-provider failure reasons for the cycle, keyed by provider id.",
    )
    cycle: int = Field(0, description="Monotonic refresh cycle that produced this snapshot.")
    generated_at: datetime | None = Field(None, description="When the snapshot was computed.")

    @property
    def no_meetings_remaining(self) -> bool:
        return self.next_meeting is None
