# nextmeet/services/meeting_selection.py
"""
Pure functions turning per-provider meeting lists into the published view.

Kept free of I/O so the aggregator's refresh path and the scheduler's
urgency tick compute "next meeting" identically.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from nextmeet.schemas.meeting import Meeting, UrgencyLevel, urgency_for_minutes


def merge_meetings(batches: Iterable[Iterable[Meeting]]) -> List[Meeting]:
    """
    Concatenate provider batches and sort by start time.

    `sorted` is stable, so meetings with equal start times keep provider
    order, then per-provider order.
    """
    merged = [meeting for batch in batches for meeting in batch]
    return sorted(merged, key=lambda m: m.start_time)


def partition_all_day(meetings: List[Meeting]) -> Tuple[List[Meeting], List[Meeting]]:
    all_day = [m for m in meetings if m.is_all_day]
    timed = [m for m in meetings if not m.is_all_day]
    return all_day, timed


def todays_view(meetings: List[Meeting], show_all_day: bool) -> List[Meeting]:
    """
    All-day entries first (when shown), then timed ones; both groups keep
    ascending start order.
    """
    all_day, timed = partition_all_day(meetings)
    return (all_day + timed) if show_all_day else timed


def select_next_meeting(
    meetings: List[Meeting],
    now: datetime,
) -> Tuple[Optional[Meeting], UrgencyLevel]:
    """
    Pick the meeting to surface and its urgency.

    The earliest timed meeting that has not started wins. Failing that, the
    earliest one still in progress is returned with `normal` urgency. With
    neither, there is no next meeting and urgency is `none`. All-day entries
    never qualify.
    """
    timed = sorted((m for m in meetings if not m.is_all_day), key=lambda m: m.start_time)

    for meeting in timed:
        if not meeting.has_started(now):
            return meeting, urgency_for_minutes(meeting.minutes_until_start(now))

    for meeting in timed:
        if meeting.is_in_progress(now):
            return meeting, UrgencyLevel.NORMAL

    return None, UrgencyLevel.NONE
