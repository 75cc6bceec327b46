# nextmeet/services/providers/google.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from nextmeet.schemas.meeting import Meeting
from nextmeet.schemas.provider import ProviderId
from nextmeet.services.api_client import CalendarApiClient
from nextmeet.services.errors import FetchError, FetchErrorKind
from nextmeet.services.join_url import extract_join_url
from nextmeet.services.oauth_config import GOOGLE_CALENDAR_API_BASE
from nextmeet.services.providers.base import OAuthCalendarProvider
from nextmeet.services.token_manager import TokenLifecycleManager

logger = logging.getLogger(__name__)

PAGE_SIZE = 250
# Guard against a misbehaving API handing out page tokens forever.
MAX_PAGES = 20

CALENDAR_LIST_FIELDS = "items(id,summary,summaryOverride,backgroundColor),nextPageToken"
EVENT_FIELDS = (
    "items(id,status,summary,location,description,start,end,"
    "hangoutLink,conferenceData/entryPoints),nextPageToken"
)


@dataclass(frozen=True)
class _GoogleCalendar:
    id: str
    name: str
    color: Optional[str]


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_rfc3339(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _items(payload: Dict[str, Any], path: str) -> List[Dict[str, Any]]:
    items = payload.get("items", [])
    if not isinstance(items, list):
        raise FetchError(FetchErrorKind.PARSE, f"{path} returned malformed items")
    return [item for item in items if isinstance(item, dict)]


class GoogleCalendarProvider(OAuthCalendarProvider):
    """
    Google Calendar v3 provider.

    Enumerates the user's calendar list, then queries each calendar's events
    for the window with `singleEvents=true` so recurring series are expanded
    server-side.
    """

    provider_id = ProviderId.GOOGLE

    def __init__(
        self,
        tokens: TokenLifecycleManager,
        *,
        client: Optional[CalendarApiClient] = None,
        timeout_seconds: float = 10.0,
        tz: Optional[tzinfo] = None,
    ) -> None:
        super().__init__(tokens)
        self._client = client or CalendarApiClient(
            base_url=GOOGLE_CALENDAR_API_BASE,
            token_source=tokens.ensure_valid,
            timeout_seconds=timeout_seconds,
        )
        self._tz = tz

    async def _list_calendars(self) -> List[_GoogleCalendar]:
        path = "/users/me/calendarList"
        calendars: List[_GoogleCalendar] = []
        page_token: Optional[str] = None

        for _ in range(MAX_PAGES):
            params: Dict[str, Any] = {
                "minAccessRole": "reader",
                "maxResults": PAGE_SIZE,
                "fields": CALENDAR_LIST_FIELDS,
            }
            if page_token:
                params["pageToken"] = page_token

            payload = await self._client.get_json(path, params=params)
            for item in _items(payload, path):
                calendar_id = item.get("id")
                if not calendar_id:
                    continue
                calendars.append(
                    _GoogleCalendar(
                        id=calendar_id,
                        name=item.get("summaryOverride") or item.get("summary") or calendar_id,
                        color=item.get("backgroundColor"),
                    )
                )

            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        return calendars

    async def _list_events(
        self,
        calendar: _GoogleCalendar,
        start: datetime,
        end: datetime,
    ) -> List[Meeting]:
        path = f"/calendars/{quote(calendar.id, safe='')}/events"
        meetings: List[Meeting] = []
        page_token: Optional[str] = None

        for _ in range(MAX_PAGES):
            params: Dict[str, Any] = {
                "timeMin": _rfc3339(start),
                "timeMax": _rfc3339(end),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": PAGE_SIZE,
                "fields": EVENT_FIELDS,
            }
            if page_token:
                params["pageToken"] = page_token

            payload = await self._client.get_json(path, params=params)
            for item in _items(payload, path):
                meeting = self._parse_event(item, calendar)
                if meeting is not None:
                    meetings.append(meeting)

            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        return meetings

    async def _fetch_meetings(self, start: datetime, end: datetime) -> List[Meeting]:
        calendars = await self._list_calendars()
        batches = await asyncio.gather(
            *(self._list_events(calendar, start, end) for calendar in calendars),
            return_exceptions=True,
        )

        meetings: List[Meeting] = []
        seen: set[str] = set()
        for batch in batches:
            if isinstance(batch, BaseException):
                raise batch
            # Shared calendars can surface the same event twice.
            for meeting in batch:
                if meeting.id not in seen:
                    seen.add(meeting.id)
                    meetings.append(meeting)
        return meetings

    def _local_midnight(self, day: date) -> datetime:
        if self._tz is not None:
            return datetime.combine(day, time.min, tzinfo=self._tz)
        return datetime.combine(day, time.min).astimezone()

    def _parse_bound(self, bound: Dict[str, Any]) -> tuple[datetime, bool]:
        # All-day events have "date" not "dateTime"
        if "dateTime" in bound:
            return _parse_rfc3339(bound["dateTime"]), False
        if "date" in bound:
            return self._local_midnight(date.fromisoformat(bound["date"])), True
        raise ValueError("event bound has neither dateTime nor date")

    def _parse_event(self, item: Dict[str, Any], calendar: _GoogleCalendar) -> Optional[Meeting]:
        event_id = item.get("id")
        if not event_id or item.get("status") == "cancelled":
            return None

        try:
            start, is_all_day = self._parse_bound(item.get("start") or {})
            end, _ = self._parse_bound(item.get("end") or item.get("start") or {})
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping Google event %s with unparseable times: %s", event_id, exc)
            return None

        conference = item.get("conferenceData")
        entry_points = conference.get("entryPoints") if isinstance(conference, dict) else None
        video_entry_points = [
            entry.get("uri")
            for entry in (entry_points if isinstance(entry_points, list) else [])
            if isinstance(entry, dict) and entry.get("entryPointType") == "video"
        ]

        location = item.get("location")
        notes = item.get("description")

        return Meeting(
            id=f"{self.provider_id.value}:{event_id}",
            provider=self.provider_id,
            title=item.get("summary"),
            start_time=start,
            end_time=end,
            is_all_day=is_all_day,
            location=location,
            notes=notes,
            join_url=extract_join_url(
                online_meeting_urls=[item.get("hangoutLink"), *video_entry_points],
                location=location,
                notes=notes,
            ),
            calendar_name=calendar.name,
            calendar_color=calendar.color,
        )
