# nextmeet/services/providers/outlook.py
from __future__ import annotations

import asyncio
import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timezone, tzinfo
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from nextmeet.schemas.meeting import Meeting
from nextmeet.schemas.provider import ProviderId
from nextmeet.services.api_client import CalendarApiClient
from nextmeet.services.errors import FetchError, FetchErrorKind
from nextmeet.services.join_url import extract_join_url
from nextmeet.services.oauth_config import GRAPH_API_BASE
from nextmeet.services.providers.base import OAuthCalendarProvider
from nextmeet.services.token_manager import TokenLifecycleManager

logger = logging.getLogger(__name__)

PAGE_SIZE = 250
MAX_PAGES = 20
MAX_NOTES_LENGTH = 500

EVENT_SELECT = "subject,start,end,location,body,isAllDay,isCancelled,onlineMeeting,webLink"
UTC_PREFER_HEADER = {"Prefer": 'outlook.timezone="UTC"'}

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class _OutlookCalendar:
    id: str
    name: str
    color: Optional[str]


def _graph_datetime_param(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.0000000Z")


def parse_graph_datetime(value: str) -> datetime:
    """
    Parse a Graph `dateTimeTimeZone.dateTime` value.

    Graph emits seven fractional digits ("2024-05-01T09:00:00.0000000"),
    which `fromisoformat` rejects on older interpreters, so the fraction is
    cut to microseconds. Values without an offset are UTC because every
    request carries the `outlook.timezone="UTC"` preference.
    """
    value = value.strip().replace("Z", "+00:00")
    offset = ""
    for sign in ("+", "-"):
        idx = value.rfind(sign)
        if idx > value.find("T") > 0:
            value, offset = value[:idx], value[idx:]
            break
    if "." in value:
        head, fraction = value.split(".", 1)
        value = f"{head}.{fraction[:6].ljust(6, '0')}"

    parsed = datetime.fromisoformat(value + offset)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def html_to_text(content: Optional[str]) -> Optional[str]:
    if not content:
        return None
    text = html.unescape(_TAG_PATTERN.sub(" ", content))
    text = _WHITESPACE_PATTERN.sub(" ", text).strip()
    return text or None


class OutlookCalendarProvider(OAuthCalendarProvider):
    """
    Microsoft Graph v1.0 provider.

    Enumerates `/me/calendars`, then reads each calendar's `calendarView`
    for the window. Recurring series come back expanded, times in UTC.
    """

    provider_id = ProviderId.OUTLOOK

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
            base_url=GRAPH_API_BASE,
            token_source=tokens.ensure_valid,
            timeout_seconds=timeout_seconds,
            default_headers=UTC_PREFER_HEADER,
        )
        self._tz = tz

    async def _get_pages(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Follow `@odata.nextLink` until exhausted. The link already encodes
        the query, so params are only sent with the first request.
        """
        items: List[Dict[str, Any]] = []
        url: Optional[str] = path
        page_params: Optional[Dict[str, Any]] = params

        for _ in range(MAX_PAGES):
            if url is None:
                break
            payload = await self._client.get_json(url, params=page_params)
            value = payload.get("value", [])
            if not isinstance(value, list):
                raise FetchError(FetchErrorKind.PARSE, f"{path} returned a malformed value list")
            items.extend(item for item in value if isinstance(item, dict))

            url = payload.get("@odata.nextLink")
            page_params = None

        return items

    async def _list_calendars(self) -> List[_OutlookCalendar]:
        items = await self._get_pages("/me/calendars", {"$select": "id,name,hexColor"})
        calendars = []
        for item in items:
            calendar_id = item.get("id")
            if not calendar_id:
                continue
            calendars.append(
                _OutlookCalendar(
                    id=calendar_id,
                    name=item.get("name") or "Calendar",
                    color=item.get("hexColor") or None,
                )
            )
        return calendars

    async def _list_events(
        self,
        calendar: _OutlookCalendar,
        start: datetime,
        end: datetime,
    ) -> List[Meeting]:
        path = f"/me/calendars/{quote(calendar.id, safe='')}/calendarView"
        params = {
            "startDateTime": _graph_datetime_param(start),
            "endDateTime": _graph_datetime_param(end),
            "$select": EVENT_SELECT,
            "$orderby": "start/dateTime",
            "$top": PAGE_SIZE,
        }
        meetings: List[Meeting] = []
        for item in await self._get_pages(path, params):
            meeting = self._parse_event(item, calendar)
            if meeting is not None:
                meetings.append(meeting)
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
            for meeting in batch:
                if meeting.id not in seen:
                    seen.add(meeting.id)
                    meetings.append(meeting)
        return meetings

    def _to_local_midnight(self, value: datetime) -> datetime:
        day = value.date()
        if self._tz is not None:
            return datetime.combine(day, time.min, tzinfo=self._tz)
        return datetime.combine(day, time.min).astimezone()

    def _parse_event(self, item: Dict[str, Any], calendar: _OutlookCalendar) -> Optional[Meeting]:
        event_id = item.get("id")
        if not event_id or item.get("isCancelled"):
            return None

        try:
            start = parse_graph_datetime((item.get("start") or {})["dateTime"])
            end_raw = (item.get("end") or {}).get("dateTime")
            end = parse_graph_datetime(end_raw) if end_raw else start
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping Outlook event %s with unparseable times: %s", event_id, exc)
            return None

        is_all_day = bool(item.get("isAllDay"))
        if is_all_day:
            # Graph reports all-day bounds as midnight in the requested zone (UTC);
            # only the date part is meaningful.
            start, end = self._to_local_midnight(start), self._to_local_midnight(end)

        location = (item.get("location") or {}).get("displayName") or None
        body = (item.get("body") or {}).get("content")
        notes = html_to_text(body)
        if notes and len(notes) > MAX_NOTES_LENGTH:
            notes = notes[:MAX_NOTES_LENGTH]

        online_meeting = item.get("onlineMeeting") or {}

        return Meeting(
            id=f"{self.provider_id.value}:{event_id}",
            provider=self.provider_id,
            title=item.get("subject"),
            start_time=start,
            end_time=end,
            is_all_day=is_all_day,
            location=location,
            notes=notes,
            join_url=extract_join_url(
                online_meeting_urls=[online_meeting.get("joinUrl")],
                location=location,
                notes=body,
            ),
            calendar_name=calendar.name,
            calendar_color=calendar.color,
        )
