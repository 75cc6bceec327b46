# nextmeet/services/providers/apple.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import List, Optional, Protocol

from nextmeet.schemas.meeting import Meeting
from nextmeet.schemas.provider import ProviderAuthState, ProviderId
from nextmeet.services.errors import AuthError, AuthErrorKind, FetchError, FetchErrorKind
from nextmeet.services.join_url import extract_join_url
from nextmeet.services.providers.base import CalendarProvider, FetchResult, sort_meetings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalEvent:
    """
    One event as read from the platform's local calendar store.
    """

    identifier: str
    title: Optional[str]
    start: datetime
    end: datetime
    is_all_day: bool = False
    location: Optional[str] = None
    notes: Optional[str] = None
    url: Optional[str] = None
    calendar_title: Optional[str] = None
    calendar_color: Optional[str] = None


class LocalCalendarStore(Protocol):
    """
    Permissioned read access to the platform's local calendar database.
    """

    def authorization_status(self) -> ProviderAuthState: ...

    async def request_access(self) -> bool: ...

    async def events_between(self, start: datetime, end: datetime) -> List[LocalEvent]: ...


class UnavailableCalendarStore:
    """
    Stand-in used on hosts without a local calendar store; always reports
    `restricted` so the Apple provider is never polled.
    """

    def authorization_status(self) -> ProviderAuthState:
        return ProviderAuthState.RESTRICTED

    async def request_access(self) -> bool:
        return False

    async def events_between(self, start: datetime, end: datetime) -> List[LocalEvent]:
        return []


class AppleCalendarProvider(CalendarProvider):
    """
    Provider over the local (OS-permissioned) calendar store. No network and
    no tokens; authorization is the OS permission prompt.
    """

    provider_id = ProviderId.APPLE

    def __init__(self, store: LocalCalendarStore, tz: Optional[tzinfo] = None) -> None:
        self._store = store
        self._tz = tz

    def status(self) -> ProviderAuthState:
        return self._store.authorization_status()

    async def authorize(self) -> None:
        granted = await self._store.request_access()
        if not granted:
            raise AuthError(AuthErrorKind.CONSENT_DENIED, "Calendar access was not granted.")

    async def disconnect(self) -> None:
        # Permission is owned by the OS; there is nothing to forget here.
        logger.info("Apple Calendar access can only be withdrawn in system settings")

    def _localize(self, value: datetime) -> datetime:
        # The local store may hand back wall-clock times without a zone.
        if value.tzinfo is not None:
            return value
        if self._tz is not None:
            return value.replace(tzinfo=self._tz)
        return value.astimezone()

    def _to_meeting(self, event: LocalEvent) -> Meeting:
        return Meeting(
            id=f"{self.provider_id.value}:{event.identifier}",
            provider=self.provider_id,
            title=event.title,
            start_time=self._localize(event.start),
            end_time=self._localize(event.end),
            is_all_day=event.is_all_day,
            location=event.location,
            notes=event.notes,
            join_url=extract_join_url(url=event.url, location=event.location, notes=event.notes),
            calendar_name=event.calendar_title or "Calendar",
            calendar_color=event.calendar_color,
        )

    async def fetch_range(self, start: datetime, end: datetime) -> FetchResult:
        try:
            events = await self._store.events_between(start, end)
        except OSError as exc:
            logger.warning("Local calendar store read failed: %s", exc)
            return FetchResult.failure(FetchError(FetchErrorKind.NETWORK, f"Local calendar read failed: {exc}"))
        meetings: List[Meeting] = []
        for event in events:
            try:
                meetings.append(self._to_meeting(event))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping local event %s: %s", event.identifier, exc)
        return FetchResult.success(sort_meetings(meetings))
