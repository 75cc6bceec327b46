# nextmeet/services/providers/base.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from nextmeet.schemas.meeting import Meeting
from nextmeet.schemas.provider import ProviderAuthState, ProviderId
from nextmeet.services.errors import AuthError, FetchError, FetchErrorKind
from nextmeet.services.token_manager import TokenLifecycleManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """
    Explicit outcome of one provider fetch, so "no events today" and "the
    fetch failed" are never conflated.
    """

    meetings: List[Meeting] = field(default_factory=list)
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, meetings: List[Meeting]) -> "FetchResult":
        return cls(meetings=list(meetings))

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult":
        return cls(meetings=[], error=error)


def sort_meetings(meetings: List[Meeting]) -> List[Meeting]:
    return sorted(meetings, key=lambda m: m.start_time)


class CalendarProvider(ABC):
    """
    Uniform capability set over one calendar source.
    """

    provider_id: ProviderId

    @property
    def display_name(self) -> str:
        return self.provider_id.display_name

    @property
    def network_backed(self) -> bool:
        return self.provider_id.is_network_backed

    @abstractmethod
    def status(self) -> ProviderAuthState:
        """Current authorization state."""

    @property
    def status_reason(self) -> Optional[str]:
        return None

    def is_available(self) -> bool:
        """
        True when the provider holds usable authorization. `error` still
        counts: credentials exist and the next cycle retries them.
        """
        return self.status() in (ProviderAuthState.AUTHORIZED, ProviderAuthState.ERROR)

    async def restore(self) -> None:
        """Pick up authorization persisted by a previous run."""

    @abstractmethod
    async def authorize(self) -> None:
        """Run the interactive authorization for this provider (raises AuthError)."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Forget any credentials held for this provider."""

    @abstractmethod
    async def fetch_range(self, start: datetime, end: datetime) -> FetchResult:
        """Read meetings overlapping [start, end)."""


class OAuthCalendarProvider(CalendarProvider):
    """
    Shared behaviour of the REST providers authorized through a
    TokenLifecycleManager.
    """

    def __init__(self, tokens: TokenLifecycleManager) -> None:
        self._tokens = tokens

    @property
    def tokens(self) -> TokenLifecycleManager:
        return self._tokens

    def status(self) -> ProviderAuthState:
        return self._tokens.state

    @property
    def status_reason(self) -> Optional[str]:
        return self._tokens.reason

    async def restore(self) -> None:
        await self._tokens.restore()

    async def authorize(self) -> None:
        await self._tokens.authorize()

    async def disconnect(self) -> None:
        await self._tokens.revoke()

    @abstractmethod
    async def _fetch_meetings(self, start: datetime, end: datetime) -> List[Meeting]:
        """Provider-specific calendar enumeration and event queries."""

    async def fetch_range(self, start: datetime, end: datetime) -> FetchResult:
        try:
            meetings = await self._fetch_meetings(start, end)
        except AuthError as exc:
            logger.warning("%s needs re-authorization: %s", self.display_name, exc)
            return FetchResult.failure(FetchError(FetchErrorKind.UNAUTHORIZED, str(exc)))
        except FetchError as exc:
            if not exc.is_transient:
                logger.warning("%s rejected the stored credentials: %s", self.display_name, exc)
                await self._tokens.invalidate("Access was revoked; reconnect to continue.")
            else:
                logger.warning("%s fetch failed (%s): %s", self.display_name, exc.kind.value, exc)
            return FetchResult.failure(exc)

        logger.debug("%s returned %d meetings", self.display_name, len(meetings))
        return FetchResult.success(sort_meetings(meetings))
