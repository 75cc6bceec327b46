# nextmeet/services/cache.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from nextmeet.schemas.meeting import Meeting
from nextmeet.schemas.provider import ProviderId

DEFAULT_TTL_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    meetings: Tuple[Meeting, ...]
    fetched_at: datetime


class ResultCache:
    """
    TTL-scoped cache of fetched meetings keyed by (provider, calendar day).

    The day is the local calendar date of the query window, so repeated
    same-day lookups issued at different times share one entry. Expiry is lazy:
    an entry older than the TTL is evicted when it is next read.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: Dict[Tuple[ProviderId, date], CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        with self._lock:
            return self._ttl.total_seconds()

    def get(self, provider: ProviderId, day: date) -> Optional[List[Meeting]]:
        key = (provider, day)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.fetched_at > self._ttl:
                del self._entries[key]
                return None
            return list(entry.meetings)

    def set(self, provider: ProviderId, day: date, meetings: List[Meeting]) -> None:
        with self._lock:
            self._entries[(provider, day)] = CacheEntry(
                meetings=tuple(meetings),
                fetched_at=self._clock(),
            )

    def invalidate(self, provider: ProviderId) -> None:
        """
        Drop every entry for `provider`; other providers are untouched.
        """
        with self._lock:
            for key in [key for key in self._entries if key[0] is provider]:
                del self._entries[key]

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def set_ttl(self, seconds: float) -> None:
        with self._lock:
            self._ttl = timedelta(seconds=seconds)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
