# nextmeet/services/aggregator.py
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from nextmeet.schemas.meeting import Meeting
from nextmeet.schemas.provider import ProviderId
from nextmeet.schemas.snapshot import AggregateSnapshot
from nextmeet.services.cache import ResultCache
from nextmeet.services.errors import FetchError, FetchErrorKind
from nextmeet.services.meeting_selection import merge_meetings, select_next_meeting, todays_view
from nextmeet.services.providers.base import CalendarProvider, FetchResult

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[AggregateSnapshot], None]

DEGRADED_MESSAGE = "Some calendars couldn't be reached. Showing available data."
LOCAL_READ_MESSAGE = "Your local calendar couldn't be read."


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _reconnect_message(provider: CalendarProvider) -> str:
    return f"{provider.display_name} needs to be reconnected."


def _provider_error_text(error: FetchError) -> str:
    return {
        FetchErrorKind.UNAUTHORIZED: "Needs to be reconnected.",
        FetchErrorKind.TIMEOUT: "Timed out.",
        FetchErrorKind.PARSE: "Returned data that could not be read.",
        FetchErrorKind.NETWORK: "Couldn't be reached.",
    }[error.kind]


def local_day_window(now: datetime, tz: Optional[tzinfo] = None) -> Tuple[date, datetime, datetime]:
    """
    Return (day, start, end) for the local calendar day containing `now`,
    with start/end at local midnight.
    """
    local_now = now.astimezone(tz) if tz is not None else now.astimezone()
    day = local_now.date()
    if tz is not None:
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    else:
        start = datetime.combine(day, time.min).astimezone()
        end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
    return day, start, end


class Aggregator:
    """
    Fans a refresh cycle out to every enabled and authorized provider,
    merges the results and publishes one AggregateSnapshot per cycle.

    Responsibilities
    ----------------
    - Serve each provider from the ResultCache when warm; otherwise fetch the
      local day window with a per-provider timeout and cache successes.
    - Fold provider failures into `degraded` / `last_error` /
      `provider_errors`. Nothing raised by a provider escapes `refresh()`.
    - Publish atomically. Each cycle takes a number from a monotonic counter;
      a cycle finishing after a newer one already published is dropped.

    Notes
    -----
    - `degraded` only reflects network-backed providers. A failing local
      store still reports its error but never marks the snapshot degraded.
    - On a transient failure the provider's last successful meetings for the
      same day are reused, so a flaky network does not blank the view.
    """

    def __init__(
        self,
        providers: Mapping[ProviderId, CalendarProvider],
        cache: ResultCache,
        *,
        fetch_timeout_seconds: float = 10.0,
        show_all_day: bool = True,
        enabled: Optional[Mapping[ProviderId, bool]] = None,
        clock: Callable[[], datetime] = _utcnow,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._providers = dict(providers)
        self._cache = cache
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._show_all_day = show_all_day
        self._enabled: Dict[ProviderId, bool] = {pid: True for pid in self._providers}
        self._enabled.update(enabled or {})
        self._clock = clock
        self._tz = tz

        self._cycle = 0
        self._published_cycle = 0
        self._snapshot = AggregateSnapshot()
        self._merged: List[Meeting] = []
        self._last_good: Dict[ProviderId, Tuple[date, List[Meeting]]] = {}
        self._listeners: List[SnapshotListener] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> AggregateSnapshot:
        return self._snapshot

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def show_all_day(self) -> bool:
        return self._show_all_day

    def is_enabled(self, provider: ProviderId) -> bool:
        return self._enabled.get(provider, False)

    def set_enabled(self, provider: ProviderId, enabled: bool) -> None:
        self._enabled[provider] = enabled
        if not enabled:
            self.forget(provider)

    def forget(self, provider: ProviderId) -> None:
        """
        Drop everything held for `provider` (cache and stale fallback).
        """
        self._cache.invalidate(provider)
        self._last_good.pop(provider, None)

    def set_show_all_day(self, show: bool) -> None:
        self._show_all_day = show
        if self._published_cycle:
            self._publish(self._rebuild(self._clock()))

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a callback invoked with every published snapshot. Returns
        a function that removes it again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def active_providers(self) -> List[CalendarProvider]:
        return [
            provider
            for pid, provider in self._providers.items()
            if self.is_enabled(pid) and provider.is_available()
        ]

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    async def _fetch_provider(
        self,
        provider: CalendarProvider,
        day: date,
        start: datetime,
        end: datetime,
    ) -> FetchResult:
        cached = self._cache.get(provider.provider_id, day)
        if cached is not None:
            return FetchResult.success(cached)

        try:
            result = await asyncio.wait_for(
                provider.fetch_range(start, end),
                timeout=self._fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "%s fetch exceeded %.1fs",
                provider.display_name,
                self._fetch_timeout_seconds,
            )
            return FetchResult.failure(FetchError(FetchErrorKind.TIMEOUT, "Provider fetch timed out."))

        if result.ok:
            self._cache.set(provider.provider_id, day, result.meetings)
        return result

    async def refresh(self) -> AggregateSnapshot:
        """
        Run one refresh cycle and return the snapshot that is current
        afterwards (this cycle's, or a newer one if this cycle was dropped).
        """
        self._cycle += 1
        cycle = self._cycle
        now = self._clock()
        day, start, end = local_day_window(now, self._tz)

        active = self.active_providers()
        results = await asyncio.gather(
            *(self._fetch_provider(provider, day, start, end) for provider in active),
            return_exceptions=True,
        )

        batches: List[List[Meeting]] = []
        provider_errors: Dict[str, str] = {}
        reconnect: List[CalendarProvider] = []
        degraded = False
        local_failed = False

        for provider, result in zip(active, results):
            pid = provider.provider_id
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    "Unexpected error fetching %s",
                    provider.display_name,
                    exc_info=(type(result), result, result.__traceback__),
                )
                result = FetchResult.failure(FetchError(FetchErrorKind.NETWORK, str(result)))

            error = result.error
            if error is None:
                batches.append(result.meetings)
                self._last_good[pid] = (day, result.meetings)
                continue

            provider_errors[pid.value] = _provider_error_text(error)
            if provider.network_backed:
                degraded = True
            else:
                local_failed = True

            if not error.is_transient:
                reconnect.append(provider)
                self.forget(pid)
                continue

            stale = self._last_good.get(pid)
            if stale is not None and stale[0] == day:
                logger.info("Serving last good %s meetings after failure", provider.display_name)
                batches.append(stale[1])

        if reconnect:
            last_error: Optional[str] = _reconnect_message(reconnect[0])
        elif degraded:
            last_error = DEGRADED_MESSAGE
        elif local_failed:
            last_error = LOCAL_READ_MESSAGE
        else:
            last_error = None

        merged = merge_meetings(batches)
        next_meeting, urgency = select_next_meeting(merged, now)
        snapshot = AggregateSnapshot(
            todays_meetings=todays_view(merged, self._show_all_day),
            next_meeting=next_meeting,
            urgency_level=urgency,
            degraded=degraded,
            last_error=last_error,
            provider_errors=provider_errors,
            cycle=cycle,
            generated_at=now,
        )

        if cycle < self._published_cycle:
            logger.debug("Dropping refresh cycle %d; cycle %d already published", cycle, self._published_cycle)
            return self._snapshot

        self._published_cycle = cycle
        self._merged = merged
        self._publish(snapshot)
        logger.info(
            "Refresh cycle %d: %d meetings from %d providers%s",
            cycle,
            len(merged),
            len(active),
            " (degraded)" if degraded else "",
        )
        return snapshot

    def _rebuild(self, now: datetime) -> AggregateSnapshot:
        next_meeting, urgency = select_next_meeting(self._merged, now)
        return self._snapshot.model_copy(
            update={
                "todays_meetings": todays_view(self._merged, self._show_all_day),
                "next_meeting": next_meeting,
                "urgency_level": urgency,
            }
        )

    def recompute(self) -> AggregateSnapshot:
        """
        Re-derive next meeting and urgency from the current snapshot's data
        without touching any provider. Subscribers are only notified when
        either value changed.
        """
        if not self._published_cycle:
            return self._snapshot

        rebuilt = self._rebuild(self._clock())
        current = self._snapshot
        unchanged = rebuilt.urgency_level is current.urgency_level and (
            (rebuilt.next_meeting.id if rebuilt.next_meeting else None)
            == (current.next_meeting.id if current.next_meeting else None)
        )
        if not unchanged:
            self._publish(rebuilt)
        return self._snapshot

    def _publish(self, snapshot: AggregateSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)
