# nextmeet/services/scheduler.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from nextmeet.schemas.snapshot import AggregateSnapshot
from nextmeet.services.aggregator import Aggregator

logger = logging.getLogger(__name__)

UI_VISIBLE_INTERVAL_SECONDS = 30
IDLE_INTERVAL_SECONDS = 300
URGENCY_TICK_SECONDS = 30

DEFAULT_REFRESH_INTERVAL_SECONDS = 60
MIN_REFRESH_INTERVAL_SECONDS = 30
MAX_REFRESH_INTERVAL_SECONDS = 600


def clamp_interval(seconds: int) -> int:
    return max(MIN_REFRESH_INTERVAL_SECONDS, min(MAX_REFRESH_INTERVAL_SECONDS, int(seconds)))


def desired_cadence(*, ui_visible: bool, meetings_remaining: bool, user_interval: int) -> int:
    """
    Refresh interval for the current signals.

    A visible UI always polls fastest; with nothing left on today's calendar
    the engine idles; otherwise the user's (clamped) interval applies.
    """
    if ui_visible:
        return UI_VISIBLE_INTERVAL_SECONDS
    if not meetings_remaining:
        return IDLE_INTERVAL_SECONDS
    return clamp_interval(user_interval)


class RefreshScheduler:
    """
    Drives the aggregator on an adaptive cadence plus a fixed urgency tick.

    Responsibilities
    ----------------
    - Refresh loop: refresh, then wait for the cadence computed from the
      latest snapshot. A reschedule wakes the wait and restarts the timer.
    - Urgency loop: every tick, recompute next meeting / urgency from the
      published snapshot only, then re-check the cadence (the last meeting
      of the day ending switches to the idle interval).

    Notes
    -----
    - The scheduler consumes signals only (UI visibility, remaining
      meetings, user interval); it knows nothing about presentation.
    - The timer is only restarted when the desired cadence differs from the
      one currently running.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        *,
        user_interval: int = DEFAULT_REFRESH_INTERVAL_SECONDS,
        urgency_tick_seconds: float = URGENCY_TICK_SECONDS,
    ) -> None:
        self._aggregator = aggregator
        self._user_interval = clamp_interval(user_interval)
        self._urgency_tick_seconds = urgency_tick_seconds
        self._ui_visible = False

        self._current_interval: Optional[int] = None
        self._wake = asyncio.Event()
        self._refresh_task: Optional[asyncio.Task[None]] = None
        self._urgency_task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._refresh_task is not None

    @property
    def current_interval(self) -> Optional[int]:
        return self._current_interval

    @property
    def user_interval(self) -> int:
        return self._user_interval

    @property
    def ui_visible(self) -> bool:
        return self._ui_visible

    def desired_interval(self) -> int:
        snapshot = self._aggregator.snapshot
        return desired_cadence(
            ui_visible=self._ui_visible,
            meetings_remaining=not snapshot.no_meetings_remaining,
            user_interval=self._user_interval,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="nextmeet-refresh")
        self._urgency_task = asyncio.create_task(self._urgency_loop(), name="nextmeet-urgency")
        logger.info("Scheduler started")

    async def stop(self) -> None:
        tasks = [task for task in (self._refresh_task, self._urgency_task) if task is not None]
        self._refresh_task = None
        self._urgency_task = None
        self._current_interval = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Scheduler stopped")

    async def _wait(self, delay: float) -> bool:
        """
        Sleep for `delay` seconds. Returns True if woken early by a
        reschedule.
        """
        self._wake.clear()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run_refresh(self) -> None:
        try:
            await self._aggregator.refresh()
        except Exception:
            logger.exception("Refresh cycle failed")

    async def _refresh_loop(self) -> None:
        await self._run_refresh()
        self._current_interval = self.desired_interval()
        while True:
            if await self._wait(self._current_interval):
                # Rescheduled: restart the timer at the new cadence.
                continue
            await self._run_refresh()
            self._current_interval = self.desired_interval()

    async def _urgency_loop(self) -> None:
        while True:
            await asyncio.sleep(self._urgency_tick_seconds)
            self._aggregator.recompute()
            self.reschedule_if_needed()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def reschedule_if_needed(self) -> bool:
        """
        Restart the refresh timer if the desired cadence differs from the
        running one. Returns True when a restart happened.
        """
        if not self.running or self._current_interval is None:
            return False
        desired = self.desired_interval()
        if desired == self._current_interval:
            return False
        logger.info("Refresh cadence %ss -> %ss", self._current_interval, desired)
        self._current_interval = desired
        self._wake.set()
        return True

    async def force_refresh(self) -> AggregateSnapshot:
        """
        Bypass the cache, refresh now and restart the cadence from here.
        """
        self._aggregator.cache.invalidate_all()
        snapshot = await self._aggregator.refresh()
        if self.running:
            self._current_interval = self.desired_interval()
            self._wake.set()
        return snapshot

    async def set_ui_visible(self, visible: bool) -> None:
        became_visible = visible and not self._ui_visible
        self._ui_visible = visible
        if became_visible:
            await self.force_refresh()
        else:
            self.reschedule_if_needed()

    def set_user_interval(self, seconds: int) -> int:
        self._user_interval = clamp_interval(seconds)
        self.reschedule_if_needed()
        return self._user_interval
