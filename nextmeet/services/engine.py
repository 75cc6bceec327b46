# nextmeet/services/engine.py
from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Callable, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextmeet.core.config import Settings
from nextmeet.schemas.preferences import UserPreferences
from nextmeet.schemas.provider import ProviderId, ProviderStatus
from nextmeet.schemas.snapshot import AggregateSnapshot
from nextmeet.services.aggregator import Aggregator, SnapshotListener
from nextmeet.services.cache import ResultCache
from nextmeet.services.credential_store import CredentialStore
from nextmeet.services.errors import ProviderNotFound
from nextmeet.services.oauth_config import google_oauth_config, outlook_oauth_config
from nextmeet.services.providers.apple import (
    AppleCalendarProvider,
    LocalCalendarStore,
    UnavailableCalendarStore,
)
from nextmeet.services.providers.base import CalendarProvider
from nextmeet.services.providers.google import GoogleCalendarProvider
from nextmeet.services.providers.outlook import OutlookCalendarProvider
from nextmeet.services.scheduler import RefreshScheduler, clamp_interval
from nextmeet.services.settings_store import SettingsStore
from nextmeet.services.token_manager import TokenLifecycleManager
from nextmeet.services.web_auth import WebAuthenticator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class CalendarEngine:
    """
    Facade over providers, cache, aggregator and scheduler.

    Responsibilities
    ----------------
    - Own the lifecycle: restore persisted sessions and preferences on
      `start()`, stop the periodic tasks on `stop()`.
    - Expose the published snapshot and subscription.
    - Apply user actions (connect, disconnect, enable, interval, all-day,
      UI visibility) and persist the resulting preferences.

    Notes
    -----
    - Constructed explicitly (app factory or tests); there is no global
      instance.
    - Unknown provider ids raise ProviderNotFound.
    """

    def __init__(
        self,
        providers: Mapping[ProviderId, CalendarProvider],
        *,
        settings_store: Optional[SettingsStore] = None,
        preferences: Optional[UserPreferences] = None,
        fetch_timeout_seconds: float = 10.0,
        scheduler_enabled: bool = True,
        clock: Callable[[], datetime] = _utcnow,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._providers: Dict[ProviderId, CalendarProvider] = dict(providers)
        self._settings_store = settings_store
        self._preferences = preferences or UserPreferences()
        self._scheduler_enabled = scheduler_enabled

        interval = clamp_interval(self._preferences.refresh_interval_seconds)
        self.cache = ResultCache(ttl_seconds=interval, clock=clock)
        self.aggregator = Aggregator(
            self._providers,
            self.cache,
            fetch_timeout_seconds=fetch_timeout_seconds,
            show_all_day=self._preferences.show_all_day_events,
            enabled={pid: self._preferences.is_enabled(pid) for pid in self._providers},
            clock=clock,
            tz=tz,
        )
        self.scheduler = RefreshScheduler(self.aggregator, user_interval=interval)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        authenticator: Optional[WebAuthenticator] = None,
        local_store: Optional[LocalCalendarStore] = None,
    ) -> "CalendarEngine":
        """
        Wire the production providers from application settings.
        """
        credentials = CredentialStore(session_factory, encryption_key=settings.CREDENTIALS_ENCRYPTION_KEY)
        tz = settings.local_timezone()
        timeout = settings.FETCH_TIMEOUT_SECONDS

        google_tokens = TokenLifecycleManager(
            google_oauth_config(settings), credentials, authenticator, timeout_seconds=timeout
        )
        outlook_tokens = TokenLifecycleManager(
            outlook_oauth_config(settings), credentials, authenticator, timeout_seconds=timeout
        )

        providers: Dict[ProviderId, CalendarProvider] = {
            ProviderId.APPLE: AppleCalendarProvider(local_store or UnavailableCalendarStore(), tz=tz),
            ProviderId.GOOGLE: GoogleCalendarProvider(google_tokens, timeout_seconds=timeout, tz=tz),
            ProviderId.OUTLOOK: OutlookCalendarProvider(outlook_tokens, timeout_seconds=timeout, tz=tz),
        }

        return cls(
            providers,
            settings_store=SettingsStore(session_factory),
            preferences=UserPreferences(
                refresh_interval_seconds=settings.REFRESH_INTERVAL_SECONDS,
                show_all_day_events=settings.SHOW_ALL_DAY_EVENTS,
            ),
            fetch_timeout_seconds=timeout,
            scheduler_enabled=settings.SCHEDULER_ENABLED,
            tz=tz,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._settings_store is not None:
            self._apply_preferences(await self._settings_store.load(self._preferences))

        for provider in self._providers.values():
            await provider.restore()

        if self._scheduler_enabled:
            self.scheduler.start()
        logger.info(
            "Engine started; providers: %s",
            ", ".join(f"{s.provider.value}={s.state.value}" for s in self.provider_statuses()),
        )

    async def stop(self) -> None:
        await self.scheduler.stop()

    def _apply_preferences(self, preferences: UserPreferences) -> None:
        self._preferences = preferences
        interval = clamp_interval(preferences.refresh_interval_seconds)
        self.cache.set_ttl(interval)
        self.scheduler.set_user_interval(interval)
        self.aggregator.set_show_all_day(preferences.show_all_day_events)
        for pid in self._providers:
            self.aggregator.set_enabled(pid, preferences.is_enabled(pid))

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> AggregateSnapshot:
        return self.aggregator.snapshot

    @property
    def preferences(self) -> UserPreferences:
        return self._preferences

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        return self.aggregator.subscribe(listener)

    def provider(self, provider_id: ProviderId) -> CalendarProvider:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise ProviderNotFound(provider_id.value) from None

    def provider_status(self, provider_id: ProviderId) -> ProviderStatus:
        provider = self.provider(provider_id)
        return ProviderStatus(
            provider=provider_id,
            display_name=provider.display_name,
            state=provider.status(),
            enabled=self.aggregator.is_enabled(provider_id),
            reason=provider.status_reason,
        )

    def provider_statuses(self) -> List[ProviderStatus]:
        return [self.provider_status(pid) for pid in self._providers]

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def request_authorization(self, provider_id: ProviderId) -> ProviderStatus:
        """
        Run the provider's interactive authorization, then refresh so the
        newly connected calendar shows up. AuthError propagates to the caller.
        """
        provider = self.provider(provider_id)
        await provider.authorize()
        self.aggregator.forget(provider_id)
        await self.aggregator.refresh()
        return self.provider_status(provider_id)

    async def connect(self, provider_id: ProviderId) -> ProviderStatus:
        """
        Switch the provider on and authorize it.
        """
        self.provider(provider_id)
        if not self.aggregator.is_enabled(provider_id):
            self.aggregator.set_enabled(provider_id, True)
            await self._save_provider_enabled(provider_id, True)
        return await self.request_authorization(provider_id)

    async def disconnect(self, provider_id: ProviderId) -> ProviderStatus:
        provider = self.provider(provider_id)
        await provider.disconnect()
        self.aggregator.forget(provider_id)
        await self.aggregator.refresh()
        logger.info("%s disconnected", provider.display_name)
        return self.provider_status(provider_id)

    async def set_enabled(self, provider_id: ProviderId, enabled: bool) -> ProviderStatus:
        self.provider(provider_id)
        self.aggregator.set_enabled(provider_id, enabled)
        await self._save_provider_enabled(provider_id, enabled)
        await self.aggregator.refresh()
        return self.provider_status(provider_id)

    async def force_refresh(self) -> AggregateSnapshot:
        return await self.scheduler.force_refresh()

    async def set_refresh_interval(self, seconds: int) -> int:
        """
        Apply a new user refresh interval (clamped). The cache TTL follows
        the interval, so existing entries are dropped.
        """
        interval = clamp_interval(seconds)
        self.cache.set_ttl(interval)
        self.cache.invalidate_all()
        self.scheduler.set_user_interval(interval)
        self._preferences = self._preferences.model_copy(update={"refresh_interval_seconds": interval})
        if self._settings_store is not None:
            await self._settings_store.save_refresh_interval(interval)
        return interval

    async def set_show_all_day(self, show: bool) -> AggregateSnapshot:
        self.aggregator.set_show_all_day(show)
        self._preferences = self._preferences.model_copy(update={"show_all_day_events": show})
        if self._settings_store is not None:
            await self._settings_store.save_show_all_day(show)
        return self.snapshot

    async def notify_ui_visibility(self, visible: bool) -> None:
        await self.scheduler.set_ui_visible(visible)

    async def _save_provider_enabled(self, provider_id: ProviderId, enabled: bool) -> None:
        enabled_map = dict(self._preferences.provider_enabled)
        enabled_map[provider_id] = enabled
        self._preferences = self._preferences.model_copy(update={"provider_enabled": enabled_map})
        if self._settings_store is not None:
            await self._settings_store.save_provider_enabled(provider_id, enabled)
