# nextmeet/services/settings_store.py
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextmeet.models.user_setting import UserSetting
from nextmeet.schemas.preferences import UserPreferences
from nextmeet.schemas.provider import ProviderId

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_KEY = "refresh_interval_seconds"
SHOW_ALL_DAY_KEY = "show_all_day_events"
PROVIDER_ENABLED_PREFIX = "provider_enabled."


def provider_enabled_key(provider: ProviderId) -> str:
    return f"{PROVIDER_ENABLED_PREFIX}{provider.value}"


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


class SettingsStore:
    """
    Persists user preferences as simple key/value rows.

    Values that fail to parse are ignored in favour of the supplied defaults
    so a corrupt row can never prevent the engine from starting.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _all(self) -> dict[str, str]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserSetting))
            return {row.key: row.value for row in result.scalars().all()}

    async def set_value(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(UserSetting, key)
            if row is None:
                session.add(UserSetting(key=key, value=value))
            else:
                row.value = value
            await session.commit()

    async def load(self, defaults: UserPreferences) -> UserPreferences:
        """
        Overlay persisted values on top of `defaults`.
        """
        stored = await self._all()
        values = defaults.model_dump()

        if REFRESH_INTERVAL_KEY in stored:
            try:
                values["refresh_interval_seconds"] = int(stored[REFRESH_INTERVAL_KEY])
            except ValueError:
                logger.warning("Ignoring invalid stored refresh interval %r", stored[REFRESH_INTERVAL_KEY])

        if SHOW_ALL_DAY_KEY in stored:
            values["show_all_day_events"] = _parse_bool(stored[SHOW_ALL_DAY_KEY])

        enabled = dict(values["provider_enabled"])
        for provider in ProviderId:
            raw = stored.get(provider_enabled_key(provider))
            if raw is not None:
                enabled[provider] = _parse_bool(raw)
        values["provider_enabled"] = enabled

        return UserPreferences(**values)

    async def save_refresh_interval(self, seconds: int) -> None:
        await self.set_value(REFRESH_INTERVAL_KEY, str(seconds))

    async def save_show_all_day(self, show: bool) -> None:
        await self.set_value(SHOW_ALL_DAY_KEY, "true" if show else "false")

    async def save_provider_enabled(self, provider: ProviderId, enabled: bool) -> None:
        await self.set_value(provider_enabled_key(provider), "true" if enabled else "false")
