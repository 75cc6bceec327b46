# tests/test_settings_store.py
import pytest

from nextmeet.schemas.preferences import UserPreferences
from nextmeet.schemas.provider import ProviderId
from nextmeet.services.settings_store import REFRESH_INTERVAL_KEY, SettingsStore


@pytest.mark.asyncio
async def test_load_without_rows_returns_defaults(session_factory):
    defaults = UserPreferences(refresh_interval_seconds=90, show_all_day_events=False)

    loaded = await SettingsStore(session_factory).load(defaults)

    assert loaded == defaults


@pytest.mark.asyncio
async def test_saved_values_override_defaults(session_factory):
    store = SettingsStore(session_factory)
    await store.save_refresh_interval(300)
    await store.save_show_all_day(False)
    await store.save_provider_enabled(ProviderId.OUTLOOK, False)

    loaded = await store.load(UserPreferences())

    assert loaded.refresh_interval_seconds == 300
    assert loaded.show_all_day_events is False
    assert loaded.is_enabled(ProviderId.OUTLOOK) is False
    assert loaded.is_enabled(ProviderId.GOOGLE) is True


@pytest.mark.asyncio
async def test_corrupt_interval_row_falls_back_to_default(session_factory):
    store = SettingsStore(session_factory)
    await store.set_value(REFRESH_INTERVAL_KEY, "soon-ish")

    loaded = await store.load(UserPreferences(refresh_interval_seconds=45))

    assert loaded.refresh_interval_seconds == 45
