# tests/test_engine.py
from datetime import timezone

import pytest

from nextmeet.core.config import Settings
from nextmeet.schemas.preferences import UserPreferences
from nextmeet.schemas.provider import ProviderAuthState, ProviderId
from nextmeet.services.engine import CalendarEngine
from nextmeet.services.errors import AuthError, AuthErrorKind
from nextmeet.services.providers.apple import AppleCalendarProvider
from nextmeet.services.providers.google import GoogleCalendarProvider
from nextmeet.services.providers.outlook import OutlookCalendarProvider
from nextmeet.services.settings_store import SettingsStore
from tests.fakes import FakeProvider, make_meeting


def _engine(providers, clock, settings_store=None, preferences=None) -> CalendarEngine:
    return CalendarEngine(
        {p.provider_id: p for p in providers},
        settings_store=settings_store,
        preferences=preferences,
        scheduler_enabled=False,
        clock=clock,
        tz=timezone.utc,
    )


@pytest.mark.asyncio
async def test_start_restores_providers_and_applies_saved_preferences(session_factory, clock):
    store = SettingsStore(session_factory)
    await store.save_refresh_interval(5)
    await store.save_provider_enabled(ProviderId.GOOGLE, False)
    google = FakeProvider(ProviderId.GOOGLE)
    engine = _engine([google], clock, settings_store=store)

    await engine.start()

    assert google.restore_calls == 1
    assert engine.preferences.refresh_interval_seconds == 5
    assert engine.cache.ttl_seconds == 30  # clamped
    assert engine.scheduler.user_interval == 30
    assert engine.provider_status(ProviderId.GOOGLE).enabled is False
    await engine.stop()


@pytest.mark.asyncio
async def test_subscribe_receives_published_snapshots(clock):
    google = FakeProvider(ProviderId.GOOGLE, [make_meeting(ProviderId.GOOGLE, "g", 10)])
    engine = _engine([google], clock)
    seen = []
    engine.subscribe(seen.append)

    await engine.force_refresh()

    assert len(seen) == 1
    assert engine.snapshot.next_meeting.id == "google:g"


@pytest.mark.asyncio
async def test_connect_enables_authorizes_and_refreshes(session_factory, clock):
    store = SettingsStore(session_factory)
    outlook = FakeProvider(
        ProviderId.OUTLOOK,
        [make_meeting(ProviderId.OUTLOOK, "o", 10)],
        state=ProviderAuthState.UNAUTHORIZED,
    )
    engine = _engine(
        [outlook],
        clock,
        settings_store=store,
        preferences=UserPreferences(provider_enabled={ProviderId.OUTLOOK: False}),
    )

    status = await engine.connect(ProviderId.OUTLOOK)

    assert status.state is ProviderAuthState.AUTHORIZED
    assert status.enabled is True
    assert outlook.authorize_calls == 1
    assert [m.id for m in engine.snapshot.todays_meetings] == ["outlook:o"]
    assert (await store.load(UserPreferences())).is_enabled(ProviderId.OUTLOOK)


@pytest.mark.asyncio
async def test_authorization_error_propagates(clock):
    google = FakeProvider(ProviderId.GOOGLE, state=ProviderAuthState.UNAUTHORIZED)
    google.authorize_error = AuthError(AuthErrorKind.CONSENT_DENIED, "no")
    engine = _engine([google], clock)

    with pytest.raises(AuthError):
        await engine.request_authorization(ProviderId.GOOGLE)


@pytest.mark.asyncio
async def test_disconnect_drops_provider_meetings(clock):
    google = FakeProvider(ProviderId.GOOGLE, [make_meeting(ProviderId.GOOGLE, "g", 10)])
    engine = _engine([google], clock)
    await engine.force_refresh()

    status = await engine.disconnect(ProviderId.GOOGLE)

    assert status.state is ProviderAuthState.UNAUTHORIZED
    assert google.disconnect_calls == 1
    assert engine.snapshot.todays_meetings == []


@pytest.mark.asyncio
async def test_set_refresh_interval_clamps_persists_and_syncs_ttl(session_factory, clock):
    store = SettingsStore(session_factory)
    google = FakeProvider(ProviderId.GOOGLE, [make_meeting(ProviderId.GOOGLE, "g", 10)])
    engine = _engine([google], clock, settings_store=store)
    await engine.force_refresh()

    applied = await engine.set_refresh_interval(10_000)

    assert applied == 600
    assert engine.cache.ttl_seconds == 600
    assert len(engine.cache) == 0
    assert (await store.load(UserPreferences())).refresh_interval_seconds == 600


@pytest.mark.asyncio
async def test_set_enabled_false_removes_provider_from_snapshot(clock):
    google = FakeProvider(ProviderId.GOOGLE, [make_meeting(ProviderId.GOOGLE, "g", 10)])
    outlook = FakeProvider(ProviderId.OUTLOOK, [make_meeting(ProviderId.OUTLOOK, "o", 20)])
    engine = _engine([google, outlook], clock)
    await engine.force_refresh()

    await engine.set_enabled(ProviderId.GOOGLE, False)

    assert [m.id for m in engine.snapshot.todays_meetings] == ["outlook:o"]


@pytest.mark.asyncio
async def test_unknown_provider_raises_provider_not_found(clock):
    from nextmeet.services.errors import ProviderNotFound

    engine = _engine([FakeProvider(ProviderId.GOOGLE)], clock)

    with pytest.raises(ProviderNotFound):
        engine.provider(ProviderId.APPLE)


@pytest.mark.asyncio
async def test_from_settings_wires_all_three_providers(session_factory):
    settings = Settings(GOOGLE_CLIENT_ID="g-client", OUTLOOK_CLIENT_ID="o-client", SCHEDULER_ENABLED=False)

    engine = CalendarEngine.from_settings(settings, session_factory)
    await engine.start()

    assert isinstance(engine.provider(ProviderId.APPLE), AppleCalendarProvider)
    assert isinstance(engine.provider(ProviderId.GOOGLE), GoogleCalendarProvider)
    assert isinstance(engine.provider(ProviderId.OUTLOOK), OutlookCalendarProvider)
    states = {s.provider: s.state for s in engine.provider_statuses()}
    assert states == {
        ProviderId.APPLE: ProviderAuthState.RESTRICTED,
        ProviderId.GOOGLE: ProviderAuthState.UNAUTHORIZED,
        ProviderId.OUTLOOK: ProviderAuthState.UNAUTHORIZED,
    }
    await engine.stop()
