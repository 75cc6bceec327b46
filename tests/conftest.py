# tests/conftest.py
from datetime import timezone
from typing import Dict, Iterator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from nextmeet.core.config import Settings
from nextmeet.db.session import build_engine, build_session_factory, init_db
from nextmeet.main import create_app
from nextmeet.schemas.provider import ProviderId
from nextmeet.services.engine import CalendarEngine
from nextmeet.services.web_auth import BrowserWebAuthenticator
from tests.fakes import FakeClock, FakeProvider, make_meeting


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_providers() -> Dict[ProviderId, FakeProvider]:
    return {
        ProviderId.APPLE: FakeProvider(ProviderId.APPLE),
        ProviderId.GOOGLE: FakeProvider(ProviderId.GOOGLE, [make_meeting(ProviderId.GOOGLE, "g1", 10)]),
        ProviderId.OUTLOOK: FakeProvider(ProviderId.OUTLOOK, [make_meeting(ProviderId.OUTLOOK, "o1", 45)]),
    }


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """
    Fresh SQLite database per test, schema created up front.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'nextmeet-test.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def engine(fake_providers, clock) -> CalendarEngine:
    return CalendarEngine(fake_providers, scheduler_enabled=False, clock=clock, tz=timezone.utc)


@pytest.fixture
def authenticator() -> BrowserWebAuthenticator:
    return BrowserWebAuthenticator(timeout_seconds=5)


@pytest.fixture
def client(engine, authenticator) -> Iterator[TestClient]:
    """
    TestClient over the application factory with a fake-provider engine.

    The scheduler is disabled so every refresh in a test is explicit.
    """
    app = create_app(
        settings=Settings(APP_ENV="test", LOG_LEVEL="WARNING"),
        engine=engine,
        authenticator=authenticator,
    )
    with TestClient(app) as test_client:
        yield test_client
