# tests/test_google_provider.py
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from nextmeet.schemas.provider import OAuthTokenSet, ProviderAuthState, ProviderId
from nextmeet.services.errors import FetchErrorKind
from nextmeet.services.oauth_config import GOOGLE_CALENDAR_API_BASE, OAuthClientConfig
from nextmeet.services.providers.google import GoogleCalendarProvider
from nextmeet.services.token_manager import TokenLifecycleManager
from tests.fakes import NOW, FakeClock, MemorySecretStore
from tests.http_fakes import FakeApiClient, FakeResponse

UTC = timezone.utc
START = datetime(2025, 3, 10, 0, 0, tzinfo=UTC)
END = START + timedelta(days=1)

CALENDAR_LIST_URL = f"{GOOGLE_CALENDAR_API_BASE}/users/me/calendarList"
PRIMARY_EVENTS_URL = f"{GOOGLE_CALENDAR_API_BASE}/calendars/primary/events"
TEAM_EVENTS_URL = f"{GOOGLE_CALENDAR_API_BASE}/calendars/team%40group.calendar.google.com/events"


@pytest.fixture(autouse=True)
def fake_http(monkeypatch):
    FakeApiClient.reset()
    monkeypatch.setattr(httpx, "AsyncClient", FakeApiClient)
    return FakeApiClient


async def _provider() -> GoogleCalendarProvider:
    config = OAuthClientConfig(
        provider=ProviderId.GOOGLE,
        client_id="cid",
        auth_url="https://auth.example.com/a",
        token_url="https://auth.example.com/t",
        scope="calendar.readonly",
        redirect_uri="http://127.0.0.1/cb",
    )
    store = MemorySecretStore(
        {
            "oauth_tokens.google": OAuthTokenSet(
                access_token="g-token",
                refresh_token="r",
                expires_at=NOW + timedelta(hours=1),
            ).model_dump_json()
        }
    )
    tokens = TokenLifecycleManager(config, store, clock=FakeClock())
    provider = GoogleCalendarProvider(tokens, tz=UTC)
    await provider.restore()
    return provider


def _calendar_list(request):
    if request["params"].get("pageToken") == "page-2":
        return FakeResponse(
            200,
            {"items": [{"id": "team@group.calendar.google.com", "summary": "Team", "backgroundColor": "#0b8043"}]},
        )
    return FakeResponse(
        200,
        {
            "items": [{"id": "primary", "summary": "me@example.com", "summaryOverride": "Work"}],
            "nextPageToken": "page-2",
        },
    )


def _primary_events(request):
    return FakeResponse(
        200,
        {
            "items": [
                {
                    "id": "evt-1",
                    "summary": "Design review",
                    "start": {"dateTime": "2025-03-10T10:00:00Z"},
                    "end": {"dateTime": "2025-03-10T11:00:00Z"},
                    "hangoutLink": "https://meet.google.com/abc-defg-hij",
                },
                {
                    "id": "evt-2",
                    "start": {"dateTime": "2025-03-10T09:30:00+01:00"},
                    "end": {"dateTime": "2025-03-10T10:00:00+01:00"},
                    "location": "https://us02web.zoom.us/j/111",
                },
                {
                    "id": "evt-cancelled",
                    "status": "cancelled",
                    "start": {"dateTime": "2025-03-10T12:00:00Z"},
                    "end": {"dateTime": "2025-03-10T13:00:00Z"},
                },
                {
                    "id": "holiday",
                    "summary": "Company holiday",
                    "start": {"date": "2025-03-10"},
                    "end": {"date": "2025-03-11"},
                },
            ]
        },
    )


def _team_events(request):
    return FakeResponse(
        200,
        {
            "items": [
                {
                    "id": "evt-3",
                    "summary": "Standup",
                    "start": {"dateTime": "2025-03-10T09:15:00Z"},
                    "end": {"dateTime": "2025-03-10T09:30:00Z"},
                    "conferenceData": {
                        "entryPoints": [
                            {"entryPointType": "phone", "uri": "tel:+1-555-0100"},
                            {"entryPointType": "video", "uri": "https://meet.google.com/xyz-abcd-efg"},
                        ]
                    },
                },
                # The same event shared into a second calendar is reported once.
                {
                    "id": "evt-1",
                    "summary": "Design review",
                    "start": {"dateTime": "2025-03-10T10:00:00Z"},
                    "end": {"dateTime": "2025-03-10T11:00:00Z"},
                },
            ]
        },
    )


@pytest.mark.asyncio
async def test_google_fetch_paginates_calendars_and_normalizes_events():
    FakeApiClient.routes = {
        CALENDAR_LIST_URL: _calendar_list,
        PRIMARY_EVENTS_URL: _primary_events,
        TEAM_EVENTS_URL: _team_events,
    }
    provider = await _provider()

    result = await provider.fetch_range(START, END)

    assert result.ok
    ids = [m.id for m in result.meetings]
    assert ids == ["google:holiday", "google:evt-2", "google:evt-3", "google:evt-1"]

    by_id = {m.id: m for m in result.meetings}
    assert by_id["google:evt-1"].join_url == "https://meet.google.com/abc-defg-hij"
    assert by_id["google:evt-1"].calendar_name == "Work"
    assert by_id["google:evt-2"].title == "Untitled Event"
    assert by_id["google:evt-2"].start_time == datetime(2025, 3, 10, 8, 30, tzinfo=UTC)
    assert by_id["google:evt-2"].join_url == "https://us02web.zoom.us/j/111"
    assert by_id["google:evt-3"].join_url == "https://meet.google.com/xyz-abcd-efg"
    assert by_id["google:evt-3"].calendar_color == "#0b8043"

    holiday = by_id["google:holiday"]
    assert holiday.is_all_day
    assert holiday.start_time == START
    assert holiday.end_time == END


@pytest.mark.asyncio
async def test_google_events_query_parameters():
    FakeApiClient.routes = {
        CALENDAR_LIST_URL: lambda r: FakeResponse(200, {"items": [{"id": "primary", "summary": "Me"}]}),
        PRIMARY_EVENTS_URL: lambda r: FakeResponse(200, {"items": []}),
    }
    provider = await _provider()

    result = await provider.fetch_range(START, END)

    assert result.ok and result.meetings == []
    events_request = [r for r in FakeApiClient.requests if r["url"] == PRIMARY_EVENTS_URL][0]
    params = events_request["params"]
    assert params["timeMin"] == "2025-03-10T00:00:00Z"
    assert params["timeMax"] == "2025-03-11T00:00:00Z"
    assert params["singleEvents"] == "true"
    assert params["orderBy"] == "startTime"
    assert params["maxResults"] == 250
    assert "items(" in params["fields"]
    assert events_request["headers"]["Authorization"] == "Bearer g-token"


@pytest.mark.asyncio
async def test_google_401_fails_and_downgrades_provider():
    FakeApiClient.routes = {
        CALENDAR_LIST_URL: lambda r: FakeResponse(401, {"error": {"code": 401}}),
    }
    provider = await _provider()
    assert provider.status() is ProviderAuthState.AUTHORIZED

    result = await provider.fetch_range(START, END)

    assert not result.ok
    assert result.error.kind is FetchErrorKind.UNAUTHORIZED
    assert provider.status() is ProviderAuthState.UNAUTHORIZED
    assert provider.status_reason
    assert not provider.is_available()


@pytest.mark.asyncio
async def test_google_server_error_is_a_transient_failure():
    FakeApiClient.routes = {
        CALENDAR_LIST_URL: lambda r: FakeResponse(503, {"error": "backend"}),
    }
    provider = await _provider()

    result = await provider.fetch_range(START, END)

    assert result.error.kind is FetchErrorKind.NETWORK
    assert provider.status() is ProviderAuthState.AUTHORIZED


@pytest.mark.asyncio
async def test_google_invalid_json_is_a_parse_failure():
    FakeApiClient.routes = {
        CALENDAR_LIST_URL: lambda r: FakeResponse(200, None, text="<html>"),
    }
    provider = await _provider()

    result = await provider.fetch_range(START, END)

    assert result.error.kind is FetchErrorKind.PARSE


@pytest.mark.asyncio
async def test_google_malformed_events_are_skipped_not_fatal():
    FakeApiClient.routes = {
        CALENDAR_LIST_URL: lambda r: FakeResponse(200, {"items": [{"id": "primary", "summary": "Me"}]}),
        PRIMARY_EVENTS_URL: lambda r: FakeResponse(
            200,
            {
                "items": [
                    {"id": "null-start", "start": {"dateTime": None}, "end": {"dateTime": None}},
                    {"id": "string-start", "start": "tomorrow", "end": "tomorrow"},
                    {
                        "id": "odd-conference",
                        "summary": "Sync",
                        "start": {"dateTime": "2025-03-10T12:00:00Z"},
                        "end": {"dateTime": "2025-03-10T12:30:00Z"},
                        "conferenceData": "not-a-dict",
                    },
                ]
            },
        ),
    }
    provider = await _provider()

    result = await provider.fetch_range(START, END)

    assert result.ok
    assert [m.id for m in result.meetings] == ["google:odd-conference"]
    assert result.meetings[0].join_url is None
