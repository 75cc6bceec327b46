# tests/test_api.py
import threading
from http import HTTPStatus
from urllib.parse import parse_qs, urlsplit

from nextmeet.schemas.provider import ProviderAuthState, ProviderId
from nextmeet.services.errors import AuthError, AuthErrorKind, FetchError, FetchErrorKind


def test_snapshot_is_empty_before_first_refresh(client):
    response = client.get("/snapshot")

    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert data["todays_meetings"] == []
    assert data["next_meeting"] is None
    assert data["urgency_level"] == "none"
    assert data["cycle"] == 0


def test_force_refresh_returns_merged_snapshot(client, fake_providers):
    response = client.post("/controls/force-refresh")

    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert [m["id"] for m in data["todays_meetings"]] == ["google:g1", "outlook:o1"]
    assert data["next_meeting"]["id"] == "google:g1"
    assert data["urgency_level"] == "soon"
    assert data["degraded"] is False
    assert client.get("/snapshot").json()["cycle"] == data["cycle"]


def test_list_providers(client):
    response = client.get("/providers")

    assert response.status_code == HTTPStatus.OK
    by_id = {p["provider"]: p for p in response.json()}
    assert set(by_id) == {"apple", "google", "outlook"}
    assert by_id["google"]["display_name"] == "Google Calendar"
    assert by_id["google"]["state"] == "authorized"
    assert by_id["google"]["enabled"] is True
    assert by_id["google"]["needs_reconnect"] is False


def test_unknown_provider_is_404(client):
    response = client.post("/providers/yahoo/connect")

    assert response.status_code == HTTPStatus.NOT_FOUND


def test_connect_provider(client, fake_providers):
    fake_providers[ProviderId.OUTLOOK].state = ProviderAuthState.UNAUTHORIZED

    response = client.post("/providers/outlook/connect")

    assert response.status_code == HTTPStatus.OK
    assert response.json()["state"] == "authorized"
    assert fake_providers[ProviderId.OUTLOOK].authorize_calls == 1


def test_connect_maps_auth_errors(client, fake_providers):
    google = fake_providers[ProviderId.GOOGLE]

    google.authorize_error = AuthError(AuthErrorKind.CONFIGURATION_MISSING, "No client id.")
    assert client.post("/providers/google/connect").status_code == HTTPStatus.CONFLICT

    google.authorize_error = AuthError(AuthErrorKind.CONSENT_DENIED, "Cancelled.")
    response = client.post("/providers/google/connect")
    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert response.json()["detail"]["kind"] == "consent_denied"

    google.authorize_error = FetchError(FetchErrorKind.NETWORK, "offline")
    assert client.post("/providers/google/connect").status_code == HTTPStatus.SERVICE_UNAVAILABLE


def test_disconnect_provider(client, fake_providers):
    response = client.post("/providers/google/disconnect")

    assert response.status_code == HTTPStatus.OK
    assert response.json()["state"] == "unauthorized"
    assert fake_providers[ProviderId.GOOGLE].disconnect_calls == 1


def test_disable_provider(client):
    response = client.put("/providers/outlook/enabled", json={"enabled": False})

    assert response.status_code == HTTPStatus.OK
    assert response.json()["enabled"] is False
    snapshot = client.get("/snapshot").json()
    assert [m["id"] for m in snapshot["todays_meetings"]] == ["google:g1"]


def test_refresh_interval_is_clamped(client, engine):
    response = client.put("/controls/refresh-interval", json={"seconds": 5})

    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"seconds": 30}
    assert engine.cache.ttl_seconds == 30


def test_show_all_day_toggle(client, engine):
    response = client.put("/controls/show-all-day", json={"show": False})

    assert response.status_code == HTTPStatus.OK
    assert engine.aggregator.show_all_day is False


def test_ui_visibility_triggers_refresh(client, fake_providers):
    response = client.put("/controls/ui-visibility", json={"visible": True})

    assert response.status_code == HTTPStatus.OK
    assert response.json()["visible"] is True
    assert fake_providers[ProviderId.GOOGLE].fetch_calls == 1


def test_oauth_callback_with_unknown_state_is_rejected(client):
    response = client.get("/oauth/google/callback", params={"state": "nope", "code": "c"})

    assert response.status_code == HTTPStatus.BAD_REQUEST


def test_oauth_callback_completes_pending_authorization(client, authenticator, monkeypatch):
    """
    A pending browser authorization is resolved by the redirect hitting the
    callback route.
    """
    import webbrowser

    opened = []
    monkeypatch.setattr(webbrowser, "open", lambda url: opened.append(url) or True)

    result = {}

    def _authorize():
        result["params"] = client.portal.call(
            lambda: authenticator.authenticate("https://auth.example.com/?x=1", state="s-123")
        )

    worker = threading.Thread(target=_authorize)
    worker.start()
    for _ in range(500):
        if authenticator.pending_count:
            break
        threading.Event().wait(0.01)

    response = client.get("/oauth/google/callback", params={"state": "s-123", "code": "the-code"})
    worker.join(timeout=5)

    assert response.status_code == HTTPStatus.OK
    assert "Google Calendar connected" in response.text
    assert result["params"] == {"state": "s-123", "code": "the-code"}
    assert parse_qs(urlsplit(opened[0]).query) == {"x": ["1"]}


def test_provider_needing_reconnect_is_flagged(client, fake_providers):
    outlook = fake_providers[ProviderId.OUTLOOK]
    outlook.state = ProviderAuthState.UNAUTHORIZED
    outlook.reason = "Access was revoked; reconnect to continue."

    by_id = {p["provider"]: p for p in client.get("/providers").json()}

    assert by_id["outlook"]["needs_reconnect"] is True
    assert by_id["outlook"]["reason"] == "Access was revoked; reconnect to continue."
