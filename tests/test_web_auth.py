# tests/test_web_auth.py
import asyncio
import webbrowser

import pytest

from nextmeet.services.errors import AuthError, AuthErrorKind
from nextmeet.services.web_auth import BrowserWebAuthenticator


@pytest.fixture(autouse=True)
def no_browser(monkeypatch):
    opened = []
    monkeypatch.setattr(webbrowser, "open", lambda url: opened.append(url) or True)
    return opened


@pytest.mark.asyncio
async def test_complete_resolves_pending_authorization(no_browser):
    authenticator = BrowserWebAuthenticator(timeout_seconds=5)

    pending = asyncio.create_task(authenticator.authenticate("https://auth.example.com/a", state="abc"))
    while not authenticator.pending_count:
        await asyncio.sleep(0)

    assert authenticator.complete("other", {"code": "x"}) is False
    assert authenticator.complete("abc", {"state": "abc", "code": "x"}) is True

    assert await pending == {"state": "abc", "code": "x"}
    assert no_browser == ["https://auth.example.com/a"]
    assert authenticator.pending_count == 0


@pytest.mark.asyncio
async def test_unanswered_authorization_times_out_as_consent_denied():
    authenticator = BrowserWebAuthenticator(timeout_seconds=0.01)

    with pytest.raises(AuthError) as exc_info:
        await authenticator.authenticate("https://auth.example.com/a", state="late")

    assert exc_info.value.kind is AuthErrorKind.CONSENT_DENIED
    assert authenticator.complete("late", {}) is False
