# nextmeet/services/oauth_config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from nextmeet.core.config import Settings
from nextmeet.schemas.provider import ProviderId

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
GOOGLE_CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"

MICROSOFT_LOGIN_BASE = "https://login.microsoftonline.com"
OUTLOOK_CALENDAR_SCOPE = "Calendars.Read offline_access"
GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"


@dataclass(frozen=True)
class OAuthClientConfig:
    """
    Static description of one provider's OAuth 2.0 public-client registration.
    """

    provider: ProviderId
    client_id: str | None
    auth_url: str
    token_url: str
    scope: str
    redirect_uri: str
    client_secret: str | None = None
    extra_auth_params: Dict[str, str] = field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)


def google_oauth_config(settings: Settings) -> OAuthClientConfig:
    return OAuthClientConfig(
        provider=ProviderId.GOOGLE,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        auth_url=GOOGLE_AUTH_URL,
        token_url=GOOGLE_TOKEN_URL,
        scope=GOOGLE_CALENDAR_SCOPE,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        # offline + consent guarantees a refresh token on every grant
        extra_auth_params={"access_type": "offline", "prompt": "consent"},
    )


def outlook_oauth_config(settings: Settings) -> OAuthClientConfig:
    tenant = settings.OUTLOOK_TENANT or "common"
    return OAuthClientConfig(
        provider=ProviderId.OUTLOOK,
        client_id=settings.OUTLOOK_CLIENT_ID,
        auth_url=f"{MICROSOFT_LOGIN_BASE}/{tenant}/oauth2/v2.0/authorize",
        token_url=f"{MICROSOFT_LOGIN_BASE}/{tenant}/oauth2/v2.0/token",
        scope=OUTLOOK_CALENDAR_SCOPE,
        redirect_uri=settings.OUTLOOK_REDIRECT_URI,
        extra_auth_params={"response_mode": "query"},
    )
