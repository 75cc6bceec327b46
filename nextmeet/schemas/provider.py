# nextmeet/schemas/provider.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field, computed_field


class ProviderId(str, Enum):
    """
    Closed set of calendar sources the engine knows how to read.
    """

    APPLE = "apple"
    GOOGLE = "google"
    OUTLOOK = "outlook"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_network_backed(self) -> bool:
        return self is not ProviderId.APPLE


_DISPLAY_NAMES = {
    ProviderId.APPLE: "Apple Calendar",
    ProviderId.GOOGLE: "Google Calendar",
    ProviderId.OUTLOOK: "Outlook",
}


class ProviderAuthState(str, Enum):
    """
    Authorization state of a single provider.

    `denied` and `restricted` can only be left through user action outside
    the engine (OS settings). `error` means credentials exist but the last
    attempt to use them failed transiently.
    """

    UNAUTHORIZED = "unauthorized"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RESTRICTED = "restricted"
    ERROR = "error"


class ProviderStatus(BaseModel):
    """
    Public view of one provider's connection state.
    """

    provider: ProviderId = Field(..., description="Provider identifier.", examples=["google"])
    display_name: str = Field(..., description="Human-friendly provider name.", examples=["Google Calendar"])
    state: ProviderAuthState = Field(..., description="Current authorization state.", examples=["authorized"])
    enabled: bool = Field(..., description="Whether the user has this provider switched on.")
    reason: str | None = Field(
        None,
        description="Short explanation when the provider is in `error` or needs reconnecting.",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def needs_reconnect(self) -> bool:
        return self.enabled and self.state is ProviderAuthState.UNAUTHORIZED and self.reason is not None


# Subtracted from `expires_in` so a token is refreshed slightly before the
# provider stops accepting it.
TOKEN_EXPIRY_SAFETY_MARGIN = timedelta(seconds=60)

# Used when the token endpoint omits `expires_in`.
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class OAuthTokenSet(BaseModel):
    """
    OAuth 2.0 credentials for one provider as persisted in the credential store.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(tz=timezone.utc)
        return now >= self.expires_at

    @classmethod
    def from_token_response(
        cls,
        payload: Dict[str, Any],
        *,
        now: datetime,
        previous_refresh_token: str | None = None,
    ) -> "OAuthTokenSet":
        """
        Build a token set from a token endpoint JSON response.

        Raises ValueError when the payload carries no usable access token.
        Providers are not required to rotate refresh tokens, so a response
        without `refresh_token` keeps `previous_refresh_token`.
        """
        access_token = payload.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ValueError("token response is missing access_token")

        expires_in = payload.get("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS)
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"token response has invalid expires_in: {expires_in!r}") from exc

        expires_at = now + timedelta(seconds=lifetime) - TOKEN_EXPIRY_SAFETY_MARGIN

        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
        )
