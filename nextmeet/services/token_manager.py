# nextmeet/services/token_manager.py
from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from nextmeet.schemas.provider import OAuthTokenSet, ProviderAuthState
from nextmeet.services.credential_store import SecretStore
from nextmeet.services.errors import AuthError, AuthErrorKind, FetchError, FetchErrorKind
from nextmeet.services.oauth_config import OAuthClientConfig
from nextmeet.services.web_auth import WebAuthenticator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class PKCEPair:
    """
    Proof Key for Code Exchange verifier/challenge (S256).
    """

    verifier: str
    challenge: str

    @classmethod
    def generate(cls) -> "PKCEPair":
        verifier = secrets.token_urlsafe(64)
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
        return cls(verifier=verifier, challenge=challenge)


class _TokenEndpointRejected(Exception):
    """
    The token endpoint answered, but not with a usable token set.
    """


class _TokenEndpointUnavailable(Exception):
    """
    The token endpoint could not be reached or answered with a server error.
    """


class TokenLifecycleManager:
    """
    Owns one OAuth provider's token set: acquisition, refresh-before-use,
    persistence and revocation.

    Responsibilities
    ----------------
    - `ensure_valid()` hands out a currently valid access token or fails
      definitively; expired tokens are refreshed first.
    - `authorize()` runs the interactive Authorization Code + PKCE flow.
    - `revoke()` forgets the stored credentials.

    Notes
    -----
    - A single lock guards the in-memory token set, so at most one refresh
      request is in flight; concurrent callers wait and reuse its result.
    - A refresh the token endpoint rejects clears the stored set and raises
      `reauth_required`. A refresh that cannot reach the endpoint keeps the
      set, moves the provider to `error` and raises a transient FetchError.
    """

    def __init__(
        self,
        config: OAuthClientConfig,
        store: SecretStore,
        authenticator: Optional[WebAuthenticator] = None,
        timeout_seconds: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._store = store
        self._authenticator = authenticator
        self._timeout_seconds = timeout_seconds
        self._clock = clock

        self._tokens: Optional[OAuthTokenSet] = None
        self._loaded = False
        self._lock = asyncio.Lock()
        self._state = ProviderAuthState.UNAUTHORIZED
        self._reason: Optional[str] = None
        # Set when stored credentials were dropped because the provider stopped
        # accepting them; cleared by a new authorization or an explicit revoke.
        self._reauth_required = False
        # The interactive flow currently in progress, shared by overlapping callers.
        self._authorizing: Optional[asyncio.Task[None]] = None

    @property
    def storage_key(self) -> str:
        return f"oauth_tokens.{self._config.provider.value}"

    @property
    def state(self) -> ProviderAuthState:
        return self._state

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def _set_state(self, state: ProviderAuthState, reason: Optional[str] = None) -> None:
        if state is not self._state:
            logger.info(
                "%s authorization state %s -> %s",
                self._config.provider.value,
                self._state.value,
                state.value,
            )
        self._state = state
        self._reason = reason

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _load(self) -> Optional[OAuthTokenSet]:
        if self._loaded:
            return self._tokens

        raw = await self._store.get(self.storage_key)
        self._loaded = True
        if raw is None:
            self._tokens = None
            return None

        try:
            self._tokens = OAuthTokenSet.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable %s token set", self._config.provider.value)
            await self._store.delete(self.storage_key)
            self._tokens = None
        return self._tokens

    async def _persist(self, tokens: OAuthTokenSet) -> None:
        await self._store.set(self.storage_key, tokens.model_dump_json())
        self._tokens = tokens
        self._loaded = True

    async def _clear(self) -> None:
        await self._store.delete(self.storage_key)
        self._tokens = None
        self._loaded = True

    async def restore(self) -> bool:
        """
        Load a previously persisted token set, if any, and mark the provider
        as authorized so it resumes without a new consent flow.
        """
        async with self._lock:
            tokens = await self._load()
        if tokens is None:
            self._set_state(ProviderAuthState.UNAUTHORIZED)
            return False
        self._set_state(ProviderAuthState.AUTHORIZED)
        return True

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def _request_tokens(
        self,
        data: Dict[str, str],
        previous_refresh_token: Optional[str] = None,
    ) -> OAuthTokenSet:
        """
        POST a grant to the token endpoint and parse the resulting token set.

        Raises
        ------
        _TokenEndpointRejected
            Non-200 status or an unusable payload.
        _TokenEndpointUnavailable
            Server-side failure at the endpoint.
        httpx.HTTPError
            The endpoint could not be reached.
        """
        if self._config.client_secret:
            data = {**data, "client_secret": self._config.client_secret}

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(
                self._config.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )

        if resp.status_code >= 500:
            raise _TokenEndpointUnavailable(f"token endpoint returned status={resp.status_code}")
        if resp.status_code != 200:
            raise _TokenEndpointRejected(f"token endpoint returned status={resp.status_code}")

        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise _TokenEndpointRejected("token endpoint returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise _TokenEndpointRejected("token endpoint returned a non-object payload")

        try:
            return OAuthTokenSet.from_token_response(
                payload,
                now=self._clock(),
                previous_refresh_token=previous_refresh_token,
            )
        except ValueError as exc:
            raise _TokenEndpointRejected(str(exc)) from exc

    async def _refresh(self, refresh_token: str) -> OAuthTokenSet:
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._config.client_id or "",
        }
        if "offline_access" in self._config.scope:
            data["scope"] = self._config.scope
        return await self._request_tokens(data, previous_refresh_token=refresh_token)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ensure_valid(self) -> str:
        """
        Return a currently valid access token, refreshing it first if needed.

        Raises
        ------
        AuthError
            `unauthenticated` when nothing is stored, `reauth_required` when
            the token expired and cannot be refreshed (and on every later
            call until the user authorizes again).
        FetchError
            `network`/`timeout` when the token endpoint is unreachable.
        """
        async with self._lock:
            tokens = await self._load()
            if tokens is None:
                if self._reauth_required:
                    raise AuthError(AuthErrorKind.REAUTH_REQUIRED, "Stored credentials were cleared; sign in again.")
                self._set_state(ProviderAuthState.UNAUTHORIZED)
                raise AuthError(AuthErrorKind.UNAUTHENTICATED, "No stored credentials.")

            if not tokens.is_expired(self._clock()):
                if self._state is not ProviderAuthState.AUTHORIZED:
                    self._set_state(ProviderAuthState.AUTHORIZED)
                return tokens.access_token

            if not tokens.refresh_token:
                await self._clear()
                self._reauth_required = True
                self._set_state(ProviderAuthState.UNAUTHORIZED, "Sign-in expired.")
                raise AuthError(AuthErrorKind.REAUTH_REQUIRED, "Access token expired and no refresh token is stored.")

            try:
                refreshed = await self._refresh(tokens.refresh_token)
            except _TokenEndpointRejected as exc:
                logger.warning("%s token refresh rejected: %s", self._config.provider.value, exc)
                await self._clear()
                self._reauth_required = True
                self._set_state(ProviderAuthState.UNAUTHORIZED, "Sign-in expired.")
                raise AuthError(AuthErrorKind.REAUTH_REQUIRED, "Token refresh was rejected.") from exc
            except httpx.TimeoutException as exc:
                self._set_state(ProviderAuthState.ERROR, "Token refresh timed out.")
                raise FetchError(FetchErrorKind.TIMEOUT, "Token refresh timed out.") from exc
            except (_TokenEndpointUnavailable, httpx.HTTPError) as exc:
                self._set_state(ProviderAuthState.ERROR, "Token endpoint unreachable.")
                raise FetchError(FetchErrorKind.NETWORK, f"Token refresh failed: {exc}") from exc

            await self._persist(refreshed)
            self._set_state(ProviderAuthState.AUTHORIZED)
            logger.info("Refreshed %s access token", self._config.provider.value)
            return refreshed.access_token

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "client_id": self._config.client_id or "",
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": self._config.scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            **self._config.extra_auth_params,
        }
        return f"{self._config.auth_url}?{urlencode(params)}"

    async def authorize(self) -> None:
        """
        Run the interactive Authorization Code flow with PKCE and persist the
        resulting token set.

        Raises AuthError (`configuration_missing` or `consent_denied`) or a
        transient FetchError when the token endpoint is unreachable.

        Overlapping calls join the flow already in progress instead of opening
        a second consent page; all of them see its outcome.
        """
        if self._authorizing is None or self._authorizing.done():
            self._authorizing = asyncio.ensure_future(self._run_authorization())
        await asyncio.shield(self._authorizing)

    async def _run_authorization(self) -> None:
        if not self._config.is_configured:
            raise AuthError(
                AuthErrorKind.CONFIGURATION_MISSING,
                f"No OAuth client id configured for {self._config.provider.display_name}.",
            )
        if self._authenticator is None:
            raise AuthError(
                AuthErrorKind.CONFIGURATION_MISSING,
                "No web authentication surface is available.",
            )

        previous_state = self._state
        self._set_state(ProviderAuthState.AUTHORIZING)

        pkce = PKCEPair.generate()
        state = secrets.token_urlsafe(32)
        url = self.build_authorization_url(state, pkce.challenge)

        try:
            params = await self._authenticator.authenticate(url, state=state)

            if params.get("state") != state:
                raise AuthError(AuthErrorKind.CONSENT_DENIED, "Authorization response did not match the request.")
            if params.get("error"):
                raise AuthError(
                    AuthErrorKind.CONSENT_DENIED,
                    params.get("error_description") or params["error"],
                )
            code = params.get("code")
            if not code:
                raise AuthError(AuthErrorKind.CONSENT_DENIED, "Authorization response carried no code.")

            tokens = await self._request_tokens(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self._config.client_id or "",
                    "redirect_uri": self._config.redirect_uri,
                    "code_verifier": pkce.verifier,
                }
            )
        except AuthError:
            self._set_state(previous_state)
            raise
        except _TokenEndpointRejected as exc:
            self._set_state(ProviderAuthState.UNAUTHORIZED, "Authorization failed.")
            raise AuthError(AuthErrorKind.CONSENT_DENIED, f"Code exchange failed: {exc}") from exc
        except (_TokenEndpointUnavailable, httpx.HTTPError) as exc:
            self._set_state(previous_state)
            raise FetchError(FetchErrorKind.NETWORK, f"Code exchange failed: {exc}") from exc

        async with self._lock:
            await self._persist(tokens)
        self._reauth_required = False
        self._set_state(ProviderAuthState.AUTHORIZED)
        logger.info("%s authorized", self._config.provider.display_name)

    async def invalidate(self, reason: str) -> None:
        """
        Forget credentials the provider no longer accepts (e.g. a 401 from
        the API) and require the user to reconnect.
        """
        async with self._lock:
            await self._clear()
        self._reauth_required = True
        self._set_state(ProviderAuthState.UNAUTHORIZED, reason)

    async def revoke(self) -> None:
        """
        Delete the stored token set and reset to `unauthorized`. Idempotent.
        """
        async with self._lock:
            await self._clear()
        self._reauth_required = False
        self._set_state(ProviderAuthState.UNAUTHORIZED)
