# nextmeet/services/web_auth.py
from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Dict, Protocol

from nextmeet.services.errors import AuthError, AuthErrorKind

logger = logging.getLogger(__name__)

DEFAULT_CONSENT_TIMEOUT_SECONDS = 300.0


class WebAuthenticator(Protocol):
    """
    Interactive web-authentication surface.

    Presents `authorization_url` to the user and resolves with the query
    parameters of the redirect that carries `state`.
    """

    async def authenticate(self, authorization_url: str, *, state: str) -> Dict[str, str]: ...


class BrowserWebAuthenticator:
    """
    Opens the system browser and waits for the provider to redirect back to
    the local `/oauth/{provider}/callback` route, which hands the callback
    parameters over through `complete()`.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_CONSENT_TIMEOUT_SECONDS) -> None:
        self._timeout_seconds = timeout_seconds
        self._pending: Dict[str, asyncio.Future[Dict[str, str]]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def authenticate(self, authorization_url: str, *, state: str) -> Dict[str, str]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Dict[str, str]] = loop.create_future()
        self._pending[state] = future

        try:
            opened = await asyncio.to_thread(webbrowser.open, authorization_url)
            if not opened:
                logger.warning("No browser available; open the authorization URL manually: %s", authorization_url)
            return await asyncio.wait_for(future, timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise AuthError(
                AuthErrorKind.CONSENT_DENIED,
                "Authorization was not completed in time.",
            ) from exc
        finally:
            self._pending.pop(state, None)

    def complete(self, state: str, params: Dict[str, str]) -> bool:
        """
        Deliver redirect parameters to the waiting authorization.

        Returns False when no authorization with this `state` is pending
        (unknown, expired or already completed).
        """
        future = self._pending.get(state)
        if future is None or future.done():
            return False
        future.set_result(dict(params))
        return True
