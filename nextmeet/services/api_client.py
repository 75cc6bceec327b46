# nextmeet/services/api_client.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from nextmeet.services.errors import FetchError, FetchErrorKind

AccessTokenSource = Callable[[], Awaitable[str]]


class CalendarApiClient:
    """
    Minimal authenticated JSON client shared by the REST-backed providers.

    Responsibilities
    ----------------
    - Obtain a valid bearer token before every call (refreshing if needed).
    - Issue GET requests relative to a provider base URL or to an absolute
      URL (pagination links).
    - Translate transport/status/JSON problems into FetchError kinds so
      providers never leak httpx details to the aggregator.
    """

    def __init__(
        self,
        base_url: str,
        token_source: AccessTokenSource,
        timeout_seconds: float = 10.0,
        default_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_source = token_source
        self._timeout_seconds = timeout_seconds
        self._default_headers = dict(default_headers or {})

    def _url(self, path: str) -> str:
        # If path is not an absolute URL, treat it as relative to base_url.
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        token = await self._token_source()

        request_headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            **self._default_headers,
            **(headers or {}),
        }

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.request(
                method=method.upper(),
                url=self._url(path),
                headers=request_headers,
                params=params,
            )

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Issue a GET request and return the decoded JSON object.

        Raises FetchError: `unauthorized` on 401, `timeout`/`network` on
        transport failures or other non-2xx statuses, `parse` on bodies that
        are not a JSON object.
        """
        try:
            resp = await self._request("GET", path, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise FetchError(FetchErrorKind.TIMEOUT, f"GET {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise FetchError(FetchErrorKind.NETWORK, f"GET {path} failed: {exc}") from exc

        if resp.status_code == 401:
            raise FetchError(FetchErrorKind.UNAUTHORIZED, f"GET {path} was rejected (status=401)")
        if resp.status_code // 100 != 2:
            raise FetchError(
                FetchErrorKind.NETWORK,
                f"GET {path} failed (status={resp.status_code}): {resp.text[:200]}",
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchError(FetchErrorKind.PARSE, f"GET {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise FetchError(FetchErrorKind.PARSE, f"GET {path} returned a non-object payload")
        return payload
