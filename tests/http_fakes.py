# tests/http_fakes.py
from typing import Any, Callable, Dict, List, Optional


class FakeResponse:
    def __init__(self, status_code: int, json_data: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text if text is not None else str(json_data)

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("no JSON body")
        return self._json_data


Handler = Callable[[Dict[str, Any]], Any]


class FakeApiClient:
    """
    Stand-in for httpx.AsyncClient used by CalendarApiClient.

    Requests are matched against `routes` by URL; a handler receives the
    recorded request and returns a FakeResponse (or raises). Every request
    is appended to `requests`.
    """

    routes: Dict[str, Handler] = {}
    requests: List[Dict[str, Any]] = []

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout

    async def __aenter__(self) -> "FakeApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> FakeResponse:
        recorded = {"method": method, "url": url, "headers": headers or {}, "params": params or {}}
        FakeApiClient.requests.append(recorded)
        handler = FakeApiClient.routes.get(url)
        if handler is None:
            return FakeResponse(404, {"error": f"no route for {url}"})
        return handler(recorded)

    @classmethod
    def reset(cls) -> None:
        cls.routes = {}
        cls.requests = []
