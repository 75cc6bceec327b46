# nextmeet/api/dependencies/internal_auth.py
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from nextmeet.core.config import get_settings

OPEN_ENVIRONMENTS = ("local", "test")


def _matches(provided: Optional[str], expected: str) -> bool:
    return bool(provided) and secrets.compare_digest(provided, expected)


async def verify_internal_api_key(
    internal_api_key: Optional[str] = Header(
        default=None,
        alias="X-Internal-Api-Key",
        description="Control API key required for mutating engine endpoints.",
    ),
) -> None:
    """
    Dependency protecting the routes that change engine state (connect,
    disconnect, enable, refresh controls).

    Rules
    -----
    - APP_ENV in ("local", "test"):
        - INTERNAL_API_KEY unset -> open (the UI runs on the same machine).
        - INTERNAL_API_KEY set   -> header must match.
    - Any other APP_ENV:
        - INTERNAL_API_KEY unset -> 500 (misconfiguration).
        - Header missing or different -> 401.
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()
    expected = settings.INTERNAL_API_KEY

    if not expected:
        if env in OPEN_ENVIRONMENTS:
            return
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INTERNAL_API_KEY not configured for this environment.",
        )

    if not _matches(internal_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing internal API key.",
        )
