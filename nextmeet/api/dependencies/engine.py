# nextmeet/api/dependencies/engine.py
from fastapi import HTTPException, Request, status

from nextmeet.services.engine import CalendarEngine
from nextmeet.services.web_auth import BrowserWebAuthenticator


def get_engine(request: Request) -> CalendarEngine:
    """
    The engine instance owned by the running application.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Calendar engine is not running.",
        )
    return engine


def get_authenticator(request: Request) -> BrowserWebAuthenticator:
    authenticator = getattr(request.app.state, "authenticator", None)
    if authenticator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No web authenticator is configured.",
        )
    return authenticator
