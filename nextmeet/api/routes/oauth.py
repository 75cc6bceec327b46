# nextmeet/api/routes/oauth.py
import html

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from nextmeet.api.dependencies.engine import get_authenticator
from nextmeet.api.errors import parse_provider_id
from nextmeet.services.web_auth import BrowserWebAuthenticator

router = APIRouter(prefix="/oauth", tags=["OAuth"])

_PAGE = """<!doctype html>
<html><head><title>{title}</title></head>
<body><h2>{title}</h2><p>{message}</p></body></html>"""


@router.get(
    "/{provider_id}/callback",
    response_class=HTMLResponse,
    summary="OAuth redirect target for the loopback web authenticator",
    description=(
        "Receives the authorization server's redirect (`code`/`state` or "
        "`error`) and hands it to the pending authorization with the same "
        "`state`. Unknown or expired states are rejected with 400."
    ),
)
async def oauth_callback(
    provider_id: str,
    request: Request,
    authenticator: BrowserWebAuthenticator = Depends(get_authenticator),
) -> HTMLResponse:
    provider = parse_provider_id(provider_id)
    params = dict(request.query_params)
    state = params.get("state")

    if not state or not authenticator.complete(state, params):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No pending authorization matches this request.",
        )

    if params.get("error"):
        title = f"{provider.display_name} was not connected"
        message = html.escape(params.get("error_description") or params["error"])
    else:
        title = f"{provider.display_name} connected"
        message = "You can close this window and return to nextmeet."
    return HTMLResponse(_PAGE.format(title=html.escape(title), message=message))
