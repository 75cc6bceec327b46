# nextmeet/api/routes/providers.py
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from nextmeet.api.dependencies.engine import get_engine
from nextmeet.api.dependencies.internal_auth import verify_internal_api_key
from nextmeet.api.errors import http_error_for, parse_provider_id
from nextmeet.schemas.provider import ProviderStatus
from nextmeet.services.engine import CalendarEngine
from nextmeet.services.errors import AuthError, FetchError

router = APIRouter(prefix="/providers", tags=["Providers"])


class EnabledUpdate(BaseModel):
    enabled: bool = Field(..., description="Switch the provider on or off.", examples=[True])


@router.get(
    "",
    response_model=List[ProviderStatus],
    summary="List calendar providers and their connection state",
)
async def list_providers(engine: CalendarEngine = Depends(get_engine)) -> List[ProviderStatus]:
    return engine.provider_statuses()


@router.post(
    "/{provider_id}/connect",
    response_model=ProviderStatus,
    dependencies=[Depends(verify_internal_api_key)],
    summary="Enable and authorize a provider",
    description=(
        "Switches the provider on and runs its interactive authorization. For "
        "Google and Outlook this opens the system browser and waits until the "
        "OAuth redirect reaches `/oauth/{provider_id}/callback`; for Apple it "
        "triggers the OS calendar permission prompt.\n\n"
        "Errors:\n"
        "- 400: the user declined consent\n"
        "- 409: no OAuth client is configured for the provider\n"
        "- 503: the token endpoint could not be reached\n"
    ),
    responses={404: {"description": "Unknown provider id."}},
)
async def connect_provider(
    provider_id: str,
    engine: CalendarEngine = Depends(get_engine),
) -> ProviderStatus:
    pid = parse_provider_id(provider_id)
    try:
        return await engine.connect(pid)
    except (AuthError, FetchError) as exc:
        raise http_error_for(exc) from exc


@router.post(
    "/{provider_id}/disconnect",
    response_model=ProviderStatus,
    dependencies=[Depends(verify_internal_api_key)],
    summary="Forget a provider's credentials",
    description="Deletes stored tokens and drops the provider's cached meetings. Idempotent.",
)
async def disconnect_provider(
    provider_id: str,
    engine: CalendarEngine = Depends(get_engine),
) -> ProviderStatus:
    return await engine.disconnect(parse_provider_id(provider_id))


@router.put(
    "/{provider_id}/enabled",
    response_model=ProviderStatus,
    dependencies=[Depends(verify_internal_api_key)],
    summary="Switch a provider on or off",
)
async def set_provider_enabled(
    provider_id: str,
    payload: EnabledUpdate,
    engine: CalendarEngine = Depends(get_engine),
) -> ProviderStatus:
    return await engine.set_enabled(parse_provider_id(provider_id), payload.enabled)
