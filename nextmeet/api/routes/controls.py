# nextmeet/api/routes/controls.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from nextmeet.api.dependencies.engine import get_engine
from nextmeet.api.dependencies.internal_auth import verify_internal_api_key
from nextmeet.schemas.snapshot import AggregateSnapshot
from nextmeet.services.engine import CalendarEngine
from nextmeet.services.scheduler import MAX_REFRESH_INTERVAL_SECONDS, MIN_REFRESH_INTERVAL_SECONDS

router = APIRouter(
    prefix="/controls",
    tags=["Controls"],
    dependencies=[Depends(verify_internal_api_key)],
)


class RefreshIntervalUpdate(BaseModel):
    seconds: int = Field(
        ...,
        description=(
            f"Requested refresh interval; clamped to "
            f"{MIN_REFRESH_INTERVAL_SECONDS}-{MAX_REFRESH_INTERVAL_SECONDS} seconds."
        ),
        examples=[120],
    )


class RefreshIntervalResponse(BaseModel):
    seconds: int = Field(..., description="Interval actually applied after clamping.", examples=[120])


class ShowAllDayUpdate(BaseModel):
    show: bool = Field(..., description="Include all-day entries in today's meetings.", examples=[False])


class UiVisibilityUpdate(BaseModel):
    visible: bool = Field(..., description="Whether the meetings UI is currently on screen.", examples=[True])


class UiVisibilityResponse(BaseModel):
    visible: bool
    refresh_interval_seconds: int | None = Field(
        None,
        description="Cadence the scheduler is running at after the change (null when stopped).",
    )


@router.post(
    "/force-refresh",
    response_model=AggregateSnapshot,
    summary="Bypass the cache and refresh immediately",
)
async def force_refresh(engine: CalendarEngine = Depends(get_engine)) -> AggregateSnapshot:
    return await engine.force_refresh()


@router.put(
    "/refresh-interval",
    response_model=RefreshIntervalResponse,
    summary="Set the user refresh interval",
    description=(
        "Applies the interval used while meetings remain and no UI is visible. "
        "The result cache TTL follows the interval, so cached entries are dropped."
    ),
)
async def set_refresh_interval(
    payload: RefreshIntervalUpdate,
    engine: CalendarEngine = Depends(get_engine),
) -> RefreshIntervalResponse:
    return RefreshIntervalResponse(seconds=await engine.set_refresh_interval(payload.seconds))


@router.put(
    "/show-all-day",
    response_model=AggregateSnapshot,
    summary="Show or hide all-day entries",
)
async def set_show_all_day(
    payload: ShowAllDayUpdate,
    engine: CalendarEngine = Depends(get_engine),
) -> AggregateSnapshot:
    return await engine.set_show_all_day(payload.show)


@router.put(
    "/ui-visibility",
    response_model=UiVisibilityResponse,
    summary="Report whether the meetings UI is visible",
    description=(
        "A visible UI polls every 30 seconds. Becoming visible also forces an "
        "immediate refresh so the user never opens a stale view."
    ),
)
async def set_ui_visibility(
    payload: UiVisibilityUpdate,
    engine: CalendarEngine = Depends(get_engine),
) -> UiVisibilityResponse:
    await engine.notify_ui_visibility(payload.visible)
    return UiVisibilityResponse(
        visible=payload.visible,
        refresh_interval_seconds=engine.scheduler.current_interval,
    )
