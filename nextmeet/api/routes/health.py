# nextmeet/api/routes/health.py
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from nextmeet.core.config import get_settings


router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.
    """

    status: str = Field(
        ...,
        description="Overall health status of the nextmeet service.",
        examples=["ok"],
    )
    app_name: str = Field(..., description="Name of the running application.", examples=["nextmeet"])
    environment: str = Field(
        ...,
        description="Current environment (local/dev/stage/prod).",
        examples=["local"],
    )
    engine_running: bool = Field(
        ...,
        description="Whether the calendar engine has been started by the application lifespan.",
    )
    last_cycle: int = Field(
        ...,
        description="Refresh cycle of the currently published snapshot (0 before the first refresh).",
        examples=[12],
    )
    timestamp_utc: datetime = Field(
        ...,
        description="Server-side timestamp (UTC) at which this health check was generated.",
        examples=["2025-01-01T10:30:00Z"],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check for the nextmeet service",
    description=(
        "Lightweight liveness endpoint. It never calls a calendar provider, so it "
        "stays reliable while providers are degraded."
    ),
)
async def health_check(request: Request) -> HealthResponse:
    settings = get_settings()
    engine = getattr(request.app.state, "engine", None)
    return HealthResponse(
        status="ok",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        engine_running=engine is not None,
        last_cycle=engine.snapshot.cycle if engine is not None else 0,
        timestamp_utc=datetime.now(tz=timezone.utc),
    )
