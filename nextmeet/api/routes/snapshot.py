# nextmeet/api/routes/snapshot.py
from fastapi import APIRouter, Depends

from nextmeet.api.dependencies.engine import get_engine
from nextmeet.schemas.snapshot import AggregateSnapshot
from nextmeet.services.engine import CalendarEngine

router = APIRouter(tags=["Snapshot"])


@router.get(
    "/snapshot",
    response_model=AggregateSnapshot,
    summary="Current aggregated meeting snapshot",
    description=(
        "Returns the most recently published snapshot: today's merged meetings, "
        "the next meeting with its urgency level, and the degraded / last-error "
        "state of the last refresh cycle.\n\n"
        "Reading the snapshot never triggers a provider fetch."
    ),
)
async def get_snapshot(engine: CalendarEngine = Depends(get_engine)) -> AggregateSnapshot:
    return engine.snapshot
