from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, Query

from app.deps import get_simulation_service
from app.models.domain import EnergySummary, TelemetryPoint

router = APIRouter()

@router.get("/summary", response_model=EnergySummary)
async def energy_summary() -> EnergySummary:
    """
    Session vs baseline energy, savings, and cost at the configured rate
    (an unset or invalid rate prices everything at 0).
    """
    return get_simulation_service().get_energy_summary()


@router.get("/timeseries", response_model=List[TelemetryPoint])
async def energy_timeseries(
    limit: Optional[int] = Query(None, ge=1, le=300, description="Most recent N ticks"),
) -> List[TelemetryPoint]:
    return get_simulation_service().get_timeseries(limit=limit)
