from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse

from app.deps import get_simulation_service
from app.errors import RackNotFoundError
from app.models.domain import Rack, RackHistoryPoint, RackStats, RoomSummary
from app.services.csv_export import csv_filename

router = APIRouter()


@router.get("", response_model=List[Rack])
async def list_racks() -> List[Rack]:
    return get_simulation_service().get_racks()


@router.get("/summary", response_model=RoomSummary)
async def rack_room_summary() -> RoomSummary:
    return get_simulation_service().get_room_summary()


@router.get("/export.csv", response_class=PlainTextResponse)
async def export_racks_csv() -> PlainTextResponse:
    svc = get_simulation_service()
    filename = csv_filename("cooling-monitor-data", svc.state.started_at)
    return PlainTextResponse(
        svc.racks_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{rack_id}", response_model=Rack)
async def get_rack(rack_id: str) -> Rack:
    try:
        return get_simulation_service().get_rack(rack_id)
    except RackNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{rack_id}/stats", response_model=RackStats)
async def get_rack_stats(rack_id: str) -> RackStats:
    """
    Diagnostics for the rack detail panel: overheat counts, fan boosts,
    recoveries, maintenance forecast and cooling efficiency.
    """
    try:
        return get_simulation_service().get_rack_stats(rack_id)
    except RackNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{rack_id}/history", response_model=List[RackHistoryPoint])
async def get_rack_history(
    rack_id: str,
    limit: Optional[int] = Query(None, ge=1, le=300, description="Most recent N points"),
) -> List[RackHistoryPoint]:
    try:
        return get_simulation_service().get_rack_history(rack_id, limit=limit)
    except RackNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
