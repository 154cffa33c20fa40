from __future__ import annotations

from datetime import datetime
from typing import List
from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse

from app.deps import get_simulation_service
from app.models.domain import AutomatedAction, EventsLatestResponse, EventStats
from app.services.csv_export import csv_filename

router = APIRouter()


@router.get("/latest", response_model=EventsLatestResponse)
async def events_latest(
    limit: int = Query(60, ge=1, le=1000, description="Max number of journal entries to return"),
) -> EventsLatestResponse:
    """
    Returns the most recent event journal entries, oldest first.
    """
    svc = get_simulation_service()
    return EventsLatestResponse(ts=datetime.now().isoformat(), events=svc.get_events(limit=limit))


@router.get("/stats", response_model=EventStats)
async def events_stats() -> EventStats:
    return get_simulation_service().get_event_stats()


@router.get("/automated", response_model=List[AutomatedAction])
async def events_automated(
    limit: int = Query(50, ge=1, le=200),
) -> List[AutomatedAction]:
    return get_simulation_service().get_automated_actions(limit=limit)


@router.get("/export.csv", response_class=PlainTextResponse)
async def export_events_csv() -> PlainTextResponse:
    svc = get_simulation_service()
    filename = csv_filename("smart-cooling-log", svc.state.started_at)
    return PlainTextResponse(
        svc.events_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
