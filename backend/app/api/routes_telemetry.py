from __future__ import annotations

from fastapi import APIRouter, HTTPException

from app.deps import get_simulation_service
from app.models.domain import TelemetryPoint

from sse_starlette.sse import EventSourceResponse
import asyncio
import json

router = APIRouter()


@router.get("/latest", response_model=TelemetryPoint)
async def telemetry_latest() -> TelemetryPoint:
    """
    Returns the room aggregate from the most recent completed tick.
    """
    svc = get_simulation_service()
    latest = svc.get_latest_telemetry()
    if latest is None:
        raise HTTPException(status_code=503, detail="No tick has completed yet")
    return TelemetryPoint(**latest)


@router.get("/stream", response_class=EventSourceResponse)
async def telemetry_stream():
    """
    Streams the latest committed tick snapshot (SSE), once per tick period.
    """
    svc = get_simulation_service()

    async def event_generator():
        last_tick = -1
        while True:
            latest = svc.get_latest_telemetry()
            if latest and latest.get("tick") != last_tick:
                last_tick = int(latest.get("tick", -1))
                yield {"data": json.dumps(latest)}

            await asyncio.sleep(float(svc.cfg.tick_period_s) / 2.0)

    return EventSourceResponse(event_generator())
