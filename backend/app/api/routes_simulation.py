"""
routes_simulation.py

Purpose:
  Lifecycle and input controls for the rack simulation.

Endpoints:
  - **GET  /simulation/status**: running flag, tick counter, current controls.
  - **POST /simulation/start** / **stop**: schedule or cancel the tick loop.
  - **POST /simulation/tick**: run exactly one tick now (manual stepping).
  - **POST /simulation/reset**: fresh racks, tracking, alerts, journal, energy.
  - **PUT  /simulation/controls**: partial update of intensity, auto mode,
    electricity rate and display unit. Omitted fields keep their value.
"""
from __future__ import annotations

from datetime import datetime
from fastapi import APIRouter

from app.deps import get_simulation_service
from app.models.domain import (
    ControlsUpdate,
    SimulationControls,
    SimulationStatusResponse,
    TickResponse,
)

router = APIRouter()


def _status() -> SimulationStatusResponse:
    svc = get_simulation_service()
    return SimulationStatusResponse(
        ts=datetime.now().isoformat(),
        running=svc.running,
        tick=svc.state.tick,
        rack_count=len(svc.state.racks),
        active_alerts=len(svc.state.alerts.active()),
        journal_entries=len(svc.state.journal),
        controls=svc.controls,
    )


@router.get("/status", response_model=SimulationStatusResponse)
async def simulation_status() -> SimulationStatusResponse:
    return _status()


@router.post("/start", response_model=SimulationStatusResponse)
async def simulation_start() -> SimulationStatusResponse:
    get_simulation_service().start()
    return _status()


@router.post("/stop", response_model=SimulationStatusResponse)
async def simulation_stop() -> SimulationStatusResponse:
    await get_simulation_service().stop()
    return _status()


@router.post("/tick", response_model=TickResponse)
async def simulation_tick() -> TickResponse:
    result = get_simulation_service().tick()
    return TickResponse(
        ts=datetime.now().isoformat(),
        tick=result.tick,
        new_alerts=result.new_alerts,
        new_events=result.new_events,
    )


@router.post("/reset", response_model=SimulationStatusResponse)
async def simulation_reset() -> SimulationStatusResponse:
    svc = get_simulation_service()
    await svc.stop()
    svc.reset()
    return _status()


@router.put("/controls", response_model=SimulationControls)
async def simulation_controls(update: ControlsUpdate) -> SimulationControls:
    return get_simulation_service().update_controls(update)
