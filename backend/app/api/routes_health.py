from __future__ import annotations

from datetime import datetime
from fastapi import APIRouter
from app.deps import get_simulation_service
from app.models.domain import HealthResponse

router = APIRouter()

@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    svc = get_simulation_service()
    return HealthResponse(
        status="ok",
        ts=datetime.now().isoformat(),
        details={
            "simulation": "running" if svc.running else "stopped",
            "tick": str(svc.state.tick),
        },
    )
