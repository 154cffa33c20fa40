"""
routes_alerts.py

Purpose:
  Operator view of alerts and the two alert actions.

Endpoints:
  - **GET  /alerts**: active alerts (set `include_dismissed=true` for all).
  - **POST /alerts/{alert_id}/dismiss**: one-way dismissal.
  - **POST /alerts/{alert_id}/action**: `increase_fan` applies a manual fan
    boost to the alert's rack and dismisses it; `monitor` only dismisses.
"""
from __future__ import annotations

from datetime import datetime
from typing import List
from fastapi import APIRouter, HTTPException, Query

from app.deps import get_simulation_service
from app.errors import AlertNotFoundError
from app.models.domain import Alert, AlertAction, AlertActionResponse

router = APIRouter()


@router.get("", response_model=List[Alert])
async def list_alerts(
    include_dismissed: bool = Query(False, description="Include dismissed alerts (audit view)"),
) -> List[Alert]:
    return get_simulation_service().get_alerts(include_dismissed=include_dismissed)


@router.post("/{alert_id}/dismiss", response_model=AlertActionResponse)
async def dismiss_alert(alert_id: str) -> AlertActionResponse:
    try:
        alert = get_simulation_service().dismiss_alert(alert_id)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return AlertActionResponse(ts=datetime.now().isoformat(), alert=alert)


@router.post("/{alert_id}/action", response_model=AlertActionResponse)
async def alert_action(
    alert_id: str,
    action: AlertAction = Query(..., description="increase_fan or monitor"),
) -> AlertActionResponse:
    try:
        alert, entry = get_simulation_service().handle_alert_action(alert_id, action)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return AlertActionResponse(ts=datetime.now().isoformat(), alert=alert, event=entry)
