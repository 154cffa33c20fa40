from __future__ import annotations

import asyncio
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.deps import get_simulation_service

logger = logging.getLogger(__name__)

router = APIRouter()

@router.websocket("/ws/telemetry")
async def ws_telemetry(websocket: WebSocket):
    """
    WebSocket stream of the latest tick snapshot.
    Same payload as the SSE stream so the frontend can switch easily.
    """
    await websocket.accept()
    svc = get_simulation_service()
    last_tick = -1

    try:
        while True:
            latest = svc.get_latest_telemetry()
            if latest and latest.get("tick") != last_tick:
                last_tick = int(latest.get("tick", -1))
                await websocket.send_json(latest)

            await asyncio.sleep(float(svc.cfg.tick_period_s) / 2.0)

    except WebSocketDisconnect:
        # normal disconnect
        return
    except Exception:
        logger.exception("Telemetry websocket failed")
        await websocket.close()
