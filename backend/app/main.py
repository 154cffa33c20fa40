# app/main.py
"""
main.py

Purpose:
  FastAPI entrypoint for the rack cooling monitor. Wires routers, CORS,
  request-id tracing and logging, and owns the simulation scheduler lifecycle.

Run:
  uvicorn app.main:app --reload --port 8000   (from backend/)

Environment:
  - `LOG_LEVEL` (INFO), `LOG_DIR` (enables backend.jsonl file logs)
  - `ALLOWED_ORIGINS` (comma separated, default "*")
  - `SIM_AUTOSTART` (start ticking on boot)
"""
from __future__ import annotations

import json
import logging
import math
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import (
    routes_alerts,
    routes_energy,
    routes_events,
    routes_health,
    routes_racks,
    routes_simulation,
    routes_telemetry,
    routes_ws,
)
from app.config import env_flag, env_str
from app.deps import get_simulation_service

logger = logging.getLogger(__name__)


# ============================================================
# 1) LOGGING
# ============================================================

class JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging() -> None:
    root = logging.getLogger()
    if getattr(root, "_rack_monitor_configured", False):
        return

    root.setLevel(env_str("LOG_LEVEL", "INFO").upper())

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.addHandler(console)

    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.FileHandler(os.path.join(log_dir, "backend.jsonl"), encoding="utf-8")
        fh.setFormatter(JsonLinesFormatter())
        root.addHandler(fh)

    root._rack_monitor_configured = True  # type: ignore[attr-defined]


configure_logging()


# ============================================================
# 2) APP SETUP
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    svc = get_simulation_service()
    if env_flag("SIM_AUTOSTART", False):
        svc.start()
    try:
        yield
    finally:
        await svc.stop()


app = FastAPI(
    title="Rack Cooling Monitor",
    version="0.1.0",
    description="Simulated rack thermal engine with alerts, auto-remediation, event journal and energy accounting.",
    lifespan=lifespan,
)

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
allow_origins = ["*"] if ALLOWED_ORIGINS == "*" else [o.strip() for o in ALLOWED_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    logger.debug(
        "%s %s -> %d", request.method, request.url.path, response.status_code,
        extra={"request_id": request_id},
    )
    return response


app.include_router(routes_health.router, tags=["health"])
app.include_router(routes_simulation.router, prefix="/simulation", tags=["simulation"])
app.include_router(routes_racks.router, prefix="/racks", tags=["racks"])
app.include_router(routes_alerts.router, prefix="/alerts", tags=["alerts"])
app.include_router(routes_events.router, prefix="/events", tags=["events"])
app.include_router(routes_energy.router, prefix="/energy", tags=["energy"])
app.include_router(routes_telemetry.router, prefix="/telemetry", tags=["telemetry"])
app.include_router(routes_ws.router, tags=["ws"])


def _json_safe(value):
    # Rejected NaN/inf inputs are echoed back as strings; JSON has no literal for them.
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected %s %s: %d validation error(s)", request.method, request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=422,
        content={"detail": _json_safe(jsonable_encoder(exc.errors()))},
    )
