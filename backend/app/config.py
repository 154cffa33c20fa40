from __future__ import annotations

import math
import os
from typing import Optional

from app.models.domain import EngineConfig, SimulationControls

_TRUE = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in _TRUE


def env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val.strip())
    except Exception:
        return default


def env_float(name: str, default: Optional[float]) -> Optional[float]:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        out = float(val.strip())
    except Exception:
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return out


def env_str(name: str, default: str) -> str:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


def load_engine_config() -> EngineConfig:
    """
    Engine constants that may be tuned per deployment.
    Everything else in EngineConfig keeps its model default.
    """
    grid_size = max(1, min(26, env_int("RACK_GRID_SIZE", 4)))
    return EngineConfig(
        grid_size=grid_size,
        tick_period_s=max(0.05, float(env_float("TICK_PERIOD_S", 2.0) or 2.0)),
        journal_max_entries=max(1, env_int("JOURNAL_MAX_ENTRIES", 200)),
    )


def load_controls() -> SimulationControls:
    intensity = env_float("SIM_INTENSITY", 50.0)
    return SimulationControls(
        intensity_pct=max(0.0, min(100.0, float(intensity if intensity is not None else 50.0))),
        auto_mode_enabled=env_flag("AUTO_MODE", False),
        electricity_rate=env_float("ELECTRICITY_RATE", None),
        is_celsius=not env_flag("DISPLAY_FAHRENHEIT", False),
    )
