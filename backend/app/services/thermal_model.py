"""
thermal_model.py

Purpose:
  Per-rack state transition for one simulation tick. Given the rack's current
  state and a stochastic intensity, returns the next temperature, humidity,
  airflow, status classification and fan power draw.

Governing Equations:
  - **Temperature**: `T' = clamp(T + U(-1,1) * 2 * intensity, 15, 40)`
  - **Humidity**: `H' = clamp(H + U(-1,1) * 4 * intensity, 30, 80)`
  - **Airflow**: `A' = A + U(-0.25, 0.25)` (unclamped drift)
  - **Fan Power**: `P = 500 * (fan_speed / 100) * (1 + (T' - 20) / 100)`

Status (no hysteresis):
  - `hot`  if T > 28
  - `warm` if T > 24
  - `cool` otherwise

Units & Conventions:
  - **Temperature**: °C
  - **Power**: Watts
  - **Intensity**: [0, 1] (slider percent / 100)
"""
from __future__ import annotations

import random
from typing import List, Optional

from app.models.domain import EngineConfig, Rack, RackStatus

_DEFAULT_CFG = EngineConfig()

FAN_SPEED_PCT = {
    RackStatus.HOT: 100,
    RackStatus.WARM: 75,
    RackStatus.COOL: 50,
}


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# ============================================================
# 0) DERIVED QUANTITIES
# ============================================================

def classify_status(temperature: float, cfg: EngineConfig = _DEFAULT_CFG) -> RackStatus:
    if temperature > cfg.hot_threshold_c:
        return RackStatus.HOT
    if temperature > cfg.warm_threshold_c:
        return RackStatus.WARM
    return RackStatus.COOL


def fan_speed_for(status: RackStatus) -> int:
    return FAN_SPEED_PCT[status]


def rack_power_watts(status: RackStatus, temperature: float, cfg: EngineConfig = _DEFAULT_CFG) -> float:
    temp_multiplier = 1.0 + (float(temperature) - cfg.ambient_ref_c) / 100.0
    return float(cfg.base_fan_power_w * (fan_speed_for(status) / 100.0) * temp_multiplier)


def with_temperature(rack: Rack, temperature: float, cfg: EngineConfig = _DEFAULT_CFG) -> Rack:
    """
    Returns a copy of `rack` at the given temperature with status, fan speed
    and power re-derived, so status never drifts from temperature.
    """
    status = classify_status(temperature, cfg)
    return rack.model_copy(
        update={
            "temperature": float(temperature),
            "status": status,
            "fan_speed": fan_speed_for(status),
            "power_watts": rack_power_watts(status, temperature, cfg),
        }
    )


def apply_cooling(rack: Rack, delta_c: float, cfg: EngineConfig = _DEFAULT_CFG) -> Rack:
    # Unclamped: a remediation lowers the reading by exactly delta_c.
    return with_temperature(rack, rack.temperature - float(delta_c), cfg)


# ============================================================
# 1) TICK STEP
# ============================================================

def step_rack(
    rack: Rack,
    intensity: float,
    rng: random.Random,
    cfg: EngineConfig = _DEFAULT_CFG,
) -> Rack:
    """
    Advance one rack by one tick. Pure apart from the draws taken from `rng`;
    the caller stores the returned rack.
    """
    intensity = clamp(float(intensity), 0.0, 1.0)

    temp_change = rng.uniform(-1.0, 1.0) * cfg.temp_step_c * intensity
    humidity_change = rng.uniform(-1.0, 1.0) * cfg.humidity_step_pct * intensity

    next_temp = clamp(rack.temperature + temp_change, cfg.temp_min_c, cfg.temp_max_c)
    next_humidity = clamp(rack.humidity + humidity_change, cfg.humidity_min_pct, cfg.humidity_max_pct)
    next_uptime = max(cfg.uptime_floor_pct, rack.uptime + rng.uniform(-cfg.uptime_drift_pct, cfg.uptime_drift_pct))
    next_airflow = rack.airflow_delta + rng.uniform(-cfg.airflow_drift_cfm, cfg.airflow_drift_cfm)

    stepped = with_temperature(rack, next_temp, cfg)
    return stepped.model_copy(
        update={
            "humidity": float(next_humidity),
            "uptime": float(next_uptime),
            "airflow_delta": float(next_airflow),
        }
    )


# ============================================================
# 2) INITIALIZATION
# ============================================================

def rack_name(index: int, grid_size: int) -> str:
    row = chr(ord("A") + index // grid_size)
    return f"Rack {row}{index % grid_size + 1}"


def initial_racks(
    grid_size: int,
    rng: random.Random,
    cfg: EngineConfig = _DEFAULT_CFG,
) -> List[Rack]:
    """
    Randomized baselines: 18-26 °C, 45-65 % humidity, 99.2-99.9 % uptime,
    airflow within ±2 CFM of nominal.
    """
    racks: List[Rack] = []
    for i in range(grid_size * grid_size):
        temperature = 18.0 + rng.random() * 8.0
        status = classify_status(temperature, cfg)
        racks.append(
            Rack(
                id=f"rack-{i}",
                name=rack_name(i, grid_size),
                temperature=temperature,
                humidity=45.0 + rng.random() * 20.0,
                airflow_delta=-2.0 + rng.random() * 4.0,
                uptime=99.2 + rng.random() * 0.7,
                status=status,
                fan_speed=fan_speed_for(status),
                power_watts=rack_power_watts(status, temperature, cfg),
            )
        )
    return racks


def make_rack(
    rack_id: str,
    temperature: float,
    name: Optional[str] = None,
    humidity: float = 50.0,
    airflow_delta: float = 0.0,
    uptime: float = 99.5,
    cfg: EngineConfig = _DEFAULT_CFG,
) -> Rack:
    status = classify_status(temperature, cfg)
    return Rack(
        id=rack_id,
        name=name or rack_id,
        temperature=float(temperature),
        humidity=float(humidity),
        airflow_delta=float(airflow_delta),
        uptime=float(uptime),
        status=status,
        fan_speed=fan_speed_for(status),
        power_watts=rack_power_watts(status, temperature, cfg),
    )
