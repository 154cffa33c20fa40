from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============================================================
# 0) ENUMS (Type Safety)
# ============================================================

class RackStatus(str, Enum):
    COOL = "cool"
    WARM = "warm"
    HOT = "hot"

class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"

class EventSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

class EventType(str, Enum):
    OVERHEAT = "Overheat"
    FAN_BOOST = "FanBoost"
    AUTO_ACTION = "AutoAction"
    MAINTENANCE_FORECAST = "MaintenanceForecast"
    TEMP_RECOVERY = "TempRecovery"

class OverheatState(str, Enum):
    NORMAL = "normal"
    OVERHEATING = "overheating"

class MaintenanceStatus(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"

class EfficiencyTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"

class RoomStatus(str, Enum):
    OPTIMAL = "Optimal"
    ATTENTION = "Attention"
    CRITICAL = "Critical"

class AlertAction(str, Enum):
    INCREASE_FAN = "increase_fan"
    MONITOR = "monitor"


# ============================================================
# 1) CONFIG & CONTROLS
# ============================================================

class EngineConfig(BaseModel):
    """
    Constants for the rack simulation.
    Units:
      - temperatures in °C, humidity in %, airflow in CFM offset
      - power in W, energy in kWh
      - time in ms unless the field name says otherwise
    """
    # Room layout (grid_size x grid_size racks)
    grid_size: int = 4

    # Scheduler period and the simulated duration one tick represents
    tick_period_s: float = 2.0
    interval_hours: float = 2.0 / 3600.0

    # Random-walk bounds
    temp_min_c: float = 15.0
    temp_max_c: float = 40.0
    humidity_min_pct: float = 30.0
    humidity_max_pct: float = 80.0
    temp_step_c: float = 2.0
    humidity_step_pct: float = 4.0
    airflow_drift_cfm: float = 0.25
    uptime_drift_pct: float = 0.05
    uptime_floor_pct: float = 95.0

    # Status thresholds (strict greater-than)
    warm_threshold_c: float = 24.0
    hot_threshold_c: float = 28.0
    critical_threshold_c: float = 32.0

    # Fan power model: 500 W at 100% fan, +1% per °C above 20 °C
    base_fan_power_w: float = 500.0
    ambient_ref_c: float = 20.0

    # Alerting
    alert_cooldown_ms: int = 30_000

    # Recovery window after a fan boost
    recovery_min_ms: int = 60_000
    recovery_timeout_ms: int = 300_000

    # Maintenance forecast window
    maintenance_window_h: float = 72.0

    # Remediation
    remediation_delta_c: float = 2.0
    auto_boost_pct: float = 15.0
    auto_boost_duration_s: float = 120.0
    manual_boost_pct: float = 35.0
    manual_boost_duration_s: float = 90.0

    # Energy attributed to overheat detection (kWh)
    overheat_detection_kwh: float = 0.008

    # Bounded buffers
    journal_max_entries: int = 200
    history_max_points: int = 300
    automated_actions_max: int = 200


class SimulationControls(BaseModel):
    intensity_pct: float = Field(50.0, ge=0.0, le=100.0)
    auto_mode_enabled: bool = False
    # Currency per kWh from the external rate source; None means unknown (treated as 0)
    electricity_rate: Optional[float] = None
    # Display only
    is_celsius: bool = True


class ControlsUpdate(BaseModel):
    intensity_pct: Optional[float] = Field(None, ge=0.0, le=100.0, allow_inf_nan=False)
    auto_mode_enabled: Optional[bool] = None
    electricity_rate: Optional[float] = Field(None, ge=0.0, allow_inf_nan=False)
    is_celsius: Optional[bool] = None


# ============================================================
# 2) RACK STATE
# ============================================================

class Rack(BaseModel):
    id: str
    name: str

    temperature: float     # °C
    humidity: float        # %
    airflow_delta: float   # CFM offset from nominal
    uptime: float          # %

    status: RackStatus
    power_watts: float
    fan_speed: int

    last_alert_at: Optional[int] = None


class RackHistoryPoint(BaseModel):
    timestamp: int
    temperature: float
    humidity: float


# ============================================================
# 3) TRACKING (Overheat / Recovery)
# ============================================================

class OverheatEvent(BaseModel):
    timestamp: int
    temperature: float


class FanBoostAction(BaseModel):
    timestamp: int
    percent_boost: float
    initial_temp: float


class PendingRecovery(BaseModel):
    start_time: int
    initial_temp: float
    fan_boost_time: int


class TempRecoveryRecord(BaseModel):
    start_temp: float
    end_temp: float
    timestamp: int
    recovery_time: int   # ms


class RackTrackingRecord(BaseModel):
    overheat_events: List[OverheatEvent] = Field(default_factory=list)
    state: OverheatState = OverheatState.NORMAL
    fan_boost_actions: List[FanBoostAction] = Field(default_factory=list)
    last_fan_boost: Optional[FanBoostAction] = None
    pending_recovery: Optional[PendingRecovery] = None
    temp_recovery_records: List[TempRecoveryRecord] = Field(default_factory=list)
    last_maintenance_date: int


class MaintenancePrediction(BaseModel):
    days: int
    status: MaintenanceStatus
    message: str


class RackStats(BaseModel):
    rack_id: str
    overheat_events: int
    recent_overheats: int
    fan_boosts: int
    temp_recoveries: int
    last_maintenance: int
    maintenance_prediction: MaintenancePrediction
    cooling_efficiency: int
    pending_recovery: bool


# ============================================================
# 4) ALERTS & EVENT JOURNAL
# ============================================================

class Alert(BaseModel):
    id: str
    rack_id: str
    rack_name: str
    severity: AlertSeverity
    message: str
    timestamp: int
    dismissed: bool = False


class EventLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int
    rack_id: str
    rack_name: str
    event_type: EventType
    cause: str
    action_taken: str
    outcome: str
    energy_delta: float   # kWh
    cost_delta: float     # currency
    severity: EventSeverity

    duration: Optional[float] = None   # seconds
    temp_before: Optional[float] = None
    temp_after: Optional[float] = None


class EventStats(BaseModel):
    total_events: int
    total_energy_kwh: float
    total_cost: float
    critical_events: int
    warning_events: int


class AutomatedAction(BaseModel):
    id: str
    timestamp: int
    rack_id: str
    rack_name: str
    action: str
    result: str
    temp: float


# ============================================================
# 5) ENERGY & TELEMETRY
# ============================================================

class EfficiencyMetrics(BaseModel):
    current: float = 0.0
    potential: float = 0.0
    savings: float = 0.0
    trend: EfficiencyTrend = EfficiencyTrend.STABLE


class EnergySummary(BaseModel):
    session_kwh: float
    baseline_kwh: float
    savings_kwh: float
    electricity_rate: float
    session_cost: float
    baseline_cost: float
    cost_saved: float
    efficiency: EfficiencyMetrics


class TelemetryPoint(BaseModel):
    ts: str
    tick: int

    avg_temp_c: float
    max_temp_c: float
    min_temp_c: float
    avg_humidity_pct: float
    avg_airflow_cfm: float

    total_power_kw: float
    session_kwh: float
    baseline_kwh: float
    savings_kwh: float

    hot_racks: int
    active_alerts: int


class RoomSummary(BaseModel):
    avg_temp: float
    avg_humidity: float
    avg_airflow: float
    hot_racks: int
    hot_percentage: float
    status: RoomStatus
    temp_unit: str


# ============================================================
# 6) API RESPONSE SCHEMAS
# ============================================================

class SimulationStatusResponse(BaseModel):
    ts: str
    running: bool
    tick: int
    rack_count: int
    active_alerts: int
    journal_entries: int
    controls: SimulationControls


class TickResponse(BaseModel):
    ts: str
    tick: int
    new_alerts: List[Alert]
    new_events: List[EventLogEntry]


class EventsLatestResponse(BaseModel):
    ts: str
    events: List[EventLogEntry]


class AlertActionResponse(BaseModel):
    ts: str
    alert: Alert
    event: Optional[EventLogEntry] = None


class HealthResponse(BaseModel):
    status: str
    ts: str
    details: Dict[str, str] = Field(default_factory=dict)
