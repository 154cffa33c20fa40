"""
simulation.py

Purpose:
  Orchestrates the rack simulation. Owns the single SimulationState and
  advances it one atomic tick at a time, wiring the thermal model, tracker,
  alert generator, remediation controller, energy accumulator and journal
  together.

Key Responsibilities:
  - **State Ownership**: one SimulationState per service; readers get copies.
  - **Tick Pipeline** (`advance_tick`): thermal step -> overheat/recovery
    tracking -> alerts -> auto-remediation -> energy -> telemetry.
  - **Scheduling**: a single asyncio task calls the synchronous `tick()` every
    `tick_period_s`. A tick has no await points, so it never interleaves with
    request handlers. Late wake-ups skip missed periods instead of bursting.
  - **Operator Actions**: dismiss / increase-fan on alerts, control updates.

Flow:
  1. `start()`: schedules the background loop.
  2. `tick()`: runs `advance_tick` and caches the latest telemetry point.
  3. `stop()`: cancels the loop; state stays as of the last completed tick.
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from app.config import env_flag, env_int
from app.errors import RackNotFoundError, TrackingInvariantError
from app.models.domain import (
    Alert,
    AlertAction,
    AutomatedAction,
    ControlsUpdate,
    EfficiencyMetrics,
    EnergySummary,
    EngineConfig,
    EventLogEntry,
    EventStats,
    MaintenanceStatus,
    Rack,
    RackHistoryPoint,
    RackStats,
    RackStatus,
    RoomStatus,
    RoomSummary,
    SimulationControls,
    TelemetryPoint,
)
from app.services.alert_engine import AlertBook, generate_alerts
from app.services.csv_export import event_log_to_csv, racks_to_csv
from app.services.energy_accounting import (
    EnergyAccumulator,
    efficiency_metrics,
    total_power_kw,
)
from app.services.event_journal import EventJournal
from app.services.rack_tracking import RackTracker
from app.services.remediation import RemediationOutcome, auto_remediate, manual_fan_boost
from app.services.thermal_model import initial_racks, step_rack

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_ts(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).isoformat()


def to_display_temp(temp_c: float, is_celsius: bool) -> float:
    return temp_c if is_celsius else (temp_c * 9.0 / 5.0) + 32.0


# ============================================================
# STATE
# ============================================================

@dataclass
class SimulationState:
    cfg: EngineConfig
    racks: Dict[str, Rack]
    tracker: RackTracker
    alerts: AlertBook
    journal: EventJournal
    energy: EnergyAccumulator
    started_at: int
    tick: int = 0
    efficiency: EfficiencyMetrics = field(default_factory=EfficiencyMetrics)
    telemetry: Deque[TelemetryPoint] = field(default_factory=deque)
    rack_history: Dict[str, Deque[RackHistoryPoint]] = field(default_factory=dict)
    automated_actions: Deque[AutomatedAction] = field(default_factory=deque)


@dataclass
class TickResult:
    tick: int
    now: int
    new_alerts: List[Alert]
    new_events: List[EventLogEntry]
    remediations: List[RemediationOutcome]
    telemetry: TelemetryPoint


def new_simulation_state(
    cfg: EngineConfig,
    rng: random.Random,
    now: int,
    racks: Optional[List[Rack]] = None,
) -> SimulationState:
    """
    Builds the racks (randomized unless given) and exactly one tracking record
    per rack. The rack set is fixed for the life of the state.
    """
    rack_list = racks if racks is not None else initial_racks(cfg.grid_size, rng, cfg)
    by_id = {r.id: r for r in rack_list}
    return SimulationState(
        cfg=cfg,
        racks=by_id,
        tracker=RackTracker(by_id.keys(), now=now, rng=rng, cfg=cfg),
        alerts=AlertBook(),
        journal=EventJournal(max_entries=cfg.journal_max_entries, cfg=cfg),
        energy=EnergyAccumulator(cfg),
        started_at=int(now),
        telemetry=deque(maxlen=cfg.history_max_points),
        rack_history={rid: deque(maxlen=cfg.history_max_points) for rid in by_id},
        automated_actions=deque(maxlen=cfg.automated_actions_max),
    )


# ============================================================
# TICK PIPELINE
# ============================================================

def _track_rack(
    state: SimulationState,
    rack: Rack,
    temp_before: float,
    rate: float,
    now: int,
) -> List[EventLogEntry]:
    tracker = state.tracker
    journal = state.journal
    out: List[EventLogEntry] = []

    prediction_before = tracker.maintenance_prediction(rack.id, now)
    overheat = tracker.observe_temperature(rack.id, rack.temperature, now)
    if overheat is not None:
        out.append(journal.log_overheat(rack.id, rack.name, temp_before, rack.temperature, rate, now))

        prediction = tracker.maintenance_prediction(rack.id, now)
        if prediction.status != prediction_before.status and prediction.status != MaintenanceStatus.GOOD:
            recent = tracker.overheat_count(rack.id, now)
            out.append(
                journal.log_maintenance_forecast(
                    rack.id,
                    rack.name,
                    prediction.days,
                    f"{recent} overheat events in the last {state.cfg.maintenance_window_h:g} hours",
                    now,
                )
            )

    recovery = tracker.evaluate_recovery(rack.id, rack.temperature, now)
    if recovery is not None:
        out.append(
            journal.log_temp_recovery(
                rack.id, rack.name, recovery.start_temp, recovery.end_temp, recovery.recovery_time, now
            )
        )
    return out


def _telemetry_point(state: SimulationState, now: int) -> TelemetryPoint:
    racks = list(state.racks.values())
    temps = [r.temperature for r in racks] or [0.0]
    n = max(1, len(racks))
    return TelemetryPoint(
        ts=iso_ts(now),
        tick=state.tick,
        avg_temp_c=sum(temps) / len(temps),
        max_temp_c=max(temps),
        min_temp_c=min(temps),
        avg_humidity_pct=sum(r.humidity for r in racks) / n,
        avg_airflow_cfm=sum(r.airflow_delta for r in racks) / n,
        total_power_kw=total_power_kw(racks),
        session_kwh=state.energy.session_kwh,
        baseline_kwh=state.energy.baseline_kwh,
        savings_kwh=state.energy.savings_kwh,
        hot_racks=sum(1 for r in racks if r.status == RackStatus.HOT),
        active_alerts=len(state.alerts.active()),
    )


def advance_tick(
    state: SimulationState,
    controls: SimulationControls,
    rng: random.Random,
    now: int,
) -> TickResult:
    """
    One atomic step. Mutates `state` in place (the caller holds the only
    reference) and reports what this tick produced.
    """
    cfg = state.cfg
    rate = state.energy.effective_rate(controls.electricity_rate)
    intensity = float(controls.intensity_pct) / 100.0
    new_events: List[EventLogEntry] = []

    # 1) Thermal model
    temps_before: Dict[str, float] = {}
    for rack_id, rack in list(state.racks.items()):
        temps_before[rack_id] = rack.temperature
        state.racks[rack_id] = step_rack(rack, intensity, rng, cfg)

    # 2) Overheat / recovery tracking
    for rack_id, rack in state.racks.items():
        try:
            new_events.extend(_track_rack(state, rack, temps_before[rack_id], rate, now))
        except TrackingInvariantError as e:
            logger.error("Tracking invariant broken, skipping rack this tick: %s", e)

    # 3) Alerts
    new_alerts = generate_alerts(state.racks.values(), now, cfg)
    state.alerts.add(new_alerts)

    # 4) Auto-remediation
    outcomes = auto_remediate(
        new_alerts,
        state.racks,
        state.tracker,
        state.journal,
        rate,
        now,
        enabled=controls.auto_mode_enabled,
        cfg=cfg,
    )
    for o in outcomes:
        new_events.append(o.entry)
        if o.automated_action is not None:
            state.automated_actions.append(o.automated_action)

    # 5) Energy
    racks = list(state.racks.values())
    state.energy.integrate(racks, cfg.interval_hours)
    state.efficiency = efficiency_metrics(racks, state.energy, state.efficiency)

    # 6) Telemetry & per-rack history
    state.tick += 1
    point = _telemetry_point(state, now)
    state.telemetry.append(point)
    for r in racks:
        state.rack_history.setdefault(r.id, deque(maxlen=cfg.history_max_points)).append(
            RackHistoryPoint(timestamp=int(now), temperature=r.temperature, humidity=r.humidity)
        )

    logger.debug(
        "Tick %d: avg %.2f°C, %d hot, %d alert(s), %d event(s)",
        state.tick, point.avg_temp_c, point.hot_racks, len(new_alerts), len(new_events),
    )
    return TickResult(
        tick=state.tick,
        now=int(now),
        new_alerts=new_alerts,
        new_events=new_events,
        remediations=outcomes,
        telemetry=point,
    )


def room_summary(racks: List[Rack], is_celsius: bool = True) -> RoomSummary:
    n = max(1, len(racks))
    hot = sum(1 for r in racks if r.status == RackStatus.HOT)
    hot_pct = (hot / n) * 100.0 if racks else 0.0
    if hot_pct > 50:
        status = RoomStatus.CRITICAL
    elif hot_pct > 30:
        status = RoomStatus.ATTENTION
    else:
        status = RoomStatus.OPTIMAL
    return RoomSummary(
        avg_temp=to_display_temp(sum(r.temperature for r in racks) / n, is_celsius),
        avg_humidity=sum(r.humidity for r in racks) / n,
        avg_airflow=sum(r.airflow_delta for r in racks) / n,
        hot_racks=hot,
        hot_percentage=hot_pct,
        status=status,
        temp_unit="C" if is_celsius else "F",
    )


# ============================================================
# SIMULATION SERVICE
# ============================================================

class SimulationService:
    """
    Host for the single SimulationState:
      - Scheduler (asyncio background task)
      - Controls (intensity, auto mode, rate, display unit)
      - Operator actions on alerts
      - Read-only snapshots for the API
    """

    def __init__(
        self,
        cfg: Optional[EngineConfig] = None,
        controls: Optional[SimulationControls] = None,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.cfg = cfg or EngineConfig()
        self.controls = controls or SimulationControls()
        self._clock = clock or now_ms

        # Deterministic demo runs (same flags as the rest of the backend)
        self.deterministic = env_flag("DEMO_DETERMINISTIC", False)
        self._seed = env_int("DEMO_SEED", 7)
        if rng is not None:
            self._rng = rng
        else:
            self._rng = random.Random(self._seed) if self.deterministic else random.Random()

        self.state = new_simulation_state(self.cfg, self._rng, self._clock())
        self._task: Optional[asyncio.Task] = None
        self._latest: Optional[Dict[str, Any]] = None

    # -----------------------------
    # Scheduler
    # -----------------------------
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Schedule the tick loop on the running event loop. Returns False if it
        was already running.
        """
        if self.running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run(), name="rack-simulation")
        logger.info("Simulation started (period %.2fs, %d racks)", self.cfg.tick_period_s, len(self.state.racks))
        return True

    async def stop(self) -> bool:
        task = self._task
        self._task = None
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Simulation stopped at tick %d", self.state.tick)
        return True

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        period = float(self.cfg.tick_period_s)
        next_at = loop.time() + period
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            try:
                self.tick()
            except Exception:
                logger.exception("Tick %d failed", self.state.tick + 1)
            next_at += period
            behind = loop.time() - next_at
            if behind > 0:
                skipped = int(behind // period) + 1
                logger.warning("Simulation behind schedule; skipping %d tick(s)", skipped)
                next_at += skipped * period

    def tick(self) -> TickResult:
        result = advance_tick(self.state, self.controls, self._rng, self._clock())
        self._latest = result.telemetry.model_dump(mode="json")
        return result

    def reset(self) -> None:
        self.state = new_simulation_state(self.cfg, self._rng, self._clock())
        self._latest = None
        logger.info("Simulation state reset")

    # -----------------------------
    # Controls
    # -----------------------------
    def update_controls(self, update: ControlsUpdate) -> SimulationControls:
        changes = {k: getattr(update, k) for k in update.model_fields_set}
        if changes:
            self.controls = self.controls.model_copy(update=changes)
            logger.info("Controls updated: %s", changes)
        return self.controls

    @property
    def electricity_rate(self) -> float:
        return self.state.energy.effective_rate(self.controls.electricity_rate)

    # -----------------------------
    # Operator actions
    # -----------------------------
    def dismiss_alert(self, alert_id: str) -> Alert:
        return self.state.alerts.dismiss(alert_id).model_copy()

    def handle_alert_action(self, alert_id: str, action: AlertAction) -> Tuple[Alert, Optional[EventLogEntry]]:
        alert = self.state.alerts.get(alert_id)
        if action == AlertAction.MONITOR:
            return self.dismiss_alert(alert_id), None

        outcome = manual_fan_boost(
            alert,
            self.state.racks,
            self.state.tracker,
            self.state.journal,
            self.state.alerts,
            self.electricity_rate,
            self._clock(),
            cfg=self.cfg,
        )
        return alert.model_copy(), outcome.entry if outcome else None

    # -----------------------------
    # Snapshots
    # -----------------------------
    def get_latest_telemetry(self) -> Optional[Dict[str, Any]]:
        return self._latest

    def get_racks(self) -> List[Rack]:
        return [r.model_copy() for r in self.state.racks.values()]

    def get_rack(self, rack_id: str) -> Rack:
        rack = self.state.racks.get(rack_id)
        if rack is None:
            raise RackNotFoundError(rack_id)
        return rack.model_copy()

    def get_rack_stats(self, rack_id: str) -> RackStats:
        self.get_rack(rack_id)
        return self.state.tracker.rack_stats(rack_id, self._clock())

    def get_rack_history(self, rack_id: str, limit: Optional[int] = None) -> List[RackHistoryPoint]:
        self.get_rack(rack_id)
        points = list(self.state.rack_history.get(rack_id, ()))
        return points[-limit:] if limit else points

    def get_room_summary(self) -> RoomSummary:
        return room_summary(list(self.state.racks.values()), self.controls.is_celsius)

    def get_alerts(self, include_dismissed: bool = False) -> List[Alert]:
        alerts = self.state.alerts.all() if include_dismissed else self.state.alerts.active()
        return [a.model_copy() for a in alerts]

    def get_events(self, limit: Optional[int] = None) -> List[EventLogEntry]:
        return self.state.journal.entries(limit)

    def get_event_stats(self) -> EventStats:
        return self.state.journal.stats()

    def get_automated_actions(self, limit: int = 50) -> List[AutomatedAction]:
        return list(self.state.automated_actions)[-max(1, int(limit)):]

    def get_energy_summary(self) -> EnergySummary:
        return self.state.energy.summary(self.controls.electricity_rate, self.state.efficiency)

    def get_timeseries(self, limit: Optional[int] = None) -> List[TelemetryPoint]:
        points = list(self.state.telemetry)
        return points[-limit:] if limit else points

    def racks_csv(self) -> str:
        return racks_to_csv(self.state.racks.values(), self._clock())

    def events_csv(self) -> str:
        return event_log_to_csv(self.state.journal.entries())
