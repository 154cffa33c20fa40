"""
rack_tracking.py

Purpose:
  Per-rack diagnostics state machine. Records overheat transitions, fan boosts
  and the recovery that follows them, and derives maintenance and cooling
  efficiency figures from that history.

State Machines (one pair per rack):
  - **Overheat edge detector**: `normal -> overheating` when T rises above
    28 °C (one OverheatEvent per crossing), `overheating -> normal` when T is
    back at or below 28 °C (history kept).
  - **Recovery window**: opened by a fan boost when none is outstanding.
    Closed with a TempRecoveryRecord once T < 28 °C and at least 60 s have
    passed since the boost; abandoned without a record after 5 minutes.

Derived Metrics (recomputed on every call, never cached):
  - `maintenance_prediction`: overheat count in the trailing 72 h.
  - `cooling_efficiency`: temperature drop per unit of fan boost over the
    last 10 recoveries / boosts, clamped to [0, 100], default 85.
"""
from __future__ import annotations

import logging
import math
import random
from typing import Dict, Iterable, List, Optional

from app.errors import TrackingInvariantError
from app.models.domain import (
    EngineConfig,
    FanBoostAction,
    MaintenancePrediction,
    MaintenanceStatus,
    OverheatEvent,
    OverheatState,
    PendingRecovery,
    RackStats,
    RackTrackingRecord,
    TempRecoveryRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_COOLING_EFFICIENCY = 85
EFFICIENCY_SAMPLE_SIZE = 10
MS_PER_HOUR = 60 * 60 * 1000
MAINTENANCE_SPREAD_MS = 30 * 24 * MS_PER_HOUR


def _js_round(value: float) -> int:
    # Half-up rounding (not banker's rounding).
    return int(math.floor(value + 0.5))


class RackTracker:
    """
    Owns exactly one RackTrackingRecord per rack id. Records are created in
    the constructor and never removed, so a lookup miss is an invariant fault.
    """

    def __init__(
        self,
        rack_ids: Iterable[str],
        now: int,
        rng: Optional[random.Random] = None,
        cfg: Optional[EngineConfig] = None,
    ):
        self.cfg = cfg or EngineConfig()
        rng = rng or random.Random()
        self._records: Dict[str, RackTrackingRecord] = {}
        for rack_id in rack_ids:
            if rack_id in self._records:
                continue
            self._records[rack_id] = RackTrackingRecord(
                last_maintenance_date=int(now - rng.random() * MAINTENANCE_SPREAD_MS),
            )

    # -----------------------------
    # Lookup
    # -----------------------------
    @property
    def rack_ids(self) -> List[str]:
        return list(self._records.keys())

    def __contains__(self, rack_id: object) -> bool:
        return rack_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def record(self, rack_id: str) -> RackTrackingRecord:
        try:
            return self._records[rack_id]
        except KeyError:
            raise TrackingInvariantError(rack_id) from None

    def snapshot(self, rack_id: str) -> RackTrackingRecord:
        return self.record(rack_id).model_copy(deep=True)

    # -----------------------------
    # Overheat edge detector
    # -----------------------------
    def observe_temperature(self, rack_id: str, temperature: float, now: int) -> Optional[OverheatEvent]:
        """
        Feed the post-tick temperature. Returns the OverheatEvent when this
        observation is a normal -> overheating crossing, else None.
        """
        rec = self.record(rack_id)
        overheating = float(temperature) > self.cfg.hot_threshold_c

        if overheating and rec.state == OverheatState.NORMAL:
            event = OverheatEvent(timestamp=int(now), temperature=float(temperature))
            rec.overheat_events.append(event)
            rec.state = OverheatState.OVERHEATING
            logger.info("Rack %s crossed overheat threshold at %.1f°C", rack_id, temperature)
            return event

        if not overheating and rec.state == OverheatState.OVERHEATING:
            rec.state = OverheatState.NORMAL
            logger.debug("Rack %s back at or below threshold (%.1f°C)", rack_id, temperature)

        return None

    # -----------------------------
    # Fan boosts & recovery window
    # -----------------------------
    def record_fan_boost(self, rack_id: str, percent_boost: float, initial_temp: float, now: int) -> FanBoostAction:
        rec = self.record(rack_id)
        action = FanBoostAction(
            timestamp=int(now),
            percent_boost=float(percent_boost),
            initial_temp=float(initial_temp),
        )
        rec.fan_boost_actions.append(action)
        rec.last_fan_boost = action

        # One outstanding window per rack: a boost during an open window
        # leaves the original window (and its start time) in place.
        if rec.pending_recovery is None:
            rec.pending_recovery = PendingRecovery(
                start_time=int(now),
                initial_temp=float(initial_temp),
                fan_boost_time=int(now),
            )
        else:
            logger.debug("Rack %s boosted while a recovery window is open; keeping existing window", rack_id)
        return action

    def evaluate_recovery(self, rack_id: str, temperature: float, now: int) -> Optional[TempRecoveryRecord]:
        rec = self.record(rack_id)
        pending = rec.pending_recovery
        if pending is None:
            return None

        elapsed = int(now) - pending.fan_boost_time
        if float(temperature) < self.cfg.hot_threshold_c and elapsed >= self.cfg.recovery_min_ms:
            record = TempRecoveryRecord(
                start_temp=pending.initial_temp,
                end_temp=float(temperature),
                timestamp=int(now),
                recovery_time=elapsed,
            )
            rec.temp_recovery_records.append(record)
            rec.pending_recovery = None
            logger.info(
                "Rack %s recovered %.1f°C -> %.1f°C in %ds",
                rack_id, record.start_temp, record.end_temp, elapsed // 1000,
            )
            return record

        if elapsed > self.cfg.recovery_timeout_ms:
            rec.pending_recovery = None
            logger.info("Rack %s recovery window abandoned after %ds", rack_id, elapsed // 1000)

        return None

    # -----------------------------
    # Derived metrics
    # -----------------------------
    def overheat_count(self, rack_id: str, now: int, hours: Optional[float] = None) -> int:
        hours = self.cfg.maintenance_window_h if hours is None else float(hours)
        cutoff = int(now) - hours * MS_PER_HOUR
        return sum(1 for e in self.record(rack_id).overheat_events if e.timestamp > cutoff)

    def maintenance_prediction(self, rack_id: str, now: int) -> MaintenancePrediction:
        count = self.overheat_count(rack_id, now)
        if count >= 4:
            return MaintenancePrediction(
                days=1, status=MaintenanceStatus.CRITICAL, message="Immediate maintenance required"
            )
        if count >= 2:
            return MaintenancePrediction(
                days=3, status=MaintenanceStatus.WARNING, message="Schedule maintenance soon"
            )
        return MaintenancePrediction(
            days=28, status=MaintenanceStatus.GOOD, message="Normal maintenance schedule"
        )

    def cooling_efficiency(self, rack_id: str) -> int:
        rec = self.record(rack_id)
        recent = rec.temp_recovery_records[-EFFICIENCY_SAMPLE_SIZE:]
        if not recent:
            return DEFAULT_COOLING_EFFICIENCY

        total_drop = sum(r.start_temp - r.end_temp for r in recent)
        total_boost = sum(a.percent_boost for a in rec.fan_boost_actions[-EFFICIENCY_SAMPLE_SIZE:])
        if total_boost == 0:
            return DEFAULT_COOLING_EFFICIENCY

        efficiency = max(0.0, min(100.0, (total_drop / total_boost) * 100.0))
        return _js_round(efficiency)

    def rack_stats(self, rack_id: str, now: int) -> RackStats:
        rec = self.record(rack_id)
        return RackStats(
            rack_id=rack_id,
            overheat_events=len(rec.overheat_events),
            recent_overheats=self.overheat_count(rack_id, now),
            fan_boosts=len(rec.fan_boost_actions),
            temp_recoveries=len(rec.temp_recovery_records),
            last_maintenance=rec.last_maintenance_date,
            maintenance_prediction=self.maintenance_prediction(rack_id, now),
            cooling_efficiency=self.cooling_efficiency(rack_id),
            pending_recovery=rec.pending_recovery is not None,
        )
