"""
remediation.py

Purpose:
  Corrective actions for hot racks, automated (auto mode) and manual
  (operator "increase fan" on an alert). Both lower the rack reading by a
  fixed 2.0 °C, record a fan boost with the tracker, and journal the action
  with its energy and cost.

Energy Attribution:
  - **Auto**:   `(boost% / 100) * 0.5 kW * (120 s / 3600)` with boost = 15 %
  - **Manual**: `0.01 kW * (90 s / 3600)`

Known Inconsistency:
  The automated path records a 15 % boost with the tracker while its journal
  text reports "90% for 2 minutes"; the manual path records 35 % and reports
  "85%". Both are kept as-is pending product input.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from app.errors import TrackingInvariantError
from app.models.domain import (
    Alert,
    AutomatedAction,
    EngineConfig,
    EventLogEntry,
    FanBoostAction,
    Rack,
)
from app.services.alert_engine import AlertBook
from app.services.event_journal import EventJournal
from app.services.rack_tracking import RackTracker
from app.services.thermal_model import apply_cooling

logger = logging.getLogger(__name__)

_DEFAULT_CFG = EngineConfig()

AUTO_ACTION_TEXT = "Auto increased fan to 90% for 2 minutes"
MANUAL_ACTION_TEXT = "Manual fan boost to 85% for 90 seconds"
AUTO_FAN_POWER_KW = 0.5
MANUAL_FAN_POWER_KW = 0.01


@dataclass
class RemediationOutcome:
    alert_id: str
    rack_id: str
    temp_before: float
    temp_after: float
    fan_boost: FanBoostAction
    entry: EventLogEntry
    automated_action: Optional[AutomatedAction] = None


def auto_boost_energy_kwh(boost_pct: float, duration_s: float) -> float:
    return (float(boost_pct) / 100.0) * AUTO_FAN_POWER_KW * (float(duration_s) / 3600.0)


def manual_boost_energy_kwh(duration_s: float) -> float:
    return MANUAL_FAN_POWER_KW * (float(duration_s) / 3600.0)


def auto_remediate(
    alerts: Iterable[Alert],
    racks: Dict[str, Rack],
    tracker: RackTracker,
    journal: EventJournal,
    electricity_rate: float,
    now: int,
    enabled: bool = True,
    cfg: EngineConfig = _DEFAULT_CFG,
) -> List[RemediationOutcome]:
    """
    React to this tick's alerts. Each alert is handled on its own, so two
    alerts for one rack cool it twice.
    """
    if not enabled:
        return []

    outcomes: List[RemediationOutcome] = []
    for alert in alerts:
        rack = racks.get(alert.rack_id)
        if rack is None:
            logger.error("Auto-remediation: alert %s references unknown rack %s", alert.id, alert.rack_id)
            continue

        temp_before = rack.temperature
        try:
            boost = tracker.record_fan_boost(rack.id, cfg.auto_boost_pct, temp_before, now)
        except TrackingInvariantError as e:
            logger.error("Auto-remediation skipped for %s: %s", rack.id, e)
            continue

        cooled = apply_cooling(rack, cfg.remediation_delta_c, cfg)
        racks[rack.id] = cooled

        energy_delta = auto_boost_energy_kwh(cfg.auto_boost_pct, cfg.auto_boost_duration_s)
        entry = journal.log_fan_boost(
            rack_id=rack.id,
            rack_name=rack.name,
            cause=f"Temperature at {temp_before:.1f}°C exceeded threshold",
            action_taken=AUTO_ACTION_TEXT,
            temp_before=temp_before,
            temp_after=cooled.temperature,
            energy_delta=energy_delta,
            electricity_rate=electricity_rate,
            duration_s=cfg.auto_boost_duration_s,
            now=now,
            is_auto=True,
            entry_id=f"auto-{alert.id}-{uuid.uuid4().hex[:8]}",
        )

        action = AutomatedAction(
            id=f"auto-{alert.id}-{uuid.uuid4().hex[:6]}",
            timestamp=int(now),
            rack_id=rack.id,
            rack_name=rack.name,
            action=f"Auto-increased fan flow by {cfg.auto_boost_pct:g}%",
            result=f"Temperature reduced by {temp_before - cooled.temperature:.1f}°C",
            temp=cooled.temperature,
        )
        logger.info("Auto action on %s: %.1f°C -> %.1f°C", rack.name, temp_before, cooled.temperature)

        outcomes.append(
            RemediationOutcome(
                alert_id=alert.id,
                rack_id=rack.id,
                temp_before=temp_before,
                temp_after=cooled.temperature,
                fan_boost=boost,
                entry=entry,
                automated_action=action,
            )
        )
    return outcomes


def manual_fan_boost(
    alert: Alert,
    racks: Dict[str, Rack],
    tracker: RackTracker,
    journal: EventJournal,
    alert_book: AlertBook,
    electricity_rate: float,
    now: int,
    cfg: EngineConfig = _DEFAULT_CFG,
) -> Optional[RemediationOutcome]:
    """
    Operator "increase fan" on an alert. Fires at most once per alert: an
    already dismissed alert is left alone. The alert is dismissed even when
    the rack cannot be remediated.
    """
    if alert_book.get(alert.id).dismissed:
        logger.info("Manual boost ignored: alert %s already dismissed", alert.id)
        return None
    alert_book.dismiss(alert.id)

    rack = racks.get(alert.rack_id)
    if rack is None:
        logger.error("Manual boost: alert %s references unknown rack %s", alert.id, alert.rack_id)
        return None

    temp_before = rack.temperature
    try:
        boost = tracker.record_fan_boost(rack.id, cfg.manual_boost_pct, temp_before, now)
    except TrackingInvariantError as e:
        logger.error("Manual boost skipped for %s: %s", rack.id, e)
        return None

    cooled = apply_cooling(rack, cfg.remediation_delta_c, cfg)
    racks[rack.id] = cooled

    entry = journal.log_fan_boost(
        rack_id=rack.id,
        rack_name=rack.name,
        cause=f"Manual intervention requested for {temp_before:.1f}°C",
        action_taken=MANUAL_ACTION_TEXT,
        temp_before=temp_before,
        temp_after=cooled.temperature,
        energy_delta=manual_boost_energy_kwh(cfg.manual_boost_duration_s),
        electricity_rate=electricity_rate,
        duration_s=cfg.manual_boost_duration_s,
        now=now,
        is_auto=False,
        entry_id=f"manual-{int(now)}-{rack.id}-{uuid.uuid4().hex[:6]}",
    )
    logger.info("Manual fan boost on %s: %.1f°C -> %.1f°C", rack.name, temp_before, cooled.temperature)

    return RemediationOutcome(
        alert_id=alert.id,
        rack_id=rack.id,
        temp_before=temp_before,
        temp_after=cooled.temperature,
        fan_boost=boost,
        entry=entry,
    )
