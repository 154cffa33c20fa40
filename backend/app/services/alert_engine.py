"""
alert_engine.py

Purpose:
  Turns rack status into operator alerts. The only dedup rule is a per-rack
  cooldown: a hot rack alerts again once 30 s have passed since its previous
  alert, regardless of whether severity changed.

Severity:
  - `critical` if T > 32 °C
  - `warning`  otherwise (the rack is hot, so T > 28 °C)
"""
from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, List

from app.errors import AlertNotFoundError
from app.models.domain import Alert, AlertSeverity, EngineConfig, Rack, RackStatus

logger = logging.getLogger(__name__)

_DEFAULT_CFG = EngineConfig()


def alert_severity(temperature: float, cfg: EngineConfig = _DEFAULT_CFG) -> AlertSeverity:
    if temperature > cfg.critical_threshold_c:
        return AlertSeverity.CRITICAL
    return AlertSeverity.WARNING


def cooldown_elapsed(rack: Rack, now: int, cooldown_ms: int) -> bool:
    return rack.last_alert_at is None or (int(now) - rack.last_alert_at) > cooldown_ms


def generate_alerts(racks: Iterable[Rack], now: int, cfg: EngineConfig = _DEFAULT_CFG) -> List[Alert]:
    """
    Scan racks after the thermal step. Sets `last_alert_at` on every rack
    that alerts, so callers must pass the racks they keep.
    """
    out: List[Alert] = []
    for rack in racks:
        if rack.status != RackStatus.HOT:
            continue
        if not cooldown_elapsed(rack, now, cfg.alert_cooldown_ms):
            continue

        alert = Alert(
            id=f"alert-{rack.id}-{int(now)}-{uuid.uuid4().hex[:6]}",
            rack_id=rack.id,
            rack_name=rack.name,
            severity=alert_severity(rack.temperature, cfg),
            message=f"Temperature critical: {rack.temperature:.1f}°C",
            timestamp=int(now),
        )
        rack.last_alert_at = int(now)
        out.append(alert)

    if out:
        logger.info("Generated %d alert(s): %s", len(out), ", ".join(a.rack_name for a in out))
    return out


class AlertBook:
    """
    Session-long alert store. Dismissal is one-way; dismissed alerts stay in
    memory for audit and are only hidden from `active()`.
    """

    def __init__(self) -> None:
        self._alerts: Dict[str, Alert] = {}

    def add(self, alerts: Iterable[Alert]) -> None:
        for a in alerts:
            self._alerts[a.id] = a

    def get(self, alert_id: str) -> Alert:
        try:
            return self._alerts[alert_id]
        except KeyError:
            raise AlertNotFoundError(alert_id) from None

    def dismiss(self, alert_id: str) -> Alert:
        alert = self.get(alert_id)
        if not alert.dismissed:
            alert.dismissed = True
            logger.info("Alert %s dismissed (%s)", alert_id, alert.rack_name)
        return alert

    def active(self) -> List[Alert]:
        return [a for a in self._alerts.values() if not a.dismissed]

    def all(self) -> List[Alert]:
        return list(self._alerts.values())

    def __len__(self) -> int:
        return len(self._alerts)
