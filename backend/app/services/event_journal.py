"""
event_journal.py

Purpose:
  Append-only, bounded audit log of causal events: what happened (cause),
  what was done (action_taken), and what resulted (outcome), with the energy
  and cost attributed to it.

Retention:
  - FIFO ring buffer (`deque(maxlen=N)`); the oldest entry is evicted when a
    new one arrives at capacity. Entries are frozen models and are never
    edited or removed otherwise.
"""
from __future__ import annotations

import logging
import uuid
from collections import deque
from typing import Deque, List, Optional

from app.models.domain import (
    EngineConfig,
    EventLogEntry,
    EventSeverity,
    EventStats,
    EventType,
)

logger = logging.getLogger(__name__)

_DEFAULT_CFG = EngineConfig()


def _event_id(prefix: str, now: int) -> str:
    return f"{prefix}-{int(now)}-{uuid.uuid4().hex[:9]}"


class EventJournal:
    def __init__(self, max_entries: int = 200, cfg: EngineConfig = _DEFAULT_CFG):
        self.cfg = cfg
        self._entries: Deque[EventLogEntry] = deque(maxlen=max(1, int(max_entries)))

    @property
    def max_entries(self) -> int:
        return int(self._entries.maxlen or 0)

    def __len__(self) -> int:
        return len(self._entries)

    # -----------------------------
    # Append
    # -----------------------------
    def append(self, entry: EventLogEntry) -> EventLogEntry:
        if len(self._entries) == self._entries.maxlen:
            logger.debug("Journal at capacity (%d); evicting %s", self._entries.maxlen, self._entries[0].id)
        self._entries.append(entry)
        return entry

    def log_overheat(
        self,
        rack_id: str,
        rack_name: str,
        temp_before: float,
        temp_after: float,
        electricity_rate: float,
        now: int,
    ) -> EventLogEntry:
        energy_delta = self.cfg.overheat_detection_kwh
        severity = EventSeverity.CRITICAL if temp_after > self.cfg.critical_threshold_c else EventSeverity.WARNING
        return self.append(
            EventLogEntry(
                id=_event_id("event", now),
                timestamp=int(now),
                rack_id=rack_id,
                rack_name=rack_name,
                event_type=EventType.OVERHEAT,
                cause=f"Temp rose from {temp_before:.1f}°C to {temp_after:.1f}°C",
                action_taken="Alert generated, monitoring increased",
                outcome="System flagged for intervention",
                energy_delta=energy_delta,
                cost_delta=energy_delta * electricity_rate,
                severity=severity,
                temp_before=float(temp_before),
                temp_after=float(temp_after),
            )
        )

    def log_fan_boost(
        self,
        rack_id: str,
        rack_name: str,
        cause: str,
        action_taken: str,
        temp_before: float,
        temp_after: float,
        energy_delta: float,
        electricity_rate: float,
        duration_s: float,
        now: int,
        is_auto: bool = False,
        entry_id: Optional[str] = None,
    ) -> EventLogEntry:
        if is_auto:
            outcome = f"Stabilized at {temp_after:.1f}°C"
        else:
            outcome = f"Temperature reduced to {temp_after:.1f}°C"
        return self.append(
            EventLogEntry(
                id=entry_id or _event_id("auto" if is_auto else "manual", now),
                timestamp=int(now),
                rack_id=rack_id,
                rack_name=rack_name,
                event_type=EventType.AUTO_ACTION if is_auto else EventType.FAN_BOOST,
                cause=cause,
                action_taken=action_taken,
                outcome=outcome,
                energy_delta=float(energy_delta),
                cost_delta=float(energy_delta) * electricity_rate,
                severity=EventSeverity.INFO,
                duration=float(duration_s),
                temp_before=float(temp_before),
                temp_after=float(temp_after),
            )
        )

    def log_temp_recovery(
        self,
        rack_id: str,
        rack_name: str,
        temp_before: float,
        temp_after: float,
        recovery_time_ms: int,
        now: int,
    ) -> EventLogEntry:
        return self.append(
            EventLogEntry(
                id=_event_id("event", now),
                timestamp=int(now),
                rack_id=rack_id,
                rack_name=rack_name,
                event_type=EventType.TEMP_RECOVERY,
                cause="Cooling intervention completed",
                action_taken="Temperature monitoring during recovery",
                outcome=(
                    f"Stabilized from {temp_before:.1f}°C to {temp_after:.1f}°C "
                    f"in {round(recovery_time_ms / 1000)}s"
                ),
                energy_delta=0.0,
                cost_delta=0.0,
                severity=EventSeverity.INFO,
                duration=recovery_time_ms / 1000.0,
                temp_before=float(temp_before),
                temp_after=float(temp_after),
            )
        )

    def log_maintenance_forecast(
        self,
        rack_id: str,
        rack_name: str,
        days_until_maintenance: int,
        trigger_condition: str,
        now: int,
    ) -> EventLogEntry:
        if days_until_maintenance <= 1:
            severity = EventSeverity.CRITICAL
        elif days_until_maintenance <= 3:
            severity = EventSeverity.WARNING
        else:
            severity = EventSeverity.INFO
        return self.append(
            EventLogEntry(
                id=_event_id("event", now),
                timestamp=int(now),
                rack_id=rack_id,
                rack_name=rack_name,
                event_type=EventType.MAINTENANCE_FORECAST,
                cause=trigger_condition,
                action_taken="Maintenance scheduled",
                outcome=f"Maintenance required in {days_until_maintenance} days",
                energy_delta=0.0,
                cost_delta=0.0,
                severity=severity,
            )
        )

    # -----------------------------
    # Read
    # -----------------------------
    def entries(self, limit: Optional[int] = None) -> List[EventLogEntry]:
        items = list(self._entries)
        if limit is None:
            return items
        limit = max(1, int(limit))
        return items[-limit:]

    def stats(self) -> EventStats:
        items = list(self._entries)
        return EventStats(
            total_events=len(items),
            total_energy_kwh=float(sum(e.energy_delta for e in items)),
            total_cost=float(sum(e.cost_delta for e in items)),
            critical_events=sum(1 for e in items if e.severity == EventSeverity.CRITICAL),
            warning_events=sum(1 for e in items if e.severity == EventSeverity.WARNING),
        )
