"""
energy_accounting.py

Purpose:
  Integrates instantaneous fan power into running energy totals and derives
  savings against an always-100%-fan baseline.

Math:
  - **Session**:  `session_kwh  += (Σ rack.power_watts / 1000) * interval_hours`
  - **Baseline**: `baseline_kwh += (500 * rack_count / 1000) * interval_hours`
  - **Savings**:  `baseline_kwh - session_kwh` (derived, never stored)
  - **Cost**:     `kWh * rate`, with a missing/malformed rate treated as 0

Units:
  - **Energy**: kWh
  - **Rate**: currency per kWh (opaque external input)
"""
from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence

from app.models.domain import (
    EfficiencyMetrics,
    EfficiencyTrend,
    EnergySummary,
    EngineConfig,
    Rack,
    RackStatus,
)

logger = logging.getLogger(__name__)

_DEFAULT_CFG = EngineConfig()

# Potential improvement credited per hot rack when estimating headroom (%).
HOT_RACK_POTENTIAL_PCT = 0.15
TREND_BAND_PCT = 2.0


def _rate_rejection(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return "malformed"
    if math.isnan(rate) or math.isinf(rate) or rate < 0.0:
        return "out-of-range"
    return None


def normalize_rate(value: Any) -> float:
    """
    External rate feeds may be absent or garbage; the tick must not fail on
    them. Anything that is not a finite, non-negative number becomes 0.0.
    """
    if value is None or isinstance(value, bool) or _rate_rejection(value):
        return 0.0
    return float(value)


def cost(kwh: float, rate: Any) -> float:
    return float(kwh) * normalize_rate(rate)


def total_power_kw(racks: Sequence[Rack]) -> float:
    return sum(float(r.power_watts) for r in racks) / 1000.0


def baseline_power_kw(rack_count: int, cfg: EngineConfig = _DEFAULT_CFG) -> float:
    return (cfg.base_fan_power_w * int(rack_count)) / 1000.0


class EnergyAccumulator:
    """
    Running totals for one session. Both totals only ever grow: power draw is
    non-negative for every rack temperature the thermal model can produce.
    """

    def __init__(self, cfg: EngineConfig = _DEFAULT_CFG):
        self.cfg = cfg
        self.session_kwh: float = 0.0
        self.baseline_kwh: float = 0.0
        # A bad feed warns once per distinct value, not once per tick.
        self._last_rejected_rate: Any = None

    @property
    def savings_kwh(self) -> float:
        return self.baseline_kwh - self.session_kwh

    def integrate(self, racks: Sequence[Rack], interval_hours: Optional[float] = None) -> float:
        """
        Add one tick's worth of energy. Returns the session kWh added.
        """
        hours = self.cfg.interval_hours if interval_hours is None else float(interval_hours)
        hours = max(0.0, hours)

        session_delta = max(0.0, total_power_kw(racks) * hours)
        baseline_delta = max(0.0, baseline_power_kw(len(racks), self.cfg) * hours)

        self.session_kwh += session_delta
        self.baseline_kwh += baseline_delta
        return session_delta

    def effective_rate(self, value: Any) -> float:
        reason = _rate_rejection(value)
        if reason and repr(value) != repr(self._last_rejected_rate):
            self._last_rejected_rate = value
            logger.warning("Ignoring %s electricity rate %r", reason, value)
        return normalize_rate(value)

    def reset(self) -> None:
        self.session_kwh = 0.0
        self.baseline_kwh = 0.0
        self._last_rejected_rate = None

    def summary(self, rate: Any, efficiency: Optional[EfficiencyMetrics] = None) -> EnergySummary:
        r = self.effective_rate(rate)
        session_cost = self.session_kwh * r
        baseline_cost = self.baseline_kwh * r
        return EnergySummary(
            session_kwh=float(self.session_kwh),
            baseline_kwh=float(self.baseline_kwh),
            savings_kwh=float(self.savings_kwh),
            electricity_rate=r,
            session_cost=float(session_cost),
            baseline_cost=float(baseline_cost),
            cost_saved=float(baseline_cost - session_cost),
            efficiency=efficiency or EfficiencyMetrics(),
        )


def efficiency_metrics(
    racks: Sequence[Rack],
    accumulator: EnergyAccumulator,
    previous: Optional[EfficiencyMetrics] = None,
) -> EfficiencyMetrics:
    """
    Fan efficiency versus baseline for the current snapshot, plus a trend
    against the previous figure (±2 points counts as stable).
    """
    previous = previous or EfficiencyMetrics()
    if not racks or accumulator.baseline_kwh == 0:
        return previous

    baseline_kw = baseline_power_kw(len(racks), accumulator.cfg)
    current = max(0.0, (1.0 - total_power_kw(racks) / baseline_kw) * 100.0)

    hot = sum(1 for r in racks if r.status == RackStatus.HOT)
    potential = min(100.0, current + hot * HOT_RACK_POTENTIAL_PCT)

    trend = EfficiencyTrend.STABLE
    if current > previous.current + TREND_BAND_PCT:
        trend = EfficiencyTrend.IMPROVING
    elif current < previous.current - TREND_BAND_PCT:
        trend = EfficiencyTrend.DECLINING

    return EfficiencyMetrics(
        current=float(current),
        potential=float(potential),
        savings=float(accumulator.savings_kwh),
        trend=trend,
    )
