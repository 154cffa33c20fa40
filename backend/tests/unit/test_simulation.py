import asyncio
import logging
import random

import pytest

from app.errors import RackNotFoundError
from app.models.domain import (
    AlertAction,
    AlertSeverity,
    ControlsUpdate,
    EngineConfig,
    EventType,
    RackStatus,
    RoomStatus,
    SimulationControls,
)
from app.services.simulation import (
    SimulationService,
    advance_tick,
    new_simulation_state,
    room_summary,
)
from app.services.thermal_model import make_rack

MANUAL = SimulationControls(intensity_pct=100, auto_mode_enabled=False, electricity_rate=0.1)
AUTO = SimulationControls(intensity_pct=100, auto_mode_enabled=True, electricity_rate=0.1)


def _state(rng, clock, *temps):
    racks = [make_rack(f"r{i}", t, name=f"Rack A{i + 1}") for i, t in enumerate(temps)]
    return new_simulation_state(EngineConfig(), rng, clock(), racks=racks)


def _run(state, controls, rng, clock, ticks):
    results = []
    for _ in range(ticks):
        results.append(advance_tick(state, controls, rng, clock()))
        clock.advance()
    return results


def _types(state):
    return [e.event_type for e in state.journal.entries()]


# -----------------------------
# Tick pipeline
# -----------------------------
def test_forced_overheat_raises_critical_alert(stub_rng, scripted_temps, clock):
    rng = stub_rng(script=scripted_temps(0.5))
    state = _state(rng, clock, 34.0)

    result = advance_tick(state, MANUAL, rng, clock())

    rack = state.racks["r0"]
    assert rack.temperature == 35.0
    assert rack.status == RackStatus.HOT
    assert rack.fan_speed == 100
    assert [a.severity for a in result.new_alerts] == [AlertSeverity.CRITICAL]
    assert [e.event_type for e in result.new_events] == [EventType.OVERHEAT]
    assert len(state.tracker.snapshot("r0").overheat_events) == 1
    assert state.tick == 1


def test_alerts_are_not_journalled(stub_rng, clock):
    rng = stub_rng()
    state = _state(rng, clock, 30.0, 31.0)
    state.tracker.observe_temperature("r0", 30.0, clock())
    state.tracker.observe_temperature("r1", 31.0, clock())

    result = advance_tick(state, MANUAL, rng, clock())

    assert len(result.new_alerts) == 2
    assert result.new_events == []
    assert len(state.journal) == 0
    assert {t.value for t in EventType} == {
        "Overheat", "FanBoost", "AutoAction", "MaintenanceForecast", "TempRecovery",
    }


def test_hot_but_not_critical_is_warning(stub_rng, scripted_temps, clock):
    rng = stub_rng(script=scripted_temps(0.5))
    state = _state(rng, clock, 29.0)

    result = advance_tick(state, MANUAL, rng, clock())
    assert state.racks["r0"].temperature == 30.0
    assert result.new_alerts[0].severity == AlertSeverity.WARNING


def test_auto_mode_cools_to_exactly_31(stub_rng, scripted_temps, clock):
    rng = stub_rng(script=scripted_temps(0.5))
    state = _state(rng, clock, 32.0, 20.0)

    result = advance_tick(state, AUTO, rng, clock())

    assert state.racks["r0"].temperature == 31.0
    assert state.racks["r1"].temperature == 20.0
    assert _types(state).count(EventType.AUTO_ACTION) == 1
    assert len(state.tracker.snapshot("r0").fan_boost_actions) == 1
    assert len(state.automated_actions) == 1
    assert result.telemetry.hot_racks == 1


def test_sustained_overheat_logs_once(stub_rng, clock):
    rng = stub_rng()
    state = _state(rng, clock, 30.0)

    _run(state, MANUAL, rng, clock, 10)

    assert _types(state).count(EventType.OVERHEAT) == 1
    assert state.tracker.overheat_count("r0", clock()) == 1


def test_alert_cooldown_across_ticks(stub_rng, clock):
    rng = stub_rng()
    state = _state(rng, clock, 30.0)

    # ticks land every 2 s; a repeat needs strictly more than 30 s
    _run(state, MANUAL, rng, clock, 16)
    assert len(state.alerts.all()) == 1
    _run(state, MANUAL, rng, clock, 1)
    assert len(state.alerts.all()) == 2


def test_energy_totals_only_grow(clock):
    rng = random.Random(3)
    state = new_simulation_state(EngineConfig(), rng, clock())
    last = (0.0, 0.0)
    for _ in range(60):
        advance_tick(state, AUTO, rng, clock())
        clock.advance()
        assert state.energy.session_kwh > last[0]
        assert state.energy.baseline_kwh > last[1]
        last = (state.energy.session_kwh, state.energy.baseline_kwh)
    assert len(state.telemetry) == 60


def test_missing_tracking_record_is_logged_and_skipped(stub_rng, clock, caplog):
    rng = stub_rng()
    state = _state(rng, clock, 30.0, 30.0)
    del state.tracker._records["r0"]

    with caplog.at_level(logging.ERROR):
        result = advance_tick(state, AUTO, rng, clock())

    assert "r0" in caplog.text
    assert state.tick == 1
    # the healthy rack is still tracked and remediated
    assert [e.rack_id for e in result.new_events] == ["r1", "r1"]
    assert state.racks["r1"].temperature == 28.0


def test_temp_recovery_after_sixty_seconds(stub_rng, scripted_temps, clock):
    rng = stub_rng(script=scripted_temps(0.5, -1.0, -1.0))
    state = _state(rng, clock, 32.0)

    _run(state, AUTO, rng, clock, 30)
    assert state.racks["r0"].temperature == 27.0
    assert EventType.TEMP_RECOVERY not in _types(state)

    _run(state, AUTO, rng, clock, 1)
    recovered = [e for e in state.journal.entries() if e.event_type == EventType.TEMP_RECOVERY]
    assert len(recovered) == 1
    assert recovered[0].duration == 60.0
    assert recovered[0].temp_before == 33.0
    assert state.tracker.snapshot("r0").pending_recovery is None


def test_maintenance_forecast_on_second_overheat(stub_rng, scripted_temps, clock):
    rng = stub_rng(script=scripted_temps(1.0, -1.0, 1.0))
    state = _state(rng, clock, 27.0)

    _run(state, MANUAL, rng, clock, 3)

    assert _types(state) == [EventType.OVERHEAT, EventType.OVERHEAT, EventType.MAINTENANCE_FORECAST]
    forecast = state.journal.entries()[-1]
    assert forecast.outcome == "Maintenance required in 3 days"
    assert forecast.cause == "2 overheat events in the last 72 hours"


def test_room_summary_levels():
    cool = [make_rack(f"c{i}", 22.0) for i in range(4)]
    hot = [make_rack(f"h{i}", 30.0) for i in range(4)]

    assert room_summary(cool).status == RoomStatus.OPTIMAL
    assert room_summary(cool[:2] + hot[:1]).status == RoomStatus.ATTENTION
    assert room_summary(cool[:1] + hot[:2]).status == RoomStatus.CRITICAL

    fahrenheit = room_summary(cool, is_celsius=False)
    assert fahrenheit.avg_temp == pytest.approx(71.6)
    assert fahrenheit.temp_unit == "F"


# -----------------------------
# Service
# -----------------------------
@pytest.fixture
def service(stub_rng, clock):
    svc = SimulationService(
        cfg=EngineConfig(grid_size=2),
        controls=SimulationControls(intensity_pct=0, auto_mode_enabled=False, electricity_rate=0.1),
        clock=clock,
        rng=stub_rng(),
    )
    svc.state.racks["rack-0"] = make_rack("rack-0", 35.0, name="Rack A1")
    return svc


def test_service_increase_fan(service):
    service.tick()
    [alert] = service.get_alerts()

    dismissed, entry = service.handle_alert_action(alert.id, AlertAction.INCREASE_FAN)

    assert dismissed.dismissed is True
    assert entry.event_type == EventType.FAN_BOOST
    assert service.get_rack("rack-0").temperature == 33.0
    assert service.get_alerts() == []
    assert len(service.get_alerts(include_dismissed=True)) == 1
    assert service.get_rack_stats("rack-0").fan_boosts == 1


def test_service_repeated_increase_fan_boosts_once(service):
    service.tick()
    [alert] = service.get_alerts()

    for _ in range(3):
        dismissed, entry = service.handle_alert_action(alert.id, AlertAction.INCREASE_FAN)

    assert dismissed.dismissed is True
    assert entry is None
    assert service.get_rack("rack-0").temperature == 33.0
    assert service.get_rack_stats("rack-0").fan_boosts == 1
    assert [e.event_type for e in service.get_events()].count(EventType.FAN_BOOST) == 1


def test_service_monitor_only_dismisses(service):
    service.tick()
    [alert] = service.get_alerts()

    dismissed, entry = service.handle_alert_action(alert.id, AlertAction.MONITOR)

    assert dismissed.dismissed is True
    assert entry is None
    assert service.get_rack("rack-0").temperature == 35.0


def test_service_unknown_rack(service):
    with pytest.raises(RackNotFoundError):
        service.get_rack("rack-99")


def test_service_snapshots_are_copies(service):
    rack = service.get_racks()[0]
    rack.temperature = 99.0
    assert service.get_rack(rack.id).temperature != 99.0


def test_service_partial_controls_update(service):
    controls = service.update_controls(ControlsUpdate(auto_mode_enabled=True))
    assert controls.auto_mode_enabled is True
    assert controls.intensity_pct == 0
    assert controls.electricity_rate == 0.1


def test_service_latest_and_reset(service):
    assert service.get_latest_telemetry() is None
    service.tick()
    assert service.get_latest_telemetry()["tick"] == 1

    service.reset()
    assert service.state.tick == 0
    assert service.get_latest_telemetry() is None
    assert len(service.get_racks()) == 4


def test_service_background_loop():
    svc = SimulationService(cfg=EngineConfig(grid_size=2, tick_period_s=0.01), rng=random.Random(5))

    async def scenario():
        assert svc.start() is True
        assert svc.start() is False
        await asyncio.sleep(0.2)
        assert svc.running
        assert await svc.stop() is True
        ticks = svc.state.tick
        await asyncio.sleep(0.05)
        return ticks

    ticks = asyncio.run(scenario())
    assert ticks > 0
    assert svc.state.tick == ticks
    assert not svc.running
