import random

import pytest

from app.models.domain import RackStatus
from app.services.thermal_model import (
    apply_cooling,
    classify_status,
    initial_racks,
    make_rack,
    rack_power_watts,
    step_rack,
)

# ============================================================
# TABLE-DRIVEN TESTS FOR THE THERMAL MODEL
# ============================================================

@pytest.mark.parametrize("temp, expected", [
    (15.0, RackStatus.COOL),
    (24.0, RackStatus.COOL),
    (24.01, RackStatus.WARM),
    (28.0, RackStatus.WARM),
    (28.01, RackStatus.HOT),
    (40.0, RackStatus.HOT),
])
def test_status_thresholds(temp, expected):
    assert classify_status(temp) == expected


@pytest.mark.parametrize("status, temp, watts", [
    (RackStatus.HOT, 30.0, 550.0),
    (RackStatus.WARM, 25.0, 393.75),
    (RackStatus.COOL, 20.0, 250.0),
])
def test_power_from_status_and_temperature(status, temp, watts):
    assert rack_power_watts(status, temp) == pytest.approx(watts)


def test_step_applies_scaled_draws(stub_rng):
    rack = make_rack("r1", 25.0, humidity=50.0, airflow_delta=1.0, uptime=99.5)
    nxt = step_rack(rack, intensity=1.0, rng=stub_rng(unit=1.0))

    assert nxt.temperature == pytest.approx(27.0)
    assert nxt.humidity == pytest.approx(54.0)
    assert nxt.airflow_delta == pytest.approx(1.25)
    assert nxt.uptime == pytest.approx(99.55)
    assert nxt.status == RackStatus.WARM
    assert nxt.fan_speed == 75
    assert nxt.power_watts == pytest.approx(500 * 0.75 * 1.07)
    # input untouched
    assert rack.temperature == 25.0


def test_step_clamps_to_bounds(stub_rng):
    hot = make_rack("hot", 39.5, humidity=79.0)
    up = step_rack(hot, intensity=1.0, rng=stub_rng(unit=1.0))
    assert up.temperature == 40.0
    assert up.humidity == 80.0

    cold = make_rack("cold", 15.5, humidity=31.0)
    down = step_rack(cold, intensity=1.0, rng=stub_rng(unit=-1.0))
    assert down.temperature == 15.0
    assert down.humidity == 30.0


def test_zero_intensity_freezes_temperature_but_airflow_drifts(stub_rng):
    rack = make_rack("r1", 26.0, airflow_delta=0.0)
    nxt = step_rack(rack, intensity=0.0, rng=stub_rng(unit=1.0))
    assert nxt.temperature == 26.0
    assert nxt.airflow_delta == pytest.approx(0.25)


def test_uptime_floor(stub_rng):
    rack = make_rack("r1", 22.0, uptime=95.01)
    nxt = step_rack(rack, intensity=0.5, rng=stub_rng(unit=-1.0))
    assert nxt.uptime == 95.0


def test_apply_cooling_rederives_status_and_power():
    rack = make_rack("r1", 29.0)
    assert rack.status == RackStatus.HOT

    cooled = apply_cooling(rack, 2.0)
    assert cooled.temperature == 27.0
    assert cooled.status == RackStatus.WARM
    assert cooled.power_watts == pytest.approx(rack_power_watts(RackStatus.WARM, 27.0))


def test_initial_racks_layout():
    racks = initial_racks(4, random.Random(3))
    assert len(racks) == 16
    assert racks[0].id == "rack-0" and racks[0].name == "Rack A1"
    assert racks[5].name == "Rack B2"
    assert racks[15].name == "Rack D4"
    for r in racks:
        assert 18.0 <= r.temperature <= 26.0
        assert 45.0 <= r.humidity <= 65.0
        assert 99.2 <= r.uptime <= 99.9
        assert -2.0 <= r.airflow_delta <= 2.0
        assert r.status == classify_status(r.temperature)
        assert r.last_alert_at is None
