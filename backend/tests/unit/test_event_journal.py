import pytest
from pydantic import ValidationError

from app.models.domain import EventSeverity, EventType
from app.services.event_journal import EventJournal

T0 = 1_700_000_000_000


def _overheat(journal, i, temp_after=30.0):
    return journal.log_overheat(f"r{i}", f"Rack {i}", 27.0, temp_after, 0.1, T0 + i)


def test_fifo_eviction():
    journal = EventJournal(max_entries=3)
    for i in range(5):
        _overheat(journal, i)

    entries = journal.entries()
    assert len(journal) == 3
    assert [e.rack_id for e in entries] == ["r2", "r3", "r4"]
    assert journal.max_entries == 3


def test_entries_limit_returns_newest():
    journal = EventJournal(max_entries=10)
    for i in range(4):
        _overheat(journal, i)
    assert [e.rack_id for e in journal.entries(limit=2)] == ["r2", "r3"]


def test_entries_are_frozen():
    journal = EventJournal()
    entry = _overheat(journal, 0)
    with pytest.raises(ValidationError):
        entry.cause = "edited"


def test_overheat_entry():
    journal = EventJournal()
    warn = journal.log_overheat("r1", "Rack A1", 27.4, 29.5, 0.2, T0)
    crit = journal.log_overheat("r1", "Rack A1", 31.0, 32.5, 0.2, T0)

    assert warn.event_type == EventType.OVERHEAT
    assert warn.cause == "Temp rose from 27.4°C to 29.5°C"
    assert warn.severity == EventSeverity.WARNING
    assert warn.energy_delta == pytest.approx(0.008)
    assert warn.cost_delta == pytest.approx(0.0016)
    assert crit.severity == EventSeverity.CRITICAL


def test_fan_boost_outcomes():
    journal = EventJournal()
    auto = journal.log_fan_boost("r1", "Rack A1", "hot", "boost", 33.0, 31.0, 0.0025, 0.1, 120, T0, is_auto=True)
    manual = journal.log_fan_boost("r1", "Rack A1", "hot", "boost", 33.0, 31.0, 0.00025, 0.1, 90, T0)

    assert auto.event_type == EventType.AUTO_ACTION
    assert auto.outcome == "Stabilized at 31.0°C"
    assert auto.duration == 120.0
    assert manual.event_type == EventType.FAN_BOOST
    assert manual.outcome == "Temperature reduced to 31.0°C"
    assert manual.severity == EventSeverity.INFO


@pytest.mark.parametrize("days, severity", [
    (0, EventSeverity.CRITICAL),
    (1, EventSeverity.CRITICAL),
    (3, EventSeverity.WARNING),
    (7, EventSeverity.INFO),
])
def test_maintenance_forecast_severity(days, severity):
    journal = EventJournal()
    entry = journal.log_maintenance_forecast("r1", "Rack A1", days, "Repeated overheating", T0)
    assert entry.severity == severity
    assert entry.outcome == f"Maintenance required in {days} days"
    assert entry.energy_delta == 0.0


def test_temp_recovery_entry():
    journal = EventJournal()
    entry = journal.log_temp_recovery("r1", "Rack A1", 31.0, 27.5, 62_000, T0)
    assert entry.event_type == EventType.TEMP_RECOVERY
    assert entry.duration == pytest.approx(62.0)
    assert entry.outcome == "Stabilized from 31.0°C to 27.5°C in 62s"


def test_stats():
    journal = EventJournal()
    _overheat(journal, 0, temp_after=30.0)
    _overheat(journal, 1, temp_after=35.0)
    journal.log_temp_recovery("r1", "Rack 1", 31.0, 27.0, 60_000, T0)

    stats = journal.stats()
    assert stats.total_events == 3
    assert stats.critical_events == 1
    assert stats.warning_events == 1
    assert stats.total_energy_kwh == pytest.approx(0.016)
    assert stats.total_cost == pytest.approx(0.0016)
