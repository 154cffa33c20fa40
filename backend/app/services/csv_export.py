"""
csv_export.py

Purpose:
  Text serialization of the rack snapshot and the event journal for download.

Format:
  - Free-text cells are quoted; numeric cells are written unquoted.
  - Fixed precision per field (trailing zeros kept): energy 6 dp, cost 4 dp, duration and
    temperatures 1 dp, rack metrics 2 dp. Missing optional values are empty.
"""
from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from app.models.domain import EventLogEntry, Rack

RACK_HEADERS = [
    "Timestamp",
    "Rack ID",
    "Rack Name",
    "Temperature",
    "Humidity",
    "Airflow",
    "Status",
]

EVENT_HEADERS = [
    "Timestamp",
    "Rack ID",
    "Rack Name",
    "Event Type",
    "Cause",
    "Action Taken",
    "Outcome",
    "Energy Delta (kWh)",
    "Cost Delta ($)",
    "Severity",
    "Duration (s)",
    "Temp Before (°C)",
    "Temp After (°C)",
]


def iso_from_ms(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).isoformat(timespec="milliseconds")


def _fixed(value: Optional[float], places: int) -> object:
    # Decimal keeps trailing zeros and never switches to exponent form at this
    # precision; QUOTE_NONNUMERIC still treats it as a number and leaves it bare.
    if value is None:
        return ""
    return Decimal(f"{float(value):.{places}f}")


def _writer(buf: io.StringIO):
    return csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")


def racks_to_csv(racks: Iterable[Rack], now_ms: int) -> str:
    buf = io.StringIO()
    w = _writer(buf)
    w.writerow(RACK_HEADERS)
    ts = iso_from_ms(now_ms)
    for r in racks:
        w.writerow([
            ts,
            r.id,
            r.name,
            _fixed(r.temperature, 2),
            _fixed(r.humidity, 2),
            _fixed(r.airflow_delta, 2),
            r.status.value,
        ])
    return buf.getvalue()


def event_log_to_csv(entries: Iterable[EventLogEntry]) -> str:
    buf = io.StringIO()
    w = _writer(buf)
    w.writerow(EVENT_HEADERS)
    for e in entries:
        w.writerow([
            iso_from_ms(e.timestamp),
            e.rack_id,
            e.rack_name,
            e.event_type.value,
            e.cause,
            e.action_taken,
            e.outcome,
            _fixed(e.energy_delta, 6),
            _fixed(e.cost_delta, 4),
            e.severity.value,
            _fixed(e.duration, 1),
            _fixed(e.temp_before, 1),
            _fixed(e.temp_after, 1),
        ])
    return buf.getvalue()


def csv_filename(prefix: str, now_ms: int) -> str:
    return f"{prefix}-{iso_from_ms(now_ms)[:10]}.csv"


def parse_csv(text: str) -> List[dict]:
    """Rows as dicts keyed by header; every value is the raw cell text."""
    return list(csv.DictReader(io.StringIO(text)))
