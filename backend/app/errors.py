# app/errors.py
from __future__ import annotations

from dataclasses import dataclass


class EngineError(Exception):
    """Base class for rack simulation faults."""


@dataclass
class TrackingInvariantError(EngineError):
    """
    Every rack gets exactly one tracking record at initialization.
    A miss means that invariant is broken; callers log and skip the rack.
    """
    rack_id: str

    def __str__(self) -> str:
        return f"No tracking record for rack {self.rack_id!r}"


@dataclass
class RackNotFoundError(EngineError):
    rack_id: str

    def __str__(self) -> str:
        return f"Unknown rack {self.rack_id!r}"


@dataclass
class AlertNotFoundError(EngineError):
    alert_id: str

    def __str__(self) -> str:
        return f"Unknown alert {self.alert_id!r}"
