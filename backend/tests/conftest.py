from __future__ import annotations

from typing import Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.deps import get_simulation_service
from app.models.domain import EngineConfig


class StubRng:
    """
    Deterministic stand-in for random.Random.

    `uniform(a, b)` returns the next scripted value if any are left, otherwise
    the point at `unit` on [a, b] mapped from [-1, 1] (0.0 -> midpoint, so
    symmetric ranges draw exactly 0.0). `random()` always returns `fraction`.
    """

    def __init__(self, unit: float = 0.0, script: Optional[Iterable[float]] = None, fraction: float = 0.5):
        self.unit = unit
        self.fraction = fraction
        self._script: List[float] = list(script or [])

    def uniform(self, a: float, b: float) -> float:
        if self._script:
            return self._script.pop(0)
        return a + (b - a) * (self.unit + 1.0) / 2.0

    def random(self) -> float:
        return self.fraction


def temp_draws(*draws: float) -> List[float]:
    """One rack per tick draws (temp, humidity, uptime, airflow); script the temp only."""
    out: List[float] = []
    for d in draws:
        out.extend([d, 0.0, 0.0, 0.0])
    return out


class Clock:
    def __init__(self, start: int = 1_700_000_000_000, step: int = 2000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: Optional[int] = None) -> int:
        self.now += self.step if ms is None else ms
        return self.now


@pytest.fixture
def stub_rng():
    return StubRng


@pytest.fixture
def scripted_temps():
    return temp_draws


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def cfg() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("SIM_AUTOSTART", raising=False)
    get_simulation_service.cache_clear()
    from app.main import app

    with TestClient(app) as c:
        yield c
    get_simulation_service.cache_clear()
