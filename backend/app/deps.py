# app/deps.py
"""
deps.py

Purpose:
  Dependency Injection (DI) container for the application.
  Holds the single SimulationService so rack state persists across requests
  for the life of the process.

Pattern:
  - Uses `lru_cache` to enforce Singleton pattern for `get_simulation_service()`.
  - Tests call `get_simulation_service.cache_clear()` for a fresh engine, or
    patch the lookup in the route module.
"""
from __future__ import annotations

from functools import lru_cache

from app.config import load_controls, load_engine_config
from app.services.simulation import SimulationService


@lru_cache(maxsize=1)
def get_simulation_service() -> SimulationService:
    return SimulationService(cfg=load_engine_config(), controls=load_controls())
