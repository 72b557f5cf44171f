from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(slots=True)
class TickMetrics:
    tick: int
    now_ms: float
    population: int
    counts: Dict[str, int]
    food: int
    births: int
    deaths: int
    kills: int
    pellets_eaten: int
    collision_pairs: int
    average_energy: float
    tick_duration_ms: float = 0.0


@dataclass(slots=True)
class SnapshotMetadata:
    width: float
    height: float
    sim_dt: float
    grid_cell_size: float
    food_radius: float
    seed: int | None
    config_version: str


@dataclass(slots=True)
class Snapshot:
    tick: int
    now_ms: float
    metrics: TickMetrics | None
    agents: List[Dict[str, Any]]
    foods: List[Dict[str, float]]
    obstacles: List[Dict[str, float]]
    corpses: List[Dict[str, float]]
    averages: Dict[str, Dict[str, float]]
    metadata: SnapshotMetadata
    history: Dict[str, List[int]] = field(default_factory=dict)
