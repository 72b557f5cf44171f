from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .config import SimulationConfig
from .types import TickMetrics
from .world import SCENARIOS, World

logger = logging.getLogger(__name__)


_BASIC_HEADER = [
    "tick",
    "now_ms",
    "population",
    "food",
    "births",
    "deaths",
    "avg_energy",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "now_ms",
    "population",
    "blue",
    "purple",
    "red",
    "food",
    "births",
    "deaths",
    "kills",
    "pellets_eaten",
    "collision_pairs",
    "avg_energy",
    "avg_speed",
    "max_generation",
    "corpses",
    "pending_nutrients",
    "obstacles",
    "tick_ms",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        f"{metrics.now_ms:.3f}",
        metrics.population,
        metrics.food,
        metrics.births,
        metrics.deaths,
        f"{metrics.average_energy:.4f}",
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    speed_sum = 0.0
    max_generation = 0
    for agent in world.agents:
        speed_sum += math.hypot(agent.velocity.x, agent.velocity.y)
        if agent.generation > max_generation:
            max_generation = agent.generation
    avg_speed = speed_sum / metrics.population if metrics.population > 0 else 0.0
    return [
        metrics.tick,
        f"{metrics.now_ms:.3f}",
        metrics.population,
        metrics.counts.get("blue", 0),
        metrics.counts.get("purple", 0),
        metrics.counts.get("red", 0),
        metrics.food,
        metrics.births,
        metrics.deaths,
        metrics.kills,
        metrics.pellets_eaten,
        metrics.collision_pairs,
        f"{metrics.average_energy:.4f}",
        f"{avg_speed:.4f}",
        max_generation,
        len(world._corpses),
        len(world._nutrients),
        len(world._obstacles),
        f"{tick_ms:.3f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    scenario: str = "ecosystem",
    config: Optional[SimulationConfig] = None,
    auto_food_level: Optional[int] = None,
) -> World:
    """Run ``steps`` frames on a simulated clock and return the finished world.

    Auto food, which the server drives from a timer, is replayed here on the
    simulated clock so seeded runs stay reproducible.
    """
    config = config if config is not None else SimulationConfig()
    if seed is not None:
        config = replace(config, seed=seed)

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")
    if scenario not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {scenario}")

    world = World(config)
    world.load_scenario(scenario)
    if auto_food_level is not None:
        world.set_auto_food_level(auto_food_level)

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    population_series: list[float] = []
    food_series: list[float] = []
    totals = {"births": 0, "deaths": 0, "kills": 0, "pellets_eaten": 0}
    peak_population = (-1, -1)
    frame_ms = config.frame_ms
    next_auto_food_ms = world.auto_food_interval_ms

    try:
        for step in range(steps):
            now_ms = (step + 1) * frame_ms
            while world.auto_food_enabled and next_auto_food_ms <= now_ms:
                world.add_random_food()
                next_auto_food_ms += world.auto_food_interval_ms
            metrics = world.tick(now_ms)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms

            tick_ms_series.append(tick_ms)
            population_series.append(float(metrics.population))
            food_series.append(float(metrics.food))
            totals["births"] += metrics.births
            totals["deaths"] += metrics.deaths
            totals["kills"] += metrics.kills
            totals["pellets_eaten"] += metrics.pellets_eaten
            if metrics.population > peak_population[0]:
                peak_population = (metrics.population, metrics.tick)

            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
            if step % 600 == 0:
                logger.debug("tick %d population %d food %d", metrics.tick, metrics.population, metrics.food)
    finally:
        if csv_file:
            csv_file.close()

    logger.info(
        "finished %d steps: population %d, births %d, deaths %d, kills %d",
        steps,
        len(world.agents),
        totals["births"],
        totals["deaths"],
        totals["kills"],
    )

    if summary_path:
        summary = {
            "steps": steps,
            "seed": config.seed,
            "scenario": scenario,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "sim_ms": world.now_ms,
            "final_counts": world.counts(),
            "final_food": len(world.foods),
            "totals": totals,
            "tick_ms": _summary_stats(tick_ms_series),
            "population": _summary_stats(population_series),
            "food": _summary_stats(food_series),
            "peaks": {"population": {"value": peak_population[0], "tick": peak_population[1]}},
            "averages": world.trait_averages(),
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless petri dish simulation")
    parser.add_argument("--steps", type=int, default=3600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="ecosystem")
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding simulation defaults")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--auto-food", type=int, choices=[1, 2, 3], default=None, help="Enable auto food at this level")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, ...)")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = SimulationConfig.from_yaml(args.config) if args.config else None
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        scenario=args.scenario,
        config=config,
        auto_food_level=args.auto_food,
    )


if __name__ == "__main__":
    main()
