from __future__ import annotations

import copy
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from time import perf_counter
from typing import Deque, Dict, List, Optional, Tuple

from pygame.math import Vector2

from .agent import Agent, AgentKind
from .config import SimulationConfig, SpeciesConfig
from .environment import Corpse, Food, Obstacle, PendingNutrient, obstacle_at
from .genome import TRAIT_RANGES, Genome, clamp_genome, derive_hue
from .rng import RandomSource
from .spatial_grid import SpatialGrid
from .systems import collisions, feeding, kinematics, lifecycle, predation
from .types import Snapshot, SnapshotMetadata, TickMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scenario:
    agents: Dict[AgentKind, int] = field(default_factory=dict)
    food: int = 0
    auto_food: bool = False


SCENARIOS: Dict[str, Scenario] = {
    "ecosystem": Scenario(
        agents={AgentKind.PREY_A: 20, AgentKind.PREY_B: 10, AgentKind.PREDATOR: 2},
        food=50,
        auto_food=True,
    ),
    "peaceful": Scenario(agents={AgentKind.PREY_A: 30}, food=40),
    "predator": Scenario(agents={AgentKind.PREY_A: 30, AgentKind.PREDATOR: 5}, food=30),
    "empty": Scenario(),
}

HISTORY_SERIES = tuple(kind.value for kind in AgentKind) + ("food",)
# random placements retry this many times before giving up on an agent
PLACEMENT_ATTEMPTS = 32


class World:
    """Owns every entity collection and advances them one frame at a time.

    All mutation goes through this object; callers that drive it from more
    than one task must serialise access themselves.
    """

    def __init__(self, config: SimulationConfig, rng: Optional[RandomSource] = None):
        # rate and decay controls edit the working copy; reset() goes back to the original
        self._base_config = copy.deepcopy(config)
        self._config = copy.deepcopy(config)
        self._rng = rng if rng is not None else RandomSource(config.seed)
        self._agent_grid = SpatialGrid(config.grid_cell_size)
        self._food_grid = SpatialGrid(config.grid_cell_size)
        self._agents: List[Agent] = []
        self._foods: List[Food] = []
        self._obstacles: Dict[Tuple[int, int], Obstacle] = {}
        self._corpses: List[Corpse] = []
        self._nutrients: List[PendingNutrient] = []
        self._next_id = 0
        self._tick = 0
        self._now_ms = 0.0
        self._metrics: TickMetrics | None = None
        self._history: Dict[str, Deque[int]] = {
            name: deque(maxlen=config.history_length) for name in HISTORY_SERIES
        }
        self._next_history_ms = 0.0
        self._auto_food_enabled = False
        self._auto_food_interval_ms = config.rates.default_auto_food_ms

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def foods(self) -> List[Food]:
        return self._foods

    @property
    def obstacles(self) -> List[Obstacle]:
        return list(self._obstacles.values())

    @property
    def corpses(self) -> List[Corpse]:
        return sorted(self._corpses)

    @property
    def nutrients(self) -> List[PendingNutrient]:
        return sorted(self._nutrients)

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def now_ms(self) -> float:
        return self._now_ms

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def auto_food_enabled(self) -> bool:
        return self._auto_food_enabled

    @property
    def auto_food_interval_ms(self) -> float:
        return self._auto_food_interval_ms

    def reset(self) -> None:
        self._config = copy.deepcopy(self._base_config)
        self._agents.clear()
        self._foods.clear()
        self._obstacles.clear()
        self._corpses.clear()
        self._nutrients.clear()
        self._agent_grid.clear()
        self._food_grid.clear()
        self._rng.reset()
        self._next_id = 0
        self._tick = 0
        self._now_ms = 0.0
        self._metrics = None
        for series in self._history.values():
            series.clear()
        self._next_history_ms = 0.0
        self._auto_food_enabled = False

    def species_for(self, kind: AgentKind) -> SpeciesConfig:
        return getattr(self._config.species, kind.value)

    def prior_for(self, kind: AgentKind) -> Genome:
        return getattr(self._config.priors, kind.value)

    def counts(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in AgentKind}
        for agent in self._agents:
            if agent.alive:
                counts[agent.kind.value] += 1
        return counts

    # -- placement -------------------------------------------------------

    def spawn_agent(
        self, kind: AgentKind | str, position: Vector2, genome: Optional[Genome] = None
    ) -> Optional[Agent]:
        """Place a single agent; returns ``None`` when the spot is unusable.

        A custom ``genome`` skips the agent overlap check, obstacles still reject.
        """
        kind = AgentKind(kind)
        config = self._config
        if len(self._agents) >= config.max_population:
            logger.debug("spawn rejected: population cap %d reached", config.max_population)
            return None
        if not (0.0 <= position.x <= config.width and 0.0 <= position.y <= config.height):
            logger.debug("spawn rejected: (%.1f, %.1f) outside the arena", position.x, position.y)
            return None
        chosen = clamp_genome(genome if genome is not None else self.prior_for(kind))
        radius = chosen.radius
        x = max(radius, min(config.width - radius, position.x))
        y = max(radius, min(config.height - radius, position.y))
        if obstacle_at(self._obstacles.values(), x, y, radius) is not None:
            logger.debug("spawn rejected: (%.1f, %.1f) inside an obstacle", x, y)
            return None
        if genome is None:
            for other in self._agents:
                if not other.alive:
                    continue
                reach = radius + other.genome.radius
                dx = other.position.x - x
                dy = other.position.y - y
                if dx * dx + dy * dy < reach * reach:
                    logger.debug("spawn rejected: (%.1f, %.1f) overlaps agent %d", x, y, other.id)
                    return None
        agent = self._create_agent(kind, Vector2(x, y), chosen)
        self._agents.append(agent)
        return agent

    def spawn_food(self, position: Vector2, now_ms: Optional[float] = None) -> bool:
        config = self._config
        if not (0.0 <= position.x <= config.width and 0.0 <= position.y <= config.height):
            return False
        if obstacle_at(self._obstacles.values(), position.x, position.y, config.food.radius) is not None:
            logger.debug("food rejected: (%.1f, %.1f) inside an obstacle", position.x, position.y)
            return False
        now = self._now_ms if now_ms is None else now_ms
        self._foods.append(Food(Vector2(position), self._next_grow_time(now)))
        return True

    def place_obstacle(self, col: int, row: int) -> bool:
        config = self._config
        size = config.obstacle_size
        if col < 0 or row < 0 or col * size >= config.width or row * size >= config.height:
            return False
        if (col, row) in self._obstacles:
            return False
        block = Obstacle(col, row, size)
        self._obstacles[block.cell] = block
        food_radius = config.food.radius
        before = len(self._foods)
        self._foods = [
            food for food in self._foods if not block.overlaps_box(food.position.x, food.position.y, food_radius)
        ]
        if len(self._foods) != before:
            logger.debug("obstacle at %s removed %d pellets", block.cell, before - len(self._foods))
        return True

    def obstacle_cell(self, position: Vector2) -> Tuple[int, int]:
        size = self._config.obstacle_size
        return (int(position.x // size), int(position.y // size))

    def kill_in_radius(self, point: Vector2, radius: Optional[float] = None) -> int:
        """Kill agents near ``point`` (natural death) and clear obstacles it touches."""
        if radius is None:
            radius = self._config.tools.kill_radius
        radius_sq = radius * radius
        killed = 0
        for agent in self._agents:
            if not agent.alive:
                continue
            dx = agent.position.x - point.x
            dy = agent.position.y - point.y
            if dx * dx + dy * dy <= radius_sq:
                agent.alive = False
                killed += 1
        for cell, block in list(self._obstacles.items()):
            if block.contains_point(point.x, point.y) or block.intersects_circle(point.x, point.y, radius):
                del self._obstacles[cell]
        return killed

    # -- simulation ------------------------------------------------------

    def tick(self, now_ms: Optional[float] = None) -> TickMetrics:
        start = perf_counter()
        if now_ms is None:
            now_ms = self._now_ms + self._config.frame_ms
        blocks = list(self._obstacles.values())

        births: List[Agent] = []
        room = self._config.max_population - len(self._agents)
        for agent in self._agents:
            kinematics.update_agent(self, agent, now_ms, blocks)
            if agent.alive and len(births) < room:
                child = kinematics.try_reproduce(self, agent, now_ms)
                if child is not None:
                    births.append(child)

        report = collisions.resolve_collisions(self)
        kills = predation.resolve_predation(self, now_ms)
        eaten = feeding.resolve_feeding(self, now_ms)
        deaths = lifecycle.collect_dead(self, now_ms)
        lifecycle.hatch_nutrients(self, now_ms)
        lifecycle.grow_food(self, now_ms)
        lifecycle.expire_corpses(self, now_ms)
        # appended last so newborns never join this frame's resolution order
        self._agents.extend(births)

        self._tick += 1
        self._now_ms = now_ms
        self._sample_history(now_ms)

        energy_sum = 0.0
        for agent in self._agents:
            energy_sum += agent.energy
        population = len(self._agents)
        metrics = TickMetrics(
            tick=self._tick,
            now_ms=now_ms,
            population=population,
            counts=self.counts(),
            food=len(self._foods),
            births=len(births),
            deaths=deaths,
            kills=kills,
            pellets_eaten=eaten,
            collision_pairs=report.pairs_checked,
            average_energy=energy_sum / population if population else 0.0,
            tick_duration_ms=(perf_counter() - start) * 1000.0,
        )
        self._metrics = metrics
        return metrics

    # -- bulk tools ------------------------------------------------------

    def wipe_all(self) -> None:
        self._agents.clear()
        self._foods.clear()
        self._nutrients.clear()
        self._corpses.clear()
        logger.info("wiped agents, food, corpses and pending nutrients")

    def wipe_food_only(self) -> None:
        # pending drips go too so food does not reappear
        self._foods.clear()
        self._nutrients.clear()
        logger.info("wiped food")

    def wipe_agents_of_kind(self, kind: AgentKind | str) -> int:
        kind = AgentKind(kind)
        before = len(self._agents)
        self._agents = [agent for agent in self._agents if agent.kind != kind]
        removed = before - len(self._agents)
        logger.info("wiped %d %s agents", removed, kind.value)
        return removed

    def _bulk_count(self, n: int) -> int:
        return max(1, min(self._config.tools.bulk_spawn_max, int(n)))

    def add_random_food(self) -> bool:
        config = self._config
        margin = config.food.radius
        x = self._rng.next_range(margin, config.width - margin)
        y = self._rng.next_range(margin, config.height - margin)
        return self.spawn_food(Vector2(x, y))

    def spawn_random_food(self, n: int) -> int:
        count = self._bulk_count(n)
        placed = 0
        for _ in range(count):
            if self.add_random_food():
                placed += 1
        logger.info("spawned %d/%d random food pellets", placed, count)
        return placed

    def spawn_random_agents(self, kind: AgentKind | str, n: int) -> int:
        kind = AgentKind(kind)
        count = self._bulk_count(n)
        config = self._config
        prior = clamp_genome(self.prior_for(kind))
        radius = prior.radius
        placed = 0
        for _ in range(count):
            if len(self._agents) >= config.max_population:
                break
            position = self._random_clear_spot(radius)
            if position is None:
                continue
            self._agents.append(self._create_agent(kind, position, prior.copy()))
            placed += 1
        logger.info("spawned %d random %s agents", placed, kind.value)
        return placed

    def set_food_grow_rate(self, rate: int) -> float:
        """Map a 0..5 rate onto the budding interval; 0 stops growth. Returns the interval."""
        grow = self._config.food.grow
        rates = self._config.rates
        level = max(0, min(5, int(rate)))
        if level == 0:
            grow.enabled = False
            for food in self._foods:
                food.next_grow_ms = math.inf
            logger.info("food growth disabled")
            return 0.0
        grow.enabled = True
        grow.interval_ms = rates.grow_rate_ms[level]
        grow.jitter_ms = round(grow.interval_ms * rates.grow_jitter_fraction)
        for food in self._foods:
            food.next_grow_ms = self._next_grow_time(self._now_ms)
        logger.info("food grow rate %d (%.0f ms)", level, grow.interval_ms)
        return grow.interval_ms

    def set_decay_level(self, level: int) -> float:
        # affects future deaths only
        clamped = max(1, min(5, int(level)))
        delay = self._config.rates.decay_ms[clamped]
        self._config.death.nutrient_delay_ms = delay
        logger.info("decay level %d (%.0f ms)", clamped, delay)
        return delay

    def set_auto_food_level(self, level: int, enable: bool = True) -> float:
        clamped = max(1, min(3, int(level)))
        self._auto_food_interval_ms = self._config.rates.auto_food_ms[clamped]
        if enable:
            self._auto_food_enabled = True
        logger.info("auto food level %d (%.0f ms)", clamped, self._auto_food_interval_ms)
        return self._auto_food_interval_ms

    def stop_auto_food(self) -> None:
        self._auto_food_enabled = False
        logger.info("auto food stopped")

    def load_scenario(self, name: str) -> None:
        scenario = SCENARIOS.get(name)
        if scenario is None:
            raise ValueError(f"unknown scenario: {name}")
        self.reset()
        for kind, count in scenario.agents.items():
            self.spawn_random_agents(kind, count)
        if scenario.food:
            self.spawn_random_food(scenario.food)
        if scenario.auto_food:
            self._auto_food_enabled = True
            self._auto_food_interval_ms = self._config.rates.default_auto_food_ms
        logger.info("loaded scenario %s", name)

    # -- telemetry -------------------------------------------------------

    def history(self) -> Dict[str, List[int]]:
        return {name: list(series) for name, series in self._history.items()}

    def trait_averages(self) -> Dict[str, Dict[str, float]]:
        """Mean genome traits per group (custom cell name when set, else kind)."""
        sums: Dict[str, Dict[str, float]] = {}
        for agent in self._agents:
            if not agent.alive:
                continue
            bucket = sums.get(agent.group_name)
            if bucket is None:
                bucket = {name: 0.0 for name in TRAIT_RANGES}
                bucket["energy"] = 0.0
                bucket["generation"] = 0.0
                bucket["count"] = 0.0
                sums[agent.group_name] = bucket
            for name in TRAIT_RANGES:
                bucket[name] += getattr(agent.genome, name)
            bucket["energy"] += agent.energy
            bucket["generation"] += agent.generation
            bucket["count"] += 1.0
        averages: Dict[str, Dict[str, float]] = {}
        for group, bucket in sums.items():
            count = bucket["count"]
            averages[group] = {name: value / count for name, value in bucket.items() if name != "count"}
            averages[group]["count"] = count
        return averages

    def snapshot(self) -> Snapshot:
        config = self._config
        metadata = SnapshotMetadata(
            width=config.width,
            height=config.height,
            sim_dt=config.time_step,
            grid_cell_size=config.grid_cell_size,
            food_radius=config.food.radius,
            seed=self._rng.seed,
            config_version=config.config_version,
        )
        return Snapshot(
            tick=self._tick,
            now_ms=self._now_ms,
            metrics=self._metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents if agent.alive],
            foods=[{"x": food.position.x, "y": food.position.y} for food in self._foods],
            obstacles=[
                {"col": block.col, "row": block.row, "x": block.x, "y": block.y, "size": block.size}
                for block in self._obstacles.values()
            ],
            corpses=[
                {"x": corpse.position.x, "y": corpse.position.y, "radius": corpse.radius, "hue": corpse.hue}
                for corpse in sorted(self._corpses)
            ],
            averages=self.trait_averages(),
            metadata=metadata,
            history=self.history(),
        )

    # -- internals -------------------------------------------------------

    def _agent_snapshot(self, agent: Agent) -> Dict[str, object]:
        return {
            "id": agent.id,
            "kind": agent.kind.value,
            "x": agent.position.x,
            "y": agent.position.y,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "radius": agent.genome.radius,
            "hue": agent.hue,
            "energy": agent.energy,
            "generation": agent.generation,
            "group": agent.group_name,
        }

    def _create_agent(self, kind: AgentKind, position: Vector2, genome: Genome, generation: int = 0) -> Agent:
        species = self.species_for(kind)
        genome = clamp_genome(genome)
        agent = Agent(
            id=self._next_id,
            kind=kind,
            position=position,
            velocity=Vector2(self._rng.next_range(-0.5, 0.5), self._rng.next_range(-0.5, 0.5)),
            genome=genome,
            energy=0.0,
            hue=derive_hue(genome, species.base_hue, self._rng),
            generation=generation,
        )
        agent.energy = min(
            agent.max_energy * species.satiation_fraction,
            genome.repro_threshold - species.initial_energy_margin,
        )
        self._next_id += 1
        return agent

    def _random_clear_spot(self, radius: float) -> Optional[Vector2]:
        config = self._config
        blocks = self._obstacles.values()
        for _ in range(PLACEMENT_ATTEMPTS):
            x = self._rng.next_range(radius, config.width - radius)
            y = self._rng.next_range(radius, config.height - radius)
            if obstacle_at(blocks, x, y, radius) is None:
                return Vector2(x, y)
        return None

    def _next_grow_time(self, now_ms: float) -> float:
        grow = self._config.food.grow
        if not grow.enabled:
            return math.inf
        return now_ms + grow.interval_ms + self._rng.next_signed() * grow.jitter_ms

    def _index_agents(self) -> SpatialGrid:
        grid = self._agent_grid
        grid.clear()
        for index, agent in enumerate(self._agents):
            if agent.alive:
                grid.insert(index, agent.position)
        return grid

    def _index_foods(self) -> SpatialGrid:
        grid = self._food_grid
        grid.clear()
        for index, food in enumerate(self._foods):
            grid.insert(index, food.position)
        return grid

    def _sample_history(self, now_ms: float) -> None:
        if now_ms < self._next_history_ms:
            return
        counts = self.counts()
        for kind in AgentKind:
            self._history[kind.value].append(counts[kind.value])
        self._history["food"].append(len(self._foods))
        self._next_history_ms = now_ms + self._config.history_sample_ms
