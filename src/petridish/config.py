from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional

import yaml

from .genome import Genome


@dataclass
class SpeciesConfig:
    base_hue: float = 210.0
    threat_radius: float = 120.0
    evasion: float = 1.8
    hunger_base: float = 0.7
    threat_seek_damping: float = 0.5
    satiation_fraction: float = 0.6
    move_cost: float = 2.0
    size_cost: float = 0.02
    repro_cooldown_ms: float = 800.0
    min_viable_energy: float = 20.0
    initial_energy_margin: float = 10.0
    search_jitter: float = 0.0
    hunts_others: bool = False
    flees_predators: bool = True


def _purple_species() -> SpeciesConfig:
    return SpeciesConfig(
        base_hue=270.0,
        threat_radius=130.0,
        evasion=1.4,
        hunger_base=0.8,
        threat_seek_damping=0.35,
        satiation_fraction=0.65,
        move_cost=1.6,
        size_cost=0.03,
        repro_cooldown_ms=1000.0,
        min_viable_energy=28.0,
        initial_energy_margin=8.0,
    )


def _red_species() -> SpeciesConfig:
    return SpeciesConfig(
        base_hue=0.0,
        threat_radius=0.0,
        evasion=0.0,
        hunger_base=0.8,
        threat_seek_damping=0.0,
        satiation_fraction=0.55,
        move_cost=2.2,
        size_cost=0.025,
        repro_cooldown_ms=900.0,
        min_viable_energy=24.0,
        initial_energy_margin=10.0,
        search_jitter=0.0025,
        hunts_others=True,
        flees_predators=False,
    )


@dataclass
class SpeciesTable:
    blue: SpeciesConfig = field(default_factory=SpeciesConfig)
    purple: SpeciesConfig = field(default_factory=_purple_species)
    red: SpeciesConfig = field(default_factory=_red_species)


def _purple_prior() -> Genome:
    return Genome(
        radius=7,
        max_speed=1.65,
        acceleration=0.072,
        friction=0.985,
        digestion_delay_ms=320,
        repro_threshold=85,
        repro_cost=40,
        child_start_energy=32,
        baseline_burn=1.35,
    )


def _red_prior() -> Genome:
    return Genome(
        radius=6,
        max_speed=1.85,
        acceleration=0.085,
        friction=0.945,
        digestion_delay_ms=260,
        repro_threshold=110,
        repro_cost=50,
        child_start_energy=24,
        baseline_burn=1.7,
    )


@dataclass
class GenomePriors:
    blue: Genome = field(default_factory=Genome)
    purple: Genome = field(default_factory=_purple_prior)
    red: Genome = field(default_factory=_red_prior)


@dataclass
class FoodGrowConfig:
    enabled: bool = True
    interval_ms: float = 6000.0
    jitter_ms: float = 400.0
    offset_min: float = 2.2
    offset_max: float = 2.8
    attempts: int = 14
    min_separation_factor: float = 2.05


@dataclass
class FoodConfig:
    radius: float = 4.0
    nutrition: float = 25.0
    grow: FoodGrowConfig = field(default_factory=FoodGrowConfig)


@dataclass
class DeathConfig:
    nutrient_delay_ms: float = 8000.0
    pellets_min: int = 1
    pellets_max: int = 2
    predation_delay_factor: float = 0.5
    predation_min_delay_ms: float = 600.0
    predation_pellets: int = 1
    hatch_jitter: float = 3.0


@dataclass
class PredationConfig:
    nutrition_per_kill: float = 35.0
    bite_cooldown_ms: float = 450.0
    eat_factor: float = 1.0
    # hunting pauses above this fraction of max energy
    satiation_fraction: float = 0.8
    default_digestion_delay_ms: float = 250.0
    # collision separation leaves touching pairs at exactly the radius sum
    contact_tolerance: float = 1e-6


@dataclass
class CollisionConfig:
    restitution: float = 0.92
    loss_k: float = 0.6
    max_loss: float = 2.0
    soft_range: float = 1.15
    soft_k: float = 0.03


@dataclass
class SteeringConfig:
    reference_fps: float = 60.0
    wall_buffer_factor: float = 1.5
    wall_feel_factor: float = 3.0
    wall_feel_weight: float = 0.3
    path_sample_step: float = 10.0
    gap_search_factor: float = 6.0
    gap_search_steps: int = 8
    gap_alignment_weight: float = 3.0
    gap_strength: float = 1.5
    reflex_lookahead_factor: float = 2.0
    reflex_strength: float = 0.5
    reflex_min_speed: float = 0.1


def _grow_rates() -> Dict[int, float]:
    return {1: 6000.0, 2: 4500.0, 3: 3000.0, 4: 2000.0, 5: 1200.0}


def _decay_levels() -> Dict[int, float]:
    return {1: 2000.0, 2: 4000.0, 3: 6000.0, 4: 8000.0, 5: 10000.0}


def _auto_food_levels() -> Dict[int, float]:
    return {1: 3000.0, 2: 2000.0, 3: 1000.0}


@dataclass
class RateTables:
    grow_rate_ms: Dict[int, float] = field(default_factory=_grow_rates)
    grow_jitter_fraction: float = 0.25
    decay_ms: Dict[int, float] = field(default_factory=_decay_levels)
    auto_food_ms: Dict[int, float] = field(default_factory=_auto_food_levels)
    default_auto_food_ms: float = 2000.0


@dataclass
class ToolsConfig:
    kill_radius: float = 18.0
    bulk_spawn_max: int = 500


@dataclass
class SimulationConfig:
    width: float = 960.0
    height: float = 640.0
    time_step: float = 1.0 / 60.0
    grid_cell_size: float = 24.0
    obstacle_size: float = 24.0
    spawn_jitter: float = 4.0
    max_population: int = 2000
    history_sample_ms: float = 500.0
    history_length: int = 180
    seed: Optional[int] = None
    config_version: str = "v1"
    food: FoodConfig = field(default_factory=FoodConfig)
    death: DeathConfig = field(default_factory=DeathConfig)
    predation: PredationConfig = field(default_factory=PredationConfig)
    collision: CollisionConfig = field(default_factory=CollisionConfig)
    steering: SteeringConfig = field(default_factory=SteeringConfig)
    species: SpeciesTable = field(default_factory=SpeciesTable)
    priors: GenomePriors = field(default_factory=GenomePriors)
    rates: RateTables = field(default_factory=RateTables)
    tools: ToolsConfig = field(default_factory=ToolsConfig)

    @property
    def frame_ms(self) -> float:
        return self.time_step * 1000.0

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    broadcast_interval: int = 2
    scenario: str = "ecosystem"
    snapshot_queue_limit: int = 120


def _int_keyed(raw: dict | None, default: Dict[int, float]) -> Dict[int, float]:
    if not raw:
        return dict(default)
    merged = dict(default)
    for key, value in raw.items():
        merged[int(key)] = float(value)
    return merged


def _species_table(raw: dict) -> SpeciesTable:
    defaults = SpeciesTable()
    values = {}
    for entry in fields(SpeciesTable):
        section = raw.get(entry.name)
        base = getattr(defaults, entry.name)
        if section:
            values[entry.name] = SpeciesConfig(**{**base.__dict__, **section})
        else:
            values[entry.name] = base
    return SpeciesTable(**values)


def _genome_priors(raw: dict) -> GenomePriors:
    defaults = GenomePriors()
    values = {}
    for entry in fields(GenomePriors):
        section = raw.get(entry.name)
        base = getattr(defaults, entry.name)
        if section:
            base_values = {f.name: getattr(base, f.name) for f in fields(Genome)}
            values[entry.name] = Genome(**{**base_values, **section})
        else:
            values[entry.name] = base
    return GenomePriors(**values)


def load_config(raw: dict) -> SimulationConfig:
    food_raw = dict(raw.get("food", {}))
    grow = FoodGrowConfig(**food_raw.pop("grow", {}))
    food = FoodConfig(grow=grow, **food_raw)
    death = DeathConfig(**raw.get("death", {}))
    predation = PredationConfig(**raw.get("predation", {}))
    collision = CollisionConfig(**raw.get("collision", {}))
    steering = SteeringConfig(**raw.get("steering", {}))
    species = _species_table(raw.get("species", {}))
    priors = _genome_priors(raw.get("priors", {}))
    rates_raw = raw.get("rates", {})
    default_rates = RateTables()
    rates = RateTables(
        grow_rate_ms=_int_keyed(rates_raw.get("grow_rate_ms"), default_rates.grow_rate_ms),
        grow_jitter_fraction=float(rates_raw.get("grow_jitter_fraction", default_rates.grow_jitter_fraction)),
        decay_ms=_int_keyed(rates_raw.get("decay_ms"), default_rates.decay_ms),
        auto_food_ms=_int_keyed(rates_raw.get("auto_food_ms"), default_rates.auto_food_ms),
        default_auto_food_ms=float(rates_raw.get("default_auto_food_ms", default_rates.default_auto_food_ms)),
    )
    tools = ToolsConfig(**raw.get("tools", {}))
    nested = {"food", "death", "predation", "collision", "steering", "species", "priors", "rates", "tools"}
    sim_values = {k: v for k, v in raw.items() if k not in nested}
    return SimulationConfig(
        food=food,
        death=death,
        predation=predation,
        collision=collision,
        steering=steering,
        species=species,
        priors=priors,
        rates=rates,
        tools=tools,
        **sim_values,
    )
