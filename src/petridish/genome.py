from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Dict, Optional, Tuple

if TYPE_CHECKING:
    from .rng import RandomSource


TRAIT_RANGES: Dict[str, Tuple[float, float]] = {
    "radius": (4.0, 9.0),
    "max_speed": (1.1, 2.6),
    "acceleration": (0.045, 0.14),
    "friction": (0.93, 0.99),
    "digestion_delay_ms": (150.0, 1200.0),
    "repro_threshold": (50.0, 130.0),
    "repro_cost": (20.0, 70.0),
    "child_start_energy": (15.0, 60.0),
    "baseline_burn": (0.8, 2.0),
    "wall_avoidance": (0.0, 1.0),
    "mutation_rate": (0.0, 1.0),
}

DEFAULT_WALL_AVOIDANCE = 0.3
DEFAULT_MUTATION_RATE = 0.1

# symmetric fraction of the parent value a mutated trait may move by
MUTATION_RANGES: Dict[str, float] = {
    "radius": 0.10,
    "max_speed": 0.12,
    "acceleration": 0.15,
    "friction": 0.05,
    "digestion_delay_ms": 0.20,
    "repro_threshold": 0.15,
    "repro_cost": 0.15,
    "child_start_energy": 0.20,
    "baseline_burn": 0.12,
    "wall_avoidance": 0.15,
}

INTEGER_TRAITS = frozenset({"radius", "digestion_delay_ms", "repro_threshold", "repro_cost", "child_start_energy"})

HUE_WEIGHTS: Dict[str, float] = {
    "radius": 1.0,
    "max_speed": 1.2,
    "acceleration": 1.2,
    "friction": 0.8,
    "digestion_delay_ms": 0.6,
    "repro_threshold": 0.7,
    "repro_cost": 0.5,
    "child_start_energy": 0.5,
    "baseline_burn": 0.8,
}

HUE_SPAN = 26.0
HUE_JITTER = 1.0
HUE_MUTATION_MIN = 30.0
HUE_MUTATION_MAX = 60.0
ZERO_RATE_EPSILON = 1e-4
RATE_MUTATION_CHANCE = 0.05
RATE_MUTATION_RANGE = 0.10


@dataclass(slots=True)
class Genome:
    radius: float = 6
    max_speed: float = 1.9
    acceleration: float = 0.08
    friction: float = 0.96
    digestion_delay_ms: float = 300
    repro_threshold: float = 70
    repro_cost: float = 35
    child_start_energy: float = 25
    baseline_burn: float = 1.2
    wall_avoidance: Optional[float] = None
    mutation_rate: Optional[float] = None
    custom_hue: Optional[float] = None
    custom_cell_name: Optional[str] = None

    def copy(self) -> "Genome":
        return replace(self)

    def traits(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in TRAIT_RANGES}


def _clamp_value(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def clamp_genome(genome: Genome) -> Genome:
    """Return a copy with every trait forced into its published range."""
    clamped = genome.copy()
    if clamped.wall_avoidance is None:
        clamped.wall_avoidance = DEFAULT_WALL_AVOIDANCE
    if clamped.mutation_rate is None:
        clamped.mutation_rate = DEFAULT_MUTATION_RATE
    for name, bounds in TRAIT_RANGES.items():
        setattr(clamped, name, _clamp_value(float(getattr(clamped, name)), bounds))
    if clamped.custom_hue is not None:
        clamped.custom_hue = float(clamped.custom_hue) % 360.0
    return clamped


def genetic_signature(genome: Genome) -> float:
    numerator = 0.0
    denominator = 0.0
    for name, weight in HUE_WEIGHTS.items():
        low, high = TRAIT_RANGES[name]
        norm = (getattr(genome, name) - low) / (high - low)
        numerator += max(0.0, min(1.0, norm)) * weight
        denominator += weight
    return numerator / denominator if denominator else 0.5


def derive_hue(genome: Genome, base_hue: float, rng: "RandomSource") -> float:
    # 0 is a valid custom hue, so test against None
    if genome.custom_hue is not None:
        return genome.custom_hue % 360.0
    signature = genetic_signature(genome)
    hue = base_hue + (signature - 0.5) * HUE_SPAN + rng.next_signed() * HUE_JITTER
    return hue % 360.0


def _perturb(value: float, name: str, rate: float, rng: "RandomSource") -> float:
    effective_range = MUTATION_RANGES[name] * (0.5 + 0.5 * rate)
    delta = rng.next_signed() * effective_range
    mutated = _clamp_value(value * (1.0 + delta), TRAIT_RANGES[name])
    if name in INTEGER_TRAITS:
        return float(round(mutated))
    return mutated


def mutate(parent: Genome, rng: "RandomSource") -> Genome:
    """Produce a child genome.

    Every mutable trait flips its own coin with probability ``mutation_rate``;
    a hit moves the trait by at most ``range * (0.5 + 0.5 * rate)`` of the
    parent value. The rate itself drifts with a fixed 5% chance.
    """
    rate = parent.mutation_rate if parent.mutation_rate is not None else DEFAULT_MUTATION_RATE
    if rate <= 0.0 or abs(rate) < ZERO_RATE_EPSILON:
        exact = parent.copy()
        exact.mutation_rate = 0.0
        return exact

    child = clamp_genome(parent)
    for name in MUTATION_RANGES:
        if rng.next_float() < rate:
            setattr(child, name, _perturb(getattr(child, name), name, rate, rng))

    if parent.custom_hue is not None and rng.next_float() < rate:
        hue_range = HUE_MUTATION_MIN + (HUE_MUTATION_MAX - HUE_MUTATION_MIN) * rate
        child.custom_hue = (parent.custom_hue + rng.next_signed() * hue_range) % 360.0

    if rng.next_float() < RATE_MUTATION_CHANCE:
        drift = rng.next_signed() * RATE_MUTATION_RANGE
        new_rate = _clamp_value(rate * (1.0 + drift), TRAIT_RANGES["mutation_rate"])
        child.mutation_rate = 0.0 if new_rate < ZERO_RATE_EPSILON else new_rate
    else:
        child.mutation_rate = rate
    return child
