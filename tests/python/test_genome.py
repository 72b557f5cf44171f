from __future__ import annotations

import math

import pytest

from petridish.genome import (
    DEFAULT_MUTATION_RATE,
    DEFAULT_WALL_AVOIDANCE,
    INTEGER_TRAITS,
    MUTATION_RANGES,
    TRAIT_RANGES,
    Genome,
    clamp_genome,
    derive_hue,
    genetic_signature,
    mutate,
)
from petridish.rng import RandomSource


def _assert_within_ranges(genome: Genome) -> None:
    for name, (low, high) in TRAIT_RANGES.items():
        value = getattr(genome, name)
        assert low <= value <= high, f"{name}={value} outside [{low}, {high}]"


def test_clamp_fills_defaults_and_bounds_every_trait():
    wild = Genome(
        radius=40,
        max_speed=-3.0,
        acceleration=1.0,
        friction=0.5,
        digestion_delay_ms=10,
        repro_threshold=500,
        repro_cost=1,
        child_start_energy=999,
        baseline_burn=0.0,
        custom_hue=-30.0,
    )
    clamped = clamp_genome(wild)

    _assert_within_ranges(clamped)
    assert clamped.radius == 9.0
    assert clamped.max_speed == 1.1
    assert clamped.wall_avoidance == DEFAULT_WALL_AVOIDANCE
    assert clamped.mutation_rate == DEFAULT_MUTATION_RATE
    assert clamped.custom_hue == pytest.approx(330.0)
    # the input is left alone
    assert wild.radius == 40
    assert wild.wall_avoidance is None


def test_clamp_holds_for_random_genomes():
    rng = RandomSource(11)
    for _ in range(200):
        values = {
            name: rng.next_range(low - (high - low), high + (high - low))
            for name, (low, high) in TRAIT_RANGES.items()
        }
        _assert_within_ranges(clamp_genome(Genome(**values)))


def test_zero_mutation_rate_returns_exact_copy():
    rng = RandomSource(3)
    parent = clamp_genome(Genome(mutation_rate=0.0, custom_hue=0.0, custom_cell_name="lab strain"))
    for _ in range(50):
        child = mutate(parent, rng)
        assert child == parent
        assert child is not parent
        assert child.custom_hue == 0.0
        assert child.custom_cell_name == "lab strain"


def test_near_zero_rate_snaps_to_zero():
    parent = clamp_genome(Genome(mutation_rate=5e-5))
    child = mutate(parent, RandomSource(1))
    assert child.mutation_rate == 0.0
    assert child.traits() | {"mutation_rate": 5e-5} == parent.traits()


def test_mutation_never_leaves_clamp_ranges():
    rng = RandomSource(5)
    genome = clamp_genome(Genome(mutation_rate=1.0))
    for _ in range(500):
        genome = mutate(genome, rng)
        _assert_within_ranges(genome)
        genome.mutation_rate = 1.0


@pytest.mark.parametrize("rate", [0.1, 0.5])
def test_each_trait_mutates_independently_within_bounds(rate):
    rng = RandomSource(2024)
    parent = clamp_genome(Genome(mutation_rate=rate))
    trials = 2000
    changed = {name: 0 for name in MUTATION_RANGES}

    for _ in range(trials):
        child = mutate(parent, rng)
        _assert_within_ranges(child)
        for name, base_range in MUTATION_RANGES.items():
            before = getattr(parent, name)
            after = getattr(child, name)
            if after == before:
                continue
            changed[name] += 1
            spread = base_range * (0.5 + 0.5 * rate)
            low = max(TRAIT_RANGES[name][0], before * (1.0 - spread))
            high = min(TRAIT_RANGES[name][1], before * (1.0 + spread))
            slack = 0.5 if name in INTEGER_TRAITS else 1e-9
            assert low - slack <= after <= high + slack

    for name, count in changed.items():
        # integer traits can round back onto the parent value, so only bound from above there
        sigma = math.sqrt(trials * rate * (1.0 - rate))
        assert count <= trials * rate + 5 * sigma, name
        if name not in INTEGER_TRAITS:
            assert count >= trials * rate - 5 * sigma, name


def test_traits_do_not_shift_together():
    rng = RandomSource(99)
    parent = clamp_genome(Genome(mutation_rate=0.5))
    partial = 0
    for _ in range(200):
        child = mutate(parent, rng)
        moved = sum(1 for name in MUTATION_RANGES if getattr(child, name) != getattr(parent, name))
        if 0 < moved < len(MUTATION_RANGES):
            partial += 1
    assert partial > 150


def test_custom_hue_drifts_on_mutation_roll_only():
    rng = RandomSource(8)
    parent = clamp_genome(Genome(mutation_rate=1.0, custom_hue=350.0))
    child = mutate(parent, rng)
    assert child.custom_hue != parent.custom_hue
    shift = min(abs(child.custom_hue - 350.0), 360.0 - abs(child.custom_hue - 350.0))
    assert shift <= 60.0 + 1e-9
    assert 0.0 <= child.custom_hue < 360.0


def test_mutation_rate_itself_drifts_rarely():
    rng = RandomSource(17)
    parent = clamp_genome(Genome(mutation_rate=0.2))
    drifted = 0
    trials = 2000
    for _ in range(trials):
        child = mutate(parent, rng)
        if child.mutation_rate != parent.mutation_rate:
            drifted += 1
            assert 0.2 * 0.9 - 1e-12 <= child.mutation_rate <= 0.2 * 1.1 + 1e-12
    assert 0.02 * trials < drifted < 0.08 * trials


def test_custom_hue_zero_is_honoured():
    genome = clamp_genome(Genome(custom_hue=0.0))
    assert derive_hue(genome, 210.0, RandomSource(1)) == 0.0


def test_derived_hue_stays_near_base():
    rng = RandomSource(4)
    for radius in (4, 9):
        genome = clamp_genome(Genome(radius=radius))
        hue = derive_hue(genome, 210.0, rng)
        assert 210.0 - 14.0 <= hue <= 210.0 + 14.0


def test_signature_orders_by_trait_values():
    low = clamp_genome(Genome(**{name: TRAIT_RANGES[name][0] for name in TRAIT_RANGES}))
    high = clamp_genome(Genome(**{name: TRAIT_RANGES[name][1] for name in TRAIT_RANGES}))
    assert genetic_signature(low) == pytest.approx(0.0)
    assert genetic_signature(high) == pytest.approx(1.0)
    # wraps below zero
    assert 0.0 <= derive_hue(low, 5.0, RandomSource(2)) < 360.0
