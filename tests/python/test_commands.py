from __future__ import annotations

import math

import pytest
from pygame.math import Vector2

from petridish.agent import AgentKind
from petridish.commands import HELP_LINES, execute_command
from petridish.config import SimulationConfig
from petridish.rng import RandomSource
from petridish.world import World


@pytest.fixture
def world() -> World:
    return World(SimulationConfig(), rng=RandomSource(8))


def test_spawn_food_and_cells(world):
    assert execute_command(world, "spawn food 12") == ["spawned 12 food pellets"]
    assert len(world.foods) == 12

    assert execute_command(world, "SPAWN Purple 3") == ["spawned 3 purple cells"]
    assert world.counts()["purple"] == 3


def test_spawn_count_is_clamped(world):
    assert execute_command(world, "spawn food 0") == ["spawned 1 food pellets"]
    assert len(world.foods) == 1

    limit = world.config.tools.bulk_spawn_max
    assert execute_command(world, "spawn food 9999") == [f"spawned {limit} food pellets"]
    assert len(world.foods) == 1 + limit


def test_grow_rate(world):
    world.spawn_food(Vector2(100, 100))
    response = execute_command(world, "grow rate 5")
    assert response == ["food growth rate set to 5 (1200 ms between buds)"]
    grow = world.config.food.grow
    assert grow.enabled
    assert grow.interval_ms == 1200.0
    assert grow.jitter_ms == 300

    assert execute_command(world, "grow rate 0") == ["food growth disabled"]
    assert not world.config.food.grow.enabled
    assert math.isinf(world.foods[0].next_grow_ms)


def test_decay_sets_future_nutrient_delay(world):
    assert execute_command(world, "decay 1") == ["decay set to 1 (2000 ms corpse->food)"]
    assert world.config.death.nutrient_delay_ms == 2000.0
    assert execute_command(world, "decay 5") == ["decay set to 5 (10000 ms corpse->food)"]
    assert world.config.death.nutrient_delay_ms == 10000.0


def test_auto_food_enables_timer(world):
    assert not world.auto_food_enabled
    assert execute_command(world, "auto food 3") == ["auto food set to 3 (1000 ms)"]
    assert world.auto_food_enabled
    assert world.auto_food_interval_ms == 1000.0


def test_wipe_variants(world):
    world.spawn_random_agents(AgentKind.PREY_A, 4)
    world.spawn_random_agents(AgentKind.PREDATOR, 2)
    world.spawn_random_food(5)
    world.place_obstacle(3, 3)

    assert execute_command(world, "wipe red") == ["wiped 2 red cells"]
    assert world.counts()["red"] == 0
    assert world.counts()["blue"] == 4

    assert execute_command(world, "wipe food") == ["wiped food only"]
    assert world.foods == []
    assert len(world.agents) == 4

    assert execute_command(world, "wipe") == ["wiped all (cells, food, corpses, pending)"]
    assert world.agents == []
    assert len(world.obstacles) == 1


def test_help_lists_every_command(world):
    lines = execute_command(world, "  help ")
    assert lines == list(HELP_LINES)
    text = " ".join(lines)
    for word in ("spawn", "grow rate", "decay", "auto food", "wipe"):
        assert word in text


@pytest.mark.parametrize(
    "text",
    [
        "",
        "dance",
        "spawn green 3",
        "spawn food",
        "spawn food -2",
        "grow rate 6",
        "decay 0",
        "auto food 4",
        "wipe everything",
    ],
)
def test_malformed_input_is_reported_and_changes_nothing(world, text):
    world.spawn_food(Vector2(50, 50))
    before = (len(world.foods), len(world.agents), world.config.death.nutrient_delay_ms, world.auto_food_enabled)

    assert execute_command(world, text) == [f"unknown command: {text}"]

    after = (len(world.foods), len(world.agents), world.config.death.nutrient_delay_ms, world.auto_food_enabled)
    assert after == before
