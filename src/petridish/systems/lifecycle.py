from __future__ import annotations

import heapq
import math
from typing import TYPE_CHECKING, List

from pygame.math import Vector2

from ..agent import Agent
from ..environment import Corpse, PendingNutrient

if TYPE_CHECKING:
    from ..world import World


def collect_dead(world: World, now_ms: float) -> int:
    """Drop dead agents, leaving a corpse and a scheduled nutrient for each."""
    death = world._config.death
    rng = world._rng
    survivors: List[Agent] = []
    deaths = 0
    for agent in world._agents:
        if agent.alive:
            survivors.append(agent)
            continue
        deaths += 1
        if agent.killed:
            # predation leaves a small, quick drip
            delay = max(death.predation_min_delay_ms, death.nutrient_delay_ms * death.predation_delay_factor)
            release_at = now_ms + delay
            count = death.predation_pellets
        else:
            release_at = now_ms + death.nutrient_delay_ms
            count = rng.next_int(death.pellets_min, death.pellets_max)
        position = Vector2(agent.position)
        heapq.heappush(world._nutrients, PendingNutrient(release_at, position, count))
        heapq.heappush(world._corpses, Corpse(release_at, Vector2(position), agent.genome.radius, agent.hue))
    world._agents = survivors
    return deaths


def hatch_nutrients(world: World, now_ms: float) -> int:
    config = world._config
    margin = config.food.radius
    jitter = config.death.hatch_jitter
    rng = world._rng
    nutrients = world._nutrients
    hatched = 0
    while nutrients and nutrients[0].ready_at_ms <= now_ms:
        nutrient = heapq.heappop(nutrients)
        for _ in range(nutrient.count):
            x = nutrient.position.x + rng.next_signed() * jitter
            y = nutrient.position.y + rng.next_signed() * jitter
            x = max(margin, min(config.width - margin, x))
            y = max(margin, min(config.height - margin, y))
            if world.spawn_food(Vector2(x, y), now_ms):
                hatched += 1
    return hatched


def grow_food(world: World, now_ms: float) -> int:
    """Budding: each pellet past its growth time tries to place one neighbour.

    Pellets added during this pass do not grow until a later tick.
    """
    config = world._config
    grow = config.food.grow
    if not grow.enabled or not world._foods:
        return 0
    radius = config.food.radius
    min_sep = radius * grow.min_separation_factor
    min_sep_sq = min_sep * min_sep
    near = radius * grow.offset_min
    far = radius * grow.offset_max
    rng = world._rng
    foods = world._foods
    grid = world._index_foods()

    grown = 0
    for index in range(len(foods)):
        food = foods[index]
        if now_ms < food.next_grow_ms:
            continue
        # rescheduled whether or not a bud lands
        food.next_grow_ms = world._next_grow_time(now_ms)
        for _ in range(grow.attempts):
            angle = rng.next_angle()
            dist = rng.next_range(near, far)
            x = max(radius, min(config.width - radius, food.position.x + math.cos(angle) * dist))
            y = max(radius, min(config.height - radius, food.position.y + math.sin(angle) * dist))
            candidate = Vector2(x, y)
            crowded = False
            for other in grid.query(candidate):
                other_pos = foods[other].position
                dx = other_pos.x - x
                dy = other_pos.y - y
                if dx * dx + dy * dy < min_sep_sq:
                    crowded = True
                    break
            if crowded:
                continue
            if world.spawn_food(candidate, now_ms):
                grid.insert(len(foods) - 1, candidate)
                grown += 1
                break
    return grown


def expire_corpses(world: World, now_ms: float) -> int:
    corpses = world._corpses
    expired = 0
    while corpses and corpses[0].remove_at_ms <= now_ms:
        heapq.heappop(corpses)
        expired += 1
    return expired
