from __future__ import annotations

import math
from typing import TYPE_CHECKING, Set

if TYPE_CHECKING:
    from ..world import World


def resolve_feeding(world: World, now_ms: float) -> int:
    """Each living prey eats at most one pellet in contact; first claim wins."""
    foods = world._foods
    if not foods:
        return 0
    grid = world._index_foods()
    config = world._config.food
    food_radius = config.radius
    nutrition = config.nutrition
    eaten: Set[int] = set()

    for agent in world._agents:
        if not agent.alive or agent.is_predator:
            continue
        reach = agent.genome.radius + food_radius
        for index in grid.query(agent.position):
            if index in eaten:
                continue
            food = foods[index]
            if math.hypot(food.position.x - agent.position.x, food.position.y - agent.position.y) > reach:
                continue
            eaten.add(index)
            agent.queue_digest(nutrition, now_ms + agent.genome.digestion_delay_ms)
            break

    if eaten:
        world._foods = [food for index, food in enumerate(foods) if index not in eaten]
    return len(eaten)
