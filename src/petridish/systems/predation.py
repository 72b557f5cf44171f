from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..world import World


def resolve_predation(world: World, now_ms: float) -> int:
    """Let every hungry, rested predator take the first prey in contact.

    Returns the number of kills.
    """
    agents = world._agents
    grid = world._index_agents()
    config = world._config.predation
    kills = 0
    for index, predator in enumerate(agents):
        if not predator.alive or not predator.is_predator:
            continue
        if now_ms - predator.last_bite_ms < config.bite_cooldown_ms:
            continue
        if predator.energy > predator.max_energy * config.satiation_fraction:
            continue
        radius = predator.genome.radius
        for j in grid.query(predator.position):
            if j == index:
                continue
            prey = agents[j]
            if not prey.alive or prey.is_predator:
                continue
            dist = math.hypot(prey.position.x - predator.position.x, prey.position.y - predator.position.y)
            if dist > (radius + prey.genome.radius) * config.eat_factor + config.contact_tolerance:
                continue
            prey.alive = False
            prey.killed = True
            predator.last_bite_ms = now_ms
            delay = prey.genome.digestion_delay_ms or config.default_digestion_delay_ms
            predator.queue_digest(config.nutrition_per_kill, now_ms + delay)
            kills += 1
            break
    return kills
