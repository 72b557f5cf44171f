from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Set, Tuple

if TYPE_CHECKING:
    from ..world import World


@dataclass(slots=True)
class CollisionReport:
    pairs_checked: int = 0
    contacts: int = 0
    impulses: int = 0


def resolve_collisions(world: World) -> CollisionReport:
    """Soft repulsion, overlap split and equal-mass impulse for every nearby pair.

    Each unordered pair is handled once; ``visited`` guards against a pair
    showing up through two overlapping neighbourhoods.
    """
    report = CollisionReport()
    agents = world._agents
    grid = world._index_agents()

    config = world._config.collision
    restitution = config.restitution
    soft_range = config.soft_range
    soft_k = config.soft_k
    loss_k = config.loss_k
    max_loss = config.max_loss
    visited: Set[Tuple[int, int]] = set()

    for key in grid.occupied_keys():
        home = grid.bucket(key)
        for bucket in grid.neighborhood(key):
            for i in home:
                for j in bucket:
                    if i >= j:
                        continue
                    pair = (i, j)
                    if pair in visited:
                        continue
                    visited.add(pair)
                    a = agents[i]
                    b = agents[j]
                    if not a.alive or not b.alive:
                        continue

                    dx = b.position.x - a.position.x
                    dy = b.position.y - a.position.y
                    dist = math.hypot(dx, dy) or 1e-6
                    nx = dx / dist
                    ny = dy / dist
                    sum_r = a.genome.radius + b.genome.radius

                    if dist < sum_r * soft_range:
                        repel = (sum_r * soft_range - dist) * soft_k
                        a.velocity.x -= nx * repel
                        a.velocity.y -= ny * repel
                        b.velocity.x += nx * repel
                        b.velocity.y += ny * repel

                    if dist >= sum_r:
                        continue
                    report.contacts += 1

                    correction = (sum_r - dist) * 0.5
                    a.position.x -= nx * correction
                    a.position.y -= ny * correction
                    b.position.x += nx * correction
                    b.position.y += ny * correction

                    vn = (b.velocity.x - a.velocity.x) * nx + (b.velocity.y - a.velocity.y) * ny
                    # non-negative means the pair is already separating
                    if vn >= 0.0:
                        continue
                    impulse = -(1.0 + restitution) * vn / 2.0
                    a.velocity.x -= impulse * nx
                    a.velocity.y -= impulse * ny
                    b.velocity.x += impulse * nx
                    b.velocity.y += impulse * ny
                    report.impulses += 1

                    loss = min(max_loss, abs(vn) * loss_k)
                    a.energy = max(0.0, a.energy - loss)
                    b.energy = max(0.0, b.energy - loss)

    report.pairs_checked = len(visited)
    return report
