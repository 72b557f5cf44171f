from __future__ import annotations

import math
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from pygame.math import Vector2

from ..agent import Agent
from ..config import SpeciesConfig, SteeringConfig
from ..environment import Food, Obstacle
from ..genome import mutate

if TYPE_CHECKING:
    from ..world import World

COMPASS_ANGLES: Tuple[float, ...] = tuple(i * math.pi / 4.0 for i in range(8))


def _hunger(agent: Agent, species: SpeciesConfig) -> float:
    fullness = min(1.0, agent.energy / (agent.max_energy * species.satiation_fraction))
    return species.hunger_base + (1.0 - species.hunger_base) * (1.0 - fullness)


def speed_limit(agent: Agent, species: SpeciesConfig) -> float:
    fullness = min(1.0, agent.energy / (agent.max_energy * species.satiation_fraction))
    return agent.genome.max_speed * (0.75 + 0.25 * fullness)


def nearest_predator(agent: Agent, agents: Sequence[Agent]) -> Tuple[Optional[Agent], float]:
    best: Optional[Agent] = None
    best_d2 = math.inf
    px = agent.position.x
    py = agent.position.y
    for other in agents:
        if other is agent or not other.alive or not other.is_predator:
            continue
        dx = other.position.x - px
        dy = other.position.y - py
        d2 = dx * dx + dy * dy
        if d2 < best_d2:
            best_d2 = d2
            best = other
    return best, best_d2


def nearest_prey(agent: Agent, agents: Sequence[Agent]) -> Optional[Agent]:
    best: Optional[Agent] = None
    best_d2 = math.inf
    px = agent.position.x
    py = agent.position.y
    for other in agents:
        if other is agent or not other.alive or other.is_predator:
            continue
        dx = other.position.x - px
        dy = other.position.y - py
        d2 = dx * dx + dy * dy
        if d2 < best_d2:
            best_d2 = d2
            best = other
    return best


def nearest_food(agent: Agent, foods: Sequence[Food]) -> Optional[Food]:
    best: Optional[Food] = None
    best_d2 = math.inf
    px = agent.position.x
    py = agent.position.y
    for food in foods:
        dx = food.position.x - px
        dy = food.position.y - py
        d2 = dx * dx + dy * dy
        if d2 < best_d2:
            best_d2 = d2
            best = food
    return best


def evade(agent: Agent, agents: Sequence[Agent], species: SpeciesConfig) -> float:
    """Push the agent away from the nearest predator; returns the threat level in [0, 1]."""
    predator, d2 = nearest_predator(agent, agents)
    if predator is None or species.threat_radius <= 0.0:
        return 0.0
    dist = math.sqrt(d2) or 1.0
    threat = max(0.0, min(1.0, (species.threat_radius - dist) / species.threat_radius))
    if threat <= 0.0:
        return 0.0
    away_x = -(predator.position.x - agent.position.x) / dist
    away_y = -(predator.position.y - agent.position.y) / dist
    scale = agent.genome.acceleration * species.evasion * threat
    agent.velocity.x += away_x * scale
    agent.velocity.y += away_y * scale
    return threat


def _toward(origin: Vector2, target: Vector2, scale: float) -> Tuple[float, float]:
    dx = target.x - origin.x
    dy = target.y - origin.y
    dist = math.sqrt(dx * dx + dy * dy) or 1.0
    return dx / dist * scale, dy / dist * scale


def wall_repulsion(
    agent: Agent, blocks: Sequence[Obstacle], steering: SteeringConfig
) -> Tuple[float, float]:
    radius = agent.genome.radius
    buffer_dist = radius * steering.wall_buffer_factor
    feel_dist = radius * steering.wall_feel_factor
    strength_base = agent.genome.wall_avoidance
    accel = agent.genome.acceleration
    x = agent.position.x
    y = agent.position.y
    repel_x = 0.0
    repel_y = 0.0
    for block in blocks:
        cx, cy = block.closest_point(x, y)
        dx = x - cx
        dy = y - cy
        dist = math.sqrt(dx * dx + dy * dy) or 1.0
        if dist >= feel_dist:
            continue
        strength = strength_base * (1.0 - dist / feel_dist)
        if dist < buffer_dist:
            weight = 1.0 + (buffer_dist - dist) / buffer_dist
        else:
            weight = steering.wall_feel_weight
        repel_x += dx / dist * accel * strength * weight
        repel_y += dy / dist * accel * strength * weight
    return repel_x, repel_y


def _footprint_hit(blocks: Sequence[Obstacle], x: float, y: float, radius: float) -> bool:
    for block in blocks:
        if block.overlaps_box(x, y, radius):
            return True
    return False


def path_blocked(
    origin: Vector2, target: Vector2, radius: float, blocks: Sequence[Obstacle], step: float
) -> bool:
    dx = target.x - origin.x
    dy = target.y - origin.y
    dist = math.sqrt(dx * dx + dy * dy)
    samples = math.ceil(dist / step)
    for s in range(1, samples + 1):
        if _footprint_hit(blocks, origin.x + dx / samples * s, origin.y + dy / samples * s, radius):
            return True
    return False


def best_gap_angle(
    origin: Vector2,
    target: Vector2,
    radius: float,
    blocks: Sequence[Obstacle],
    steering: SteeringConfig,
) -> Optional[float]:
    """Pick the compass heading with a clear sampled path that best lines up with the target."""
    dx = target.x - origin.x
    dy = target.y - origin.y
    dist = math.sqrt(dx * dx + dy * dy)
    if dist <= 0.0:
        return None
    dir_x = dx / dist
    dir_y = dy / dist
    search_radius = radius * steering.gap_search_factor
    steps = steering.gap_search_steps
    best_angle: Optional[float] = None
    best_score = -math.inf
    for angle in COMPASS_ANGLES:
        cos_a = math.cos(angle)
        sin_a = math.sin(angle)
        clear = True
        for s in range(1, steps + 1):
            reach = search_radius * s / steps
            if _footprint_hit(blocks, origin.x + cos_a * reach, origin.y + sin_a * reach, radius):
                clear = False
                break
        if not clear:
            continue
        score = 1.0 + (cos_a * dir_x + sin_a * dir_y) * steering.gap_alignment_weight
        if score > best_score:
            best_score = score
            best_angle = angle
    return best_angle


def unblock_path(
    agent: Agent, target: Vector2, blocks: Sequence[Obstacle], steering: SteeringConfig
) -> Tuple[float, float]:
    radius = agent.genome.radius
    if not path_blocked(agent.position, target, radius, blocks, steering.path_sample_step):
        return 0.0, 0.0
    angle = best_gap_angle(agent.position, target, radius, blocks, steering)
    if angle is None:
        return 0.0, 0.0
    scale = agent.genome.acceleration * agent.genome.wall_avoidance * steering.gap_strength
    return math.cos(angle) * scale, math.sin(angle) * scale


def obstacle_reflex(agent: Agent, blocks: Sequence[Obstacle], steering: SteeringConfig) -> None:
    velocity = agent.velocity
    speed = math.hypot(velocity.x, velocity.y)
    if speed <= steering.reflex_min_speed:
        return
    radius = agent.genome.radius
    dir_x = velocity.x / speed
    dir_y = velocity.y / speed
    lookahead = radius * steering.reflex_lookahead_factor
    ahead_x = agent.position.x + dir_x * lookahead
    ahead_y = agent.position.y + dir_y * lookahead
    for block in blocks:
        if not block.overlaps_box(ahead_x, ahead_y, radius):
            continue
        center = block.center
        to_block_x = center.x - agent.position.x
        to_block_y = center.y - agent.position.y
        perp_x = -dir_y
        perp_y = dir_x
        side = -1.0 if to_block_x * perp_x + to_block_y * perp_y > 0.0 else 1.0
        scale = agent.genome.acceleration * agent.genome.wall_avoidance * steering.reflex_strength
        velocity.x += perp_x * side * scale
        velocity.y += perp_y * side * scale
        break


def contain(agent: Agent, width: float, height: float) -> None:
    radius = agent.genome.radius
    position = agent.position
    velocity = agent.velocity
    if position.x < radius:
        position.x = radius
        velocity.x = abs(velocity.x)
    if position.x > width - radius:
        position.x = width - radius
        velocity.x = -abs(velocity.x)
    if position.y < radius:
        position.y = radius
        velocity.y = abs(velocity.y)
    if position.y > height - radius:
        position.y = height - radius
        velocity.y = -abs(velocity.y)


def push_out(agent: Agent, blocks: Sequence[Obstacle]) -> None:
    radius = agent.genome.radius
    position = agent.position
    velocity = agent.velocity
    for block in blocks:
        if not block.overlaps_box(position.x, position.y, radius):
            continue
        left = block.x
        top = block.y
        right = left + block.size
        bottom = top + block.size
        overlap_x = min(position.x + radius - left, right - (position.x - radius))
        overlap_y = min(position.y + radius - top, bottom - (position.y - radius))
        if overlap_x < overlap_y:
            if position.x < left + block.size * 0.5:
                position.x = left - radius
                velocity.x = -abs(velocity.x) * 0.5
            else:
                position.x = right + radius
                velocity.x = abs(velocity.x) * 0.5
        else:
            if position.y < top + block.size * 0.5:
                position.y = top - radius
                velocity.y = -abs(velocity.y) * 0.5
            else:
                position.y = bottom + radius
                velocity.y = abs(velocity.y) * 0.5


def update_agent(world: World, agent: Agent, now_ms: float, blocks: List[Obstacle]) -> None:
    if not agent.alive:
        return
    config = world._config
    steering = config.steering
    species = world.species_for(agent.kind)
    genome = agent.genome
    accel = genome.acceleration
    velocity = agent.velocity

    agent.process_digestion(now_ms)

    threat = evade(agent, world._agents, species) if species.flees_predators else 0.0

    seek_x = 0.0
    seek_y = 0.0
    food_target: Optional[Food] = None
    if species.hunts_others:
        prey = nearest_prey(agent, world._agents)
        if prey is not None:
            seek_x, seek_y = _toward(agent.position, prey.position, accel * _hunger(agent, species))
        elif species.search_jitter > 0.0:
            seek_x = world._rng.next_signed() * 0.5 * species.search_jitter
            seek_y = world._rng.next_signed() * 0.5 * species.search_jitter
    else:
        food_target = nearest_food(agent, world._foods)
        if food_target is not None:
            scale = accel * _hunger(agent, species) * (1.0 - species.threat_seek_damping * threat)
            seek_x, seek_y = _toward(agent.position, food_target.position, scale)

    avoid_x = 0.0
    avoid_y = 0.0
    path_x = 0.0
    path_y = 0.0
    steer_around = bool(blocks) and genome.wall_avoidance > 0.0
    if steer_around:
        avoid_x, avoid_y = wall_repulsion(agent, blocks, steering)
        if food_target is not None:
            path_x, path_y = unblock_path(agent, food_target.position, blocks, steering)

    velocity.x += seek_x + avoid_x + path_x
    velocity.y += seek_y + avoid_y + path_y

    if steer_around:
        obstacle_reflex(agent, blocks, steering)

    velocity.x *= genome.friction
    velocity.y *= genome.friction
    speed = math.hypot(velocity.x, velocity.y)
    limit = speed_limit(agent, species)
    if speed > limit:
        velocity.scale_to_length(limit)
        speed = limit

    agent.position.x += velocity.x
    agent.position.y += velocity.y

    contain(agent, config.width, config.height)
    if blocks:
        push_out(agent, blocks)

    reference_fps = steering.reference_fps
    agent.energy -= (
        genome.baseline_burn / reference_fps
        + speed * species.move_cost / reference_fps
        + (genome.radius - 6.0) * species.size_cost
    )
    if agent.energy <= 0.0:
        agent.alive = False


def try_reproduce(world: World, agent: Agent, now_ms: float) -> Optional[Agent]:
    species = world.species_for(agent.kind)
    genome = agent.genome
    if agent.energy < genome.repro_threshold:
        return None
    if now_ms - agent.last_repro_ms < species.repro_cooldown_ms:
        return None
    if agent.energy - genome.repro_cost < species.min_viable_energy:
        return None

    agent.energy -= genome.repro_cost
    agent.last_repro_ms = now_ms

    config = world._config
    rng = world._rng
    radius = genome.radius
    jitter = config.spawn_jitter
    x = max(radius, min(config.width - radius, agent.position.x + rng.next_signed() * jitter))
    y = max(radius, min(config.height - radius, agent.position.y + rng.next_signed() * jitter))

    child = world._create_agent(agent.kind, Vector2(x, y), mutate(genome, rng), generation=agent.generation + 1)
    child.energy = min(child.max_energy, child.genome.child_start_energy)
    return child
