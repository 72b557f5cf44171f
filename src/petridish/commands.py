from __future__ import annotations

import re
from typing import List

from .agent import AgentKind
from .world import World

_KINDS = "|".join(kind.value for kind in AgentKind)

SPAWN_RE = re.compile(rf"^\s*spawn\s+(food|{_KINDS})\s+(\d+)\s*$", re.IGNORECASE)
GROW_RE = re.compile(r"^\s*grow\s+rate\s+([0-5])\s*$", re.IGNORECASE)
DECAY_RE = re.compile(r"^\s*decay\s+([1-5])\s*$", re.IGNORECASE)
AUTO_FOOD_RE = re.compile(r"^\s*auto\s+food\s+([1-3])\s*$", re.IGNORECASE)
WIPE_RE = re.compile(rf"^\s*wipe(?:\s+(food|{_KINDS}))?\s*$", re.IGNORECASE)
HELP_RE = re.compile(r"^\s*help\s*$", re.IGNORECASE)

HELP_LINES = (
    "spawn food N | spawn blue N | spawn purple N | spawn red N",
    "grow rate 0-5 (0=off, 1=slow ... 5=fast) | decay 1-5 (corpse->food delay)",
    "auto food 1-3 (slow..fast) | wipe | wipe food | wipe blue|purple|red",
)


def execute_command(world: World, text: str) -> List[str]:
    """Run one console line against ``world`` and return the response lines.

    Malformed input never raises; it yields an ``unknown command`` line and
    leaves the world untouched.
    """
    match = SPAWN_RE.match(text)
    if match:
        target = match.group(1).lower()
        count = max(1, min(world.config.tools.bulk_spawn_max, int(match.group(2))))
        if target == "food":
            world.spawn_random_food(count)
            return [f"spawned {count} food pellets"]
        world.spawn_random_agents(target, count)
        return [f"spawned {count} {target} cells"]

    match = GROW_RE.match(text)
    if match:
        rate = int(match.group(1))
        interval = world.set_food_grow_rate(rate)
        if interval:
            return [f"food growth rate set to {rate} ({interval:.0f} ms between buds)"]
        return ["food growth disabled"]

    match = DECAY_RE.match(text)
    if match:
        level = int(match.group(1))
        delay = world.set_decay_level(level)
        return [f"decay set to {level} ({delay:.0f} ms corpse->food)"]

    match = AUTO_FOOD_RE.match(text)
    if match:
        level = int(match.group(1))
        interval = world.set_auto_food_level(level, enable=True)
        return [f"auto food set to {level} ({interval:.0f} ms)"]

    match = WIPE_RE.match(text)
    if match:
        target = match.group(1).lower() if match.group(1) else None
        if target is None:
            world.wipe_all()
            return ["wiped all (cells, food, corpses, pending)"]
        if target == "food":
            world.wipe_food_only()
            return ["wiped food only"]
        removed = world.wipe_agents_of_kind(target)
        return [f"wiped {removed} {target} cells"]

    if HELP_RE.match(text):
        return list(HELP_LINES)

    return [f"unknown command: {text}"]
