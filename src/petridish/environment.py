from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from pygame.math import Vector2


@dataclass(slots=True)
class Food:
    position: Vector2
    next_grow_ms: float = math.inf


@dataclass(frozen=True, slots=True)
class Obstacle:
    col: int
    row: int
    size: float

    @property
    def cell(self) -> Tuple[int, int]:
        return (self.col, self.row)

    @property
    def x(self) -> float:
        return self.col * self.size

    @property
    def y(self) -> float:
        return self.row * self.size

    @property
    def center(self) -> Vector2:
        half = self.size * 0.5
        return Vector2(self.x + half, self.y + half)

    def contains_point(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.size and self.y <= y <= self.y + self.size

    def overlaps_box(self, x: float, y: float, radius: float) -> bool:
        """Treat the circle as its bounding box; strict inequality so touching is clear."""
        left = self.x
        top = self.y
        return (
            x + radius > left
            and x - radius < left + self.size
            and y + radius > top
            and y - radius < top + self.size
        )

    def closest_point(self, x: float, y: float) -> Tuple[float, float]:
        return (
            max(self.x, min(x, self.x + self.size)),
            max(self.y, min(y, self.y + self.size)),
        )

    def intersects_circle(self, x: float, y: float, radius: float) -> bool:
        cx, cy = self.closest_point(x, y)
        dx = x - cx
        dy = y - cy
        return dx * dx + dy * dy <= radius * radius


@dataclass(order=True, slots=True)
class Corpse:
    remove_at_ms: float
    position: Vector2 = field(compare=False)
    radius: float = field(compare=False)
    hue: float = field(compare=False)


@dataclass(order=True, slots=True)
class PendingNutrient:
    ready_at_ms: float
    position: Vector2 = field(compare=False)
    count: int = field(compare=False)


def obstacle_at(obstacles: Iterable[Obstacle], x: float, y: float, radius: float) -> Optional[Obstacle]:
    for block in obstacles:
        if block.overlaps_box(x, y, radius):
            return block
    return None
