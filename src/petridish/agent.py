from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from pygame.math import Vector2

from .genome import Genome


class AgentKind(str, Enum):
    PREY_A = "blue"
    PREY_B = "purple"
    PREDATOR = "red"


@dataclass(slots=True, order=True)
class DigestEntry:
    ready_at_ms: float
    amount: float = field(compare=False)


@dataclass(slots=True)
class Agent:
    id: int
    kind: AgentKind
    position: Vector2
    velocity: Vector2
    genome: Genome
    energy: float
    hue: float = 0.0
    generation: int = 0
    alive: bool = True
    killed: bool = False
    last_repro_ms: float = 0.0
    last_bite_ms: float = 0.0
    digest_queue: List[DigestEntry] = field(default_factory=list)

    @property
    def radius(self) -> float:
        return self.genome.radius

    @property
    def max_energy(self) -> float:
        return max(100.0, self.genome.repro_threshold + 40.0)

    @property
    def is_predator(self) -> bool:
        return self.kind == AgentKind.PREDATOR

    @property
    def group_name(self) -> str:
        return self.genome.custom_cell_name or self.kind.value

    def queue_digest(self, amount: float, ready_at_ms: float) -> None:
        heapq.heappush(self.digest_queue, DigestEntry(ready_at_ms, amount))

    def process_digestion(self, now_ms: float) -> float:
        """Credit every queued amount that is ready by ``now_ms``; returns the energy gained."""
        queue = self.digest_queue
        before = self.energy
        max_energy = self.max_energy
        while queue and queue[0].ready_at_ms <= now_ms:
            entry = heapq.heappop(queue)
            self.energy = min(max_energy, self.energy + entry.amount)
        return self.energy - before
