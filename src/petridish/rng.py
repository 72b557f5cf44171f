from __future__ import annotations

import math
import random
from typing import Optional


class RandomSource:
    """Thin wrapper over ``random.Random``.

    Unseeded by default; pass a seed when a run has to be reproducible.
    """

    def __init__(self, seed: Optional[int] = None):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_signed(self) -> float:
        return self._random.uniform(-1.0, 1.0)

    def next_int(self, low: int, high: int) -> int:
        return self._random.randint(low, high)

    def next_angle(self) -> float:
        return self._random.uniform(0.0, 2.0 * math.pi)
