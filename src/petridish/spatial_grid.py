from __future__ import annotations

from typing import Dict, Iterator, List, Tuple

from pygame.math import Vector2

NEIGHBORHOOD: Tuple[Tuple[int, int], ...] = tuple((dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1))


class SpatialGrid:
    """Uniform bucket grid of entity indices, rebuilt from scratch every tick.

    Queries cover the 3x3 block of cells around a position, not an exact radius.
    """

    def __init__(self, cell_size: float) -> None:
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List[int]] = {}
        self._neighbor_scratch: List[int] = []
        self._active_keys: List[Tuple[int, int]] = []

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def insert(self, index: int, position: Vector2) -> None:
        key = self.cell_key(position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this tick; mark it active again.
            self._active_keys.append(key)
        bucket.append(index)

    def occupied_keys(self) -> List[Tuple[int, int]]:
        return list(self._active_keys)

    def bucket(self, key: Tuple[int, int]) -> List[int]:
        return self._cells.get(key) or []

    def neighborhood(self, key: Tuple[int, int]) -> Iterator[List[int]]:
        cells = self._cells
        base_x, base_y = key
        for dx, dy in NEIGHBORHOOD:
            bucket = cells.get((base_x + dx, base_y + dy))
            if bucket:
                yield bucket

    def query(self, position: Vector2) -> List[int]:
        """Indices bucketed in the 3x3 neighbourhood of ``position``.

        The returned list is reused by the next call.
        """
        self._neighbor_scratch.clear()
        append = self._neighbor_scratch.append
        for bucket in self.neighborhood(self.cell_key(position)):
            for index in bucket:
                append(index)
        return self._neighbor_scratch

    def cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))
