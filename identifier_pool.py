"""
Identifier sources for the load driver.

The pool is the fixed range 1..N. A stream draws from it either through
its own cyclic Cursor or through a seeded RandomPicker.
"""

import random
from typing import Optional, Sequence, Tuple


class IdentifierPool:
    """Immutable ordered pool of identifiers 1..size"""

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"pool size must be positive, got {size}")
        self._ids: Tuple[int, ...] = tuple(range(1, size + 1))

    def __len__(self) -> int:
        return len(self._ids)

    def __getitem__(self, index: int) -> int:
        return self._ids[index]

    def __iter__(self):
        return iter(self._ids)

    @property
    def ids(self) -> Sequence[int]:
        return self._ids


class Cursor:
    """Cyclic, ever-increasing position over a pool. Owned by one stream."""

    def __init__(self, pool: IdentifierPool, start: int = 0):
        self.pool = pool
        self._position = start

    @property
    def position(self) -> int:
        return self._position

    def next_id(self) -> int:
        identifier = self.pool[self._position % len(self.pool)]
        self._position += 1
        return identifier


class RandomPicker:
    """Uniform random draws from a pool with a private generator"""

    def __init__(self, pool: IdentifierPool, seed: Optional[int] = None):
        self.pool = pool
        self._rng = random.Random(seed)
        self._draws = 0

    @property
    def position(self) -> int:
        return self._draws

    def next_id(self) -> int:
        self._draws += 1
        return self._rng.choice(self.pool.ids)
