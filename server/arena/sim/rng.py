"""Seedable random source shared by every sampling call in the simulation."""

from __future__ import annotations

import math
import os
import random
from typing import Sequence, TypeVar


T = TypeVar("T")


class RandomSource:
    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            seed = int.from_bytes(os.urandom(8), "big")
        self._seed = seed
        self._rng = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def random(self) -> float:
        return self._rng.random()

    def uniform(self, low: float, high: float) -> float:
        return low + self.random() * (high - low)

    def chance(self, probability: float) -> bool:
        return self.random() < probability

    def trigger(self, rate_per_sec: float, dt: float) -> bool:
        """Poisson trial: fires with probability 1 - e^(-rate*dt)."""
        return self.random() < 1.0 - math.exp(-rate_per_sec * dt)

    def angle(self) -> float:
        return self.random() * math.tau

    def choice(self, items: Sequence[T]) -> T:
        return items[int(self.random() * len(items))]
