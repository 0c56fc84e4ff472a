"""Seeded randomness for rounds, choices and forecasts."""

from __future__ import annotations

import random
from dataclasses import dataclass

_MASK = 0xFFFFFFFF
_GOLDEN = 0x9E3779B9
# Steps available to one round before its seeds run into the next round's.
ROUND_STRIDE = 4096


@dataclass
class SeedSequence:
    """Tree of 32-bit seeds hanging off a single game seed."""

    root: int
    counter: int = 0

    def spawn(self, index: int | None = None) -> "SeedSequence":
        if index is None:
            index = self.counter
            self.counter += 1
        return SeedSequence((self.root ^ (index * _GOLDEN)) & _MASK)

    def rng(self) -> "DeterministicRNG":
        return DeterministicRNG(self.root)


class DeterministicRNG:
    """Replayable generator; the same seed always yields the same draws."""

    def __init__(self, seed: int) -> None:
        self._seed = seed & _MASK
        # nosec B311 - game mechanics, not cryptography
        self._random = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def random(self) -> float:
        return self._random.random()


def derive_rng(seed: int, round_number: int, step: int) -> DeterministicRNG:
    """Generator for one step of one round of a game."""

    return SeedSequence(seed).spawn(round_number * ROUND_STRIDE + step).rng()


__all__ = ["ROUND_STRIDE", "SeedSequence", "DeterministicRNG", "derive_rng"]
