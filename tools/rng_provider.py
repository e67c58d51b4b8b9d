"""
PUMP CASINO — RNG Provider

The sole source of chance for every game. Three draws are exposed:

    uniform()             float in [0, 1)
    int_range(lo, hi)     int in [lo, hi], both ends inclusive
    shuffle(seq)          new list, uniform permutation (Fisher-Yates)

Backends:
    SecureRNG   OS CSPRNG (secrets.SystemRandom). Production default.
    SeededRNG   random.Random(seed). Deterministic; simulation and tests only.

If the OS entropy source fails, SecureRNG raises EntropyUnavailable instead of
falling back to a weaker generator.

Usage:
    from tools.rng_provider import SecureRNG
    rng = SecureRNG()
    deck = rng.shuffle(cards)
    roll = rng.uniform() * 100
"""

from __future__ import annotations

import logging
import random
import secrets
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from round_engine.errors import EntropyUnavailable

logger = logging.getLogger("pumpcasino.rng")


# ═══════════════════════════════════════════════════════════════
# Interface
# ═══════════════════════════════════════════════════════════════

class RNGProvider(ABC):
    """Uniform, independent draws. Subclasses only supply the two primitives."""

    name: str = "base"

    @abstractmethod
    def uniform(self) -> float:
        ...

    @abstractmethod
    def int_range(self, lo: int, hi: int) -> int:
        ...

    def shuffle(self, seq: Sequence) -> list:
        """Fisher-Yates: walk from the end, swap each slot with a uniform
        earlier-or-equal index. Every permutation is equally likely."""
        items = list(seq)
        for i in range(len(items) - 1, 0, -1):
            j = self.int_range(0, i)
            items[i], items[j] = items[j], items[i]
        return items

    def choice(self, seq: Sequence):
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.int_range(0, len(seq) - 1)]

    def sample(self, seq: Sequence, k: int) -> list:
        """k distinct elements, drawn without replacement."""
        if k < 0 or k > len(seq):
            raise ValueError(f"Sample size {k} out of range for {len(seq)} items")
        return self.shuffle(seq)[:k]

    def check(self) -> None:
        """Probe the entropy source. Raises EntropyUnavailable on failure."""
        self.uniform()


# ═══════════════════════════════════════════════════════════════
# Backends
# ═══════════════════════════════════════════════════════════════

class SecureRNG(RNGProvider):
    """OS CSPRNG. Any failure of the entropy source is fatal for the draw."""

    name = "secure"

    def __init__(self):
        self._sys = secrets.SystemRandom()

    def uniform(self) -> float:
        try:
            return self._sys.random()
        except (OSError, NotImplementedError) as e:
            logger.error(f"Entropy source unavailable: {e}")
            raise EntropyUnavailable(f"OS entropy source unavailable: {e}") from e

    def int_range(self, lo: int, hi: int) -> int:
        if lo > hi:
            raise ValueError(f"Empty range [{lo}, {hi}]")
        try:
            return lo + self._sys.randbelow(hi - lo + 1)
        except (OSError, NotImplementedError) as e:
            logger.error(f"Entropy source unavailable: {e}")
            raise EntropyUnavailable(f"OS entropy source unavailable: {e}") from e


class SeededRNG(RNGProvider):
    """Deterministic generator. Never use for real-money play."""

    name = "seeded"

    def __init__(self, seed: Optional[int] = 42):
        self.seed = seed
        self._rng = random.Random(seed)

    def uniform(self) -> float:
        return self._rng.random()

    def int_range(self, lo: int, hi: int) -> int:
        if lo > hi:
            raise ValueError(f"Empty range [{lo}, {hi}]")
        return self._rng.randint(lo, hi)

    def check(self) -> None:
        # nothing to probe; a draw here would shift every later outcome
        pass


RNG_BACKENDS = {
    "secure": SecureRNG,
    "seeded": SeededRNG,
}


def get_rng(backend: str = "secure", seed: Optional[int] = None) -> RNGProvider:
    """Build an RNG backend by name."""
    cls = RNG_BACKENDS.get(backend.lower())
    if cls is None:
        raise ValueError(f"Unknown RNG backend: {backend}. Available: {list(RNG_BACKENDS)}")
    if cls is SeededRNG:
        return SeededRNG(seed if seed is not None else 42)
    return cls()
