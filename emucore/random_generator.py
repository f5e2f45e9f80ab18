"""Random number source built on a Mersenne Twister producing 32-bit words."""

from __future__ import annotations

import random
from typing import Optional

_WORD_SIZE = 4


class RandomGenerator:
    """Produces random bytes and integers from a stream of 32-bit MT19937 words.

    Without a ``seed`` the generator is seeded from the operating system.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        if seed is None:
            seed = random.SystemRandom().getrandbits(32)
        self._rng = random.Random(seed)

    def _generate_number(self) -> int:
        return self._rng.getrandbits(32)

    def fill(self, size: int) -> bytes:
        """Return ``size`` random bytes, taken word by word in little-endian order."""
        if size < 0:
            raise ValueError("size must not be negative")
        result = bytearray()
        while len(result) < size:
            word = self._generate_number().to_bytes(_WORD_SIZE, "little")
            result += word[: size - len(result)]
        return bytes(result)

    def get_uint(self, size: int = 8) -> int:
        """Return a random unsigned integer of ``size`` bytes."""
        return int.from_bytes(self.fill(size), "little")

    def get_below(self, maximum: int, size: int = 8) -> int:
        """Return a random ``size``-byte integer reduced modulo ``maximum``."""
        if maximum <= 0:
            raise ValueError("maximum must be positive")
        return self.get_uint(size) % maximum

    def get_range(self, minimum: int, maximum: int, size: int = 8) -> int:
        """Return a random value in ``[minimum, maximum)``; the bounds may be given in either order."""
        if maximum < minimum:
            minimum, maximum = maximum, minimum
        diff = maximum - minimum
        if diff == 0:
            raise ValueError("range must not be empty")
        return self.get_uint(size) % diff + minimum

    def get_bool(self) -> bool:
        """Return a random boolean from the lowest bit of one word."""
        return (self._generate_number() & 1) != 0

    def get_geometric(self) -> int:
        """Count random booleans that come up True before the first False."""
        value = 0
        while self.get_bool():
            value += 1
        return value