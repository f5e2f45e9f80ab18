"""Keeps a pool of high-scoring inputs and derives new inputs from them by mutation."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .random_generator import RandomGenerator

MAX_TOP_SCORER = 20

InputHandler = Callable[[bytes], int]


@dataclass
class InputEntry:
    """An input together with the score it reached."""

    data: bytes = b""
    score: int = 0


def mutate_input(rng: RandomGenerator, data: bytes) -> bytes:
    """Return a mutated copy of ``data``: grown or shrunk, then with random bytes overwritten."""
    result = bytearray(data)

    if not result or rng.get_below(3, 4) == 0:
        new_bytes = rng.get_geometric() + 1
        result.extend(bytes(new_bytes))
    elif rng.get_below(10, 4) == 0:
        remove_bytes = rng.get_geometric() % len(result)
        del result[len(result) - remove_bytes :]

    mutations = (rng.get_geometric() + 1) % len(result)
    for _ in range(mutations):
        index = rng.get_below(len(result))
        result[index] = rng.get_uint(1)

    return bytes(result)


class InputGenerator:
    """Generates fuzzing inputs and remembers the best ones; safe to use from several threads."""

    def __init__(self, rng: Optional[RandomGenerator] = None) -> None:
        self._lock = threading.Lock()
        self._rng = rng if rng is not None else RandomGenerator()
        self._top_scorers: list[InputEntry] = []
        self._lowest_score = 0
        self._lowest_scorer = 0
        self._highest_scorer = InputEntry()

    def _generate_next_input(self) -> bytes:
        with self._lock:
            data = b""
            if self._top_scorers:
                index = self._rng.get_uint() % len(self._top_scorers)
                data = self._top_scorers[index].data
            return mutate_input(self._rng, data)

    def access_input(self, handler: InputHandler) -> None:
        """Hand a new input to ``handler`` and record the score it returns."""
        data = self._generate_next_input()
        score = handler(data)
        self._store_input_entry(InputEntry(data=data, score=score))

    def get_highest_scorer(self) -> InputEntry:
        """Return the best input seen so far."""
        with self._lock:
            return InputEntry(self._highest_scorer.data, self._highest_scorer.score)

    def get_average_score(self) -> float:
        """Return the mean score of the kept inputs, NaN if none is kept."""
        with self._lock:
            if not self._top_scorers:
                return math.nan
            return sum(float(e.score) for e in self._top_scorers) / len(self._top_scorers)

    def _store_input_entry(self, entry: InputEntry) -> None:
        with self._lock:
            if entry.score < self._lowest_score and self._rng.get_below(40, 4) != 0:
                return

            if entry.score > self._highest_scorer.score:
                self._highest_scorer = entry

            if len(self._top_scorers) < MAX_TOP_SCORER:
                self._top_scorers.append(entry)
                return

            insert_at_random = self._rng.get_below(10, 4) == 0
            if insert_at_random:
                index = self._rng.get_uint() % len(self._top_scorers)
            else:
                index = self._lowest_scorer

            self._top_scorers[index] = entry

            self._lowest_scorer, lowest = min(
                enumerate(self._top_scorers), key=lambda item: item[1].score
            )
            self._lowest_score = lowest.score