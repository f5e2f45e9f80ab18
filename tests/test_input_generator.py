import math

from emucore.input_generator import InputEntry, InputGenerator, mutate_input
from emucore.random_generator import RandomGenerator


class _FixedRng:
    """Stand-in generator returning fixed values."""

    def __init__(self, below=0, geometric=2, uint=0xAB):
        self.below = below
        self.geometric = geometric
        self.uint = uint

    def get_below(self, maximum, size=8):
        return self.below % maximum

    def get_geometric(self):
        return self.geometric

    def get_uint(self, size=8):
        return self.uint


def test_mutate_empty_input_grows_with_zeros():
    assert mutate_input(_FixedRng(below=0, geometric=2), b"") == b"\x00\x00\x00"


def test_mutate_overwrites_bytes():
    result = mutate_input(_FixedRng(below=1, geometric=0, uint=0xAB), b"abcd")
    assert len(result) == 4
    assert result[1] == 0xAB
    assert result[0:1] == b"a"


def test_mutate_does_not_change_argument():
    data = b"hello"
    result = mutate_input(RandomGenerator(1), data)
    assert data == b"hello"
    assert isinstance(result, bytes)
    assert len(result) >= 1


def test_mutate_result_never_empty():
    rng = RandomGenerator(4)
    data = b""
    for _ in range(200):
        data = mutate_input(rng, data)
        assert len(data) >= 1


def test_first_input_is_not_empty():
    generator = InputGenerator(RandomGenerator(2))
    seen = []
    generator.access_input(lambda data: seen.append(data) or 0)
    assert len(seen) == 1
    assert len(seen[0]) >= 1


def test_highest_scorer_and_average():
    generator = InputGenerator(RandomGenerator(3))
    scores = iter([1, 2, 3])
    inputs = []

    def handler(data):
        inputs.append(data)
        return next(scores)

    for _ in range(3):
        generator.access_input(handler)

    best = generator.get_highest_scorer()
    assert best.score == 3
    assert best.data == inputs[2]
    assert generator.get_average_score() == 2.0


def test_average_without_inputs_is_nan():
    generator = InputGenerator(RandomGenerator(1))
    assert math.isnan(generator.get_average_score()) is True

    generator.access_input(lambda data: 7)
    assert generator.get_average_score() == 7.0


def test_highest_scorer_defaults_to_empty_entry():
    assert InputGenerator(RandomGenerator(1)).get_highest_scorer() == InputEntry()


def test_average_bounded_by_highest_after_many_inputs():
    generator = InputGenerator(RandomGenerator(5))
    counter = iter(range(1000))
    for _ in range(100):
        generator.access_input(lambda data: next(counter))
    best = generator.get_highest_scorer()
    assert best.score == 99
    assert 0 < generator.get_average_score() <= best.score