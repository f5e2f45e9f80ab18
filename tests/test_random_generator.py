import pytest

from emucore.random_generator import RandomGenerator


def test_same_seed_gives_same_stream():
    first = RandomGenerator(42)
    second = RandomGenerator(42)
    assert first.fill(32) == second.fill(32)
    assert first.get_uint() == second.get_uint()


def test_fill_length():
    rng = RandomGenerator(7)
    assert len(rng.fill(0)) == 0
    assert len(rng.fill(1)) == 1
    assert len(rng.fill(13)) == 13


def test_fill_negative_size_rejected():
    with pytest.raises(ValueError):
        RandomGenerator(1).fill(-1)


def test_partial_word_is_prefix_of_full_words():
    assert RandomGenerator(3).fill(5) == RandomGenerator(3).fill(8)[:5]


def test_get_uint_is_little_endian_fill():
    expected = int.from_bytes(RandomGenerator(9).fill(4), "little")
    assert RandomGenerator(9).get_uint(4) == expected


def test_get_uint_respects_size():
    rng = RandomGenerator(11)
    for _ in range(100):
        assert 0 <= rng.get_uint(1) < 256


def test_get_below_in_range():
    rng = RandomGenerator(5)
    values = {rng.get_below(3) for _ in range(200)}
    assert values <= {0, 1, 2}
    assert len(values) > 1


def test_get_below_rejects_zero():
    with pytest.raises(ValueError):
        RandomGenerator(5).get_below(0)


def test_get_range_swaps_bounds():
    rng = RandomGenerator(8)
    for _ in range(100):
        assert 10 <= rng.get_range(20, 10) < 20


def test_get_range_empty_rejected():
    with pytest.raises(ValueError):
        RandomGenerator(8).get_range(4, 4)


def test_get_bool_produces_both_values():
    rng = RandomGenerator(12)
    values = {rng.get_bool() for _ in range(100)}
    assert values == {True, False}


def test_get_geometric_non_negative_and_varies():
    rng = RandomGenerator(13)
    values = [rng.get_geometric() for _ in range(200)]
    assert min(values) == 0
    assert max(values) > 0