import math

import pytest

from availability_core.membership import optimal_bit_count, optimal_hash_count


@pytest.mark.parametrize(
    ("n", "p", "m", "k"),
    [
        (100_000, 0.01, 958_506, 7),
        (10_000_000, 0.01, 95_850_584, 7),
        (3, 0.01, 29, 7),
        (1_000, 0.001, 14_378, 10),
    ],
)
def test_standard_sizing(n: int, p: float, m: int, k: int) -> None:
    assert optimal_bit_count(n, p) == m
    assert optimal_hash_count(m, n) == k


def test_bit_count_matches_formula() -> None:
    n, p = 12_345, 0.05
    expected = math.ceil(-(n * math.log(p)) / (math.log(2) ** 2))

    assert optimal_bit_count(n, p) == expected


def test_empty_key_set_is_clamped() -> None:
    assert optimal_bit_count(0, 0.01) == 1
    assert optimal_hash_count(1, 0) == 1


def test_hash_count_never_below_one() -> None:
    assert optimal_hash_count(1, 1_000) == 1


@pytest.mark.parametrize("p", [0.0, 1.0, -0.5, 1.5])
def test_rejects_rate_outside_open_interval(p: float) -> None:
    with pytest.raises(ValueError, match="false_positive_rate"):
        optimal_bit_count(10, p)


def test_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match="expected_items"):
        optimal_bit_count(-1, 0.01)
    with pytest.raises(ValueError, match="bit_count"):
        optimal_hash_count(0, 10)
