"""Standard Bloom filter sizing formulas."""

from __future__ import annotations

import math

_LN2 = math.log(2)


def _check_rate(false_positive_rate: float) -> None:
    if not 0.0 < false_positive_rate < 1.0:
        raise ValueError("false_positive_rate must be in (0, 1)")


def optimal_bit_count(expected_items: int, false_positive_rate: float) -> int:
    """Return ``m = ceil(-(n * ln p) / ln(2)^2)``, never less than one bit."""
    if expected_items < 0:
        raise ValueError("expected_items must be >= 0")
    _check_rate(false_positive_rate)
    bits = math.ceil(-(expected_items * math.log(false_positive_rate)) / _LN2**2)
    return max(bits, 1)


def optimal_hash_count(bit_count: int, expected_items: int) -> int:
    """Return ``k = round((m / n) * ln 2)``, never less than one round."""
    if bit_count < 1:
        raise ValueError("bit_count must be >= 1")
    if expected_items < 0:
        raise ValueError("expected_items must be >= 0")
    if expected_items == 0:
        return 1
    return max(round((bit_count / expected_items) * _LN2), 1)
