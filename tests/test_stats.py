"""
ONPOST Analytics — Order Statistics Tests

median / percentile over unsorted lists; both are 0 for empty input.
"""

from __future__ import annotations

import pytest

from src.engine.stats import median, percentile


class TestMedian:
    def test_empty_is_zero(self) -> None:
        assert median([]) == 0

    def test_single_value(self) -> None:
        assert median([5]) == 5

    def test_odd_length_unsorted(self) -> None:
        assert median([1, 3, 2]) == 2

    def test_even_length_averages_middle_pair(self) -> None:
        assert median([1, 2, 3, 4]) == 2.5

    def test_input_not_mutated(self) -> None:
        values = [3, 1, 2]
        median(values)
        assert values == [3, 1, 2]


class TestPercentile:
    def test_interpolates_between_order_statistics(self) -> None:
        """Rank 0.5 * 3 = 1.5 sits halfway between 20 and 30."""
        assert percentile([10, 20, 30, 40], 50) == 25

    def test_empty_is_zero(self) -> None:
        assert percentile([], 90) == 0

    @pytest.mark.parametrize(
        "p, expected",
        [(0, 10), (100, 40), (10, 13), (90, 37)],
    )
    def test_bounds_and_tails(self, p: float, expected: float) -> None:
        assert percentile([40, 10, 30, 20], p) == pytest.approx(expected)

    def test_exact_rank_returns_element(self) -> None:
        assert percentile([1, 2, 3, 4, 5], 75) == 4
