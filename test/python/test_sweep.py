from math import comb

import pytest

from hiobench.errors import ConfigurationError
from hiobench.sweep import probe_combinations


@pytest.mark.parametrize("n_values,n_stages", [(1, 1), (4, 1), (4, 2), (5, 3), (6, 6), (8, 4)])
def test_combination_count(n_values, n_stages):
    values = [10 * (i + 1) for i in range(n_values)]
    combos = probe_combinations(values, n_stages)

    assert len(combos) == comb(n_values, n_stages)
    assert len(set(combos)) == len(combos)
    for combo in combos:
        assert len(combo) == n_stages
        assert len(set(combo)) == n_stages
        assert set(combo) <= set(values)


def test_reverse_order():
    assert probe_combinations([10, 100, 1000], 2) == [(1000, 100), (1000, 10), (100, 10)]


def test_duplicates_are_dropped():
    assert probe_combinations([1, 1, 2, 3], 2) == [(3, 2), (3, 1), (2, 1)]


def test_too_many_stages():
    with pytest.raises(ConfigurationError):
        probe_combinations([1, 2], 3)
    with pytest.raises(ConfigurationError):
        probe_combinations([1, 2], 0)
