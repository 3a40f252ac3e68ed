from itertools import combinations
from typing import List, Sequence, Tuple

from hiobench.errors import ConfigurationError


def probe_combinations(probe_values: Sequence[int], n_stages: int) -> List[Tuple[int, ...]]:
    """
    Probe budgets to evaluate for a cascade of n_stages encoders.

    Takes every n_stages-combination of the distinct probe values, walked in reverse
    (largest first for an ascending input), so a sweep has C(v, n) points instead of v**n.
    Which stage gets the larger budget is not constrained beyond that order.

    :param probe_values: candidate probe counts.
    :param n_stages: cascade length.
    :return: list of tuples of length n_stages.
    """
    values = list(dict.fromkeys(probe_values))
    if n_stages < 1 or n_stages > len(values):
        raise ConfigurationError(f"Cannot pick {n_stages} stage budgets from {len(values)} probe values {values}")
    return list(combinations(reversed(values), n_stages))
