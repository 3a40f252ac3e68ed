import math
from typing import List, Union

from hiobench.errors import ConfigurationError

Number = Union[int, float]


def _cast(values: List[float], start: Number, end: Number) -> List[Number]:
    # integer endpoints produce integer values (probe counts), truncated toward zero
    if isinstance(start, int) and isinstance(end, int):
        values = [int(v) for v in values]
    # interpolation drifts, the requested endpoints must survive exactly
    values[0] = start
    values[-1] = end
    return values


def linspace(start: Number, end: Number, n: int) -> List[Number]:
    """
    Evenly spaced values from start to end, both included.
    :param start: first value.
    :param end: last value.
    :param n: number of values, at least 2.
    :return: list of n values. Integer endpoints give integer values.
    """
    if n < 2:
        raise ConfigurationError(f"A range needs at least 2 values, got n={n}")
    step = (end - start) / (n - 1)
    return _cast([start + step * i for i in range(n)], start, end)


def logspace(start: Number, end: Number, n: int) -> List[Number]:
    """
    Log-spaced values from start to end, both included.
    :param start: first value, must be positive.
    :param end: last value, must be positive.
    :param n: number of values, at least 2.
    :return: list of n values. Integer endpoints give integer values.
    """
    if start <= 0 or end <= 0:
        raise ConfigurationError(f"Log ranges need positive bounds, got start={start}, end={end}")
    log_vals = linspace(math.log(start), math.log(end), n)
    return _cast([math.exp(v) for v in log_vals], start, end)
