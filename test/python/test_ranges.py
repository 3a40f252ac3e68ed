import math

import pytest

from hiobench.errors import ConfigurationError
from hiobench.ranges import linspace, logspace
from hiobench.timer import Timer, time_format


def test_linspace_example():
    assert linspace(1.0, 10.0, 4) == [1.0, 4.0, 7.0, 10.0]


@pytest.mark.parametrize(
    "start,end,n",
    [(0.1, 0.7, 7), (1.0, 1e6, 13), (3.3, -2.9, 5), (1e-3, 0.3, 2)],
)
def test_endpoints_are_exact(start, end, n):
    vals = linspace(start, end, n)
    assert len(vals) == n
    assert vals[0] == start and vals[-1] == end

    if start > 0 and end > 0:
        vals = logspace(start, end, n)
        assert len(vals) == n
        assert vals[0] == start and vals[-1] == end


def test_logspace_is_geometric():
    vals = logspace(1.0, 1000.0, 4)
    for expected, got in zip([1.0, 10.0, 100.0, 1000.0], vals):
        assert math.isclose(got, expected, rel_tol=1e-9)


def test_integer_endpoints_give_integers():
    vals = logspace(1, 10, 4)
    assert vals == [1, 2, 4, 10]
    assert all(isinstance(v, int) for v in vals)
    assert linspace(10, 20, 3) == [10, 15, 20]


def test_integer_values_are_truncated():
    assert logspace(100, 2000, 5) == [100, 211, 447, 945, 2000]
    assert linspace(0, 10, 4) == [0, 3, 6, 10]


def test_invalid_ranges():
    with pytest.raises(ConfigurationError):
        linspace(1.0, 2.0, 1)
    with pytest.raises(ConfigurationError):
        logspace(1, 10, 1)
    with pytest.raises(ConfigurationError):
        logspace(0, 10, 4)
    with pytest.raises(ConfigurationError):
        logspace(-1.0, 10.0, 4)


def test_time_format():
    assert time_format(0.5) == "500ms"
    assert time_format(3.25) == "3s250ms"
    assert time_format(125.5) == "2m05s500ms"
    assert time_format(3601.75) == "1h00m01s750ms"


def test_timer_elapsed():
    timer = Timer()
    assert timer.elapsed_s() >= 0.0
    assert timer.elapsed_str().endswith("ms")
