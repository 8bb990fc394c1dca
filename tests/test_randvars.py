from __future__ import annotations

import pytest

from span.config import RunParameters
from span.params import run_parameters
from span.randvars import (
    ZERO,
    constant,
    rv_add,
    rv_average,
    rv_cap,
    rv_difference,
    rv_from_normal,
    rv_from_states,
    rv_mean,
    rv_min,
    rv_scale,
    rv_subtract,
    rv_sum,
)


def test_zero_is_identity_for_addition() -> None:
    rv = rv_from_states([1.0, 2.0, 4.0], [0.25, 0.5, 0.25])

    assert rv_add(rv, ZERO) == rv
    assert rv_add(ZERO, rv) == rv
    assert rv_sum([]) == ZERO


def test_states_are_merged_sorted_and_normalized() -> None:
    rv = rv_from_states([3.0, 1.0, 3.0], [2.0, 1.0, 1.0])

    assert rv.values == (1.0, 3.0)
    assert rv.probs == pytest.approx((0.25, 0.75))
    assert rv_mean(rv) == pytest.approx(2.5)


def test_coarsening_respects_run_max_states_and_keeps_mean() -> None:
    with run_parameters(RunParameters(rv_max_states=4)):
        rv = rv_from_states([float(v) for v in range(20)], [1.0] * 20)
        total = rv_add(rv, rv)

    assert rv.states <= 4
    assert total.states <= 4
    assert rv.mean == pytest.approx(9.5)
    assert total.mean == pytest.approx(19.0)


def test_arithmetic_on_independent_values() -> None:
    a = rv_from_states([0.0, 2.0], [0.5, 0.5])
    b = constant(1.0)

    assert rv_add(a, b).values == (1.0, 3.0)
    assert rv_subtract(a, b).values == (-1.0, 1.0)
    assert rv_min(a, b).values == (0.0, 1.0)
    assert rv_scale(a, 3.0).values == (0.0, 6.0)
    assert rv_scale(a, 0.0) == ZERO


def test_average_of_identical_constants_is_exact() -> None:
    value = constant(0.1)

    assert rv_average([value] * 7) == value
    assert rv_average([constant(2.0), constant(4.0)]) == constant(3.0)


def test_average_rejects_empty_input() -> None:
    with pytest.raises(ValueError):
        rv_average([])


def test_cap_and_difference_work_on_means() -> None:
    rv = rv_from_states([2.0, 6.0], [0.5, 0.5])

    capped = rv_cap(rv, 2.0)
    assert capped.mean == pytest.approx(2.0)
    assert rv_cap(rv, 10.0) == rv
    assert rv_cap(rv, 0.0) == ZERO

    assert rv_difference(constant(3.0), constant(5.0)) == ZERO
    assert rv_difference(constant(5.0), constant(3.0)) == constant(2.0)
    assert rv_difference(rv, ZERO) == rv


def test_normal_discretisation() -> None:
    rv = rv_from_normal(10.0, 1.0, states=10)

    assert rv.states == 10
    assert rv.mean == pytest.approx(10.0, abs=1e-6)
    assert sum(rv.probs) == pytest.approx(1.0)
    assert rv_from_normal(4.0, 0.0) == constant(4.0)
    assert min(rv_from_normal(0.5, 2.0).values) >= 0.0


def test_invalid_states_raise() -> None:
    with pytest.raises(ValueError):
        rv_from_states([1.0, 2.0], [1.0])
    with pytest.raises(ValueError):
        rv_from_states([1.0], [-1.0])
    with pytest.raises(ValueError):
        rv_from_normal(1.0, -1.0)
