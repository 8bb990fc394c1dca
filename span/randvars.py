"""Discrete random variables used as cell values throughout a run.

Every operation returns a new immutable :class:`DistributionValue` whose
support is capped at the active run's ``rv_max_states`` (see
:mod:`span.params`). Capping merges neighbouring states into equal-width
bins represented by their probability-weighted mean, so means survive
coarsening unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Callable, Iterable, Sequence

import numpy as np
from scipy.stats import norm

from span.params import current_max_states


@dataclass(frozen=True)
class DistributionValue:
    """Discrete distribution over a sorted support."""

    values: tuple[float, ...]
    probs: tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("a distribution needs at least one state")
        if len(self.values) != len(self.probs):
            raise ValueError("values and probs must have the same length")

    @property
    def mean(self) -> float:
        return rv_mean(self)

    @property
    def states(self) -> int:
        return len(self.values)


def constant(value: float) -> DistributionValue:
    return DistributionValue((float(value),), (1.0,))


ZERO = constant(0.0)


def rv_from_states(values: Sequence[float], probs: Sequence[float]) -> DistributionValue:
    """Build a distribution from (possibly unsorted, repeated) states."""

    if len(values) != len(probs):
        raise ValueError("values and probs must have the same length")
    probs_arr = np.asarray(probs, dtype=np.float64)
    if np.any(probs_arr < 0.0) or not np.all(np.isfinite(probs_arr)):
        raise ValueError("probabilities must be finite and non-negative")
    return _from_arrays(np.asarray(values, dtype=np.float64), probs_arr)


def rv_from_normal(mean: float, sd: float, *, states: int | None = None) -> DistributionValue:
    """Discretise a normal distribution truncated at zero into equal-width states."""

    if sd < 0.0:
        raise ValueError("sd must be non-negative")
    if sd == 0.0:
        return constant(max(float(mean), 0.0))

    count = current_max_states() if states is None else int(states)
    if count < 1:
        raise ValueError("states must be >= 1")

    lo = max(0.0, float(mean) - 3.0 * sd)
    hi = float(mean) + 3.0 * sd
    if hi <= 0.0:
        return ZERO

    edges = np.linspace(lo, hi, count + 1)
    cdf = norm.cdf(edges, loc=mean, scale=sd)
    probs = np.diff(cdf)
    centers = 0.5 * (edges[:-1] + edges[1:])
    if float(probs.sum()) <= 0.0:
        return constant(max(float(mean), 0.0))
    return _from_arrays(centers, probs, max_states=count)


def rv_mean(rv: DistributionValue) -> float:
    return float(np.dot(rv.values, rv.probs))


def rv_add(a: DistributionValue, b: DistributionValue) -> DistributionValue:
    return _combine(a, b, np.add)


def rv_subtract(a: DistributionValue, b: DistributionValue) -> DistributionValue:
    return _combine(a, b, np.subtract)


def rv_min(a: DistributionValue, b: DistributionValue) -> DistributionValue:
    return _combine(a, b, np.minimum)


def rv_sum(rvs: Iterable[DistributionValue]) -> DistributionValue:
    """Sum independent values; the empty sum is ZERO."""

    return reduce(rv_add, rvs, ZERO)


def rv_scale(rv: DistributionValue, factor: float) -> DistributionValue:
    if factor == 0.0:
        return ZERO
    if factor == 1.0:
        return rv
    return _from_arrays(np.asarray(rv.values, dtype=np.float64) * float(factor), np.asarray(rv.probs))


def rv_average(rvs: Iterable[DistributionValue]) -> DistributionValue:
    """Distribution of the arithmetic mean of independent values."""

    items = list(rvs)
    if not items:
        raise ValueError("cannot average an empty collection")
    first = items[0]
    if len(items) == 1:
        return first
    # Identical point values average to themselves; skip the float round trip.
    if first.states == 1 and all(rv == first for rv in items[1:]):
        return first
    return rv_scale(rv_sum(items), 1.0 / len(items))


def rv_cap(rv: DistributionValue, limit: DistributionValue | float) -> DistributionValue:
    """Rescale `rv` so its mean does not exceed the mean of `limit`."""

    limit_mean = limit.mean if isinstance(limit, DistributionValue) else float(limit)
    current = rv_mean(rv)
    if current <= limit_mean:
        return rv
    if limit_mean <= 0.0:
        return ZERO
    return rv_scale(rv, limit_mean / current)


def rv_difference(a: DistributionValue, b: DistributionValue) -> DistributionValue:
    """`a - b`, or ZERO when `b` already accounts for all of `a` in expectation."""

    if rv_mean(b) >= rv_mean(a):
        return ZERO
    if b == ZERO:
        return a
    return rv_subtract(a, b)


def _combine(
    a: DistributionValue,
    b: DistributionValue,
    op: Callable[[np.ndarray, np.ndarray], np.ndarray],
) -> DistributionValue:
    va = np.asarray(a.values, dtype=np.float64)
    vb = np.asarray(b.values, dtype=np.float64)
    values = op(va[:, None], vb[None, :])
    probs = np.outer(np.asarray(a.probs, dtype=np.float64), np.asarray(b.probs, dtype=np.float64))
    return _from_arrays(values, probs)


def _from_arrays(values: np.ndarray, probs: np.ndarray, *, max_states: int | None = None) -> DistributionValue:
    values = np.asarray(values, dtype=np.float64).ravel()
    probs = np.asarray(probs, dtype=np.float64).ravel()
    if values.size == 0:
        raise ValueError("a distribution needs at least one state")
    if not np.all(np.isfinite(values)):
        raise ValueError("distribution states must be finite")

    keep = probs > 0.0
    if not np.any(keep):
        raise ValueError("distribution has no probability mass")
    values = values[keep]
    probs = probs[keep]

    support, inverse = np.unique(values, return_inverse=True)
    mass = np.bincount(inverse.ravel(), weights=probs, minlength=support.size)
    mass = mass / mass.sum()

    limit = current_max_states() if max_states is None else max_states
    if support.size > limit:
        support, mass = _coarsen(support, mass, limit)

    return DistributionValue(
        tuple(float(v) for v in support),
        tuple(float(p) for p in mass),
    )


def _coarsen(values: np.ndarray, probs: np.ndarray, limit: int) -> tuple[np.ndarray, np.ndarray]:
    edges = np.linspace(values[0], values[-1], limit + 1)
    bins = np.clip(np.searchsorted(edges, values, side="right") - 1, 0, limit - 1)
    mass = np.bincount(bins, weights=probs, minlength=limit)
    moment = np.bincount(bins, weights=probs * values, minlength=limit)
    filled = mass > 0.0
    return moment[filled] / mass[filled], mass[filled]
