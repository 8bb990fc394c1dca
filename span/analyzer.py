"""Result layers derived from raw layers and the carrier cache.

Source cells split their theoretical value into three accounted parts:

* inaccessible: never reached any use, even with sinks ignored,
* blocked: reached a use only in the absence of sinks and obstructions,
* possible: delivered to uses; ``actual`` is the consumed share of it.

Use cells follow the same split in demand units when the use type is
finite. Sinks only report theoretical and actual absorption.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Iterable

import numpy as np

from span.locations import CacheLayer, ServiceCarrier
from span.matrix import CellId, make_matrix, zero_layer
from span.models import get_model
from span.params import get_run_parameters
from span.randvars import ZERO, DistributionValue, rv_cap, rv_difference, rv_scale, rv_sum


@dataclass(frozen=True)
class _Consumed:
    carrier: ServiceCarrier
    weight: DistributionValue


def theoretical_source(source_layer: np.ndarray, use_layer: np.ndarray) -> np.ndarray:
    if not _any_positive(use_layer):
        return zero_layer(*source_layer.shape)
    return source_layer.copy()


def inaccessible_source(source_layer: np.ndarray, use_layer: np.ndarray, cache: CacheLayer) -> np.ndarray:
    theoretical = theoretical_source(source_layer, use_layer)
    reach = _source_reach(cache)
    return map_matrix_by_id(theoretical, lambda cell, theo: rv_difference(theo, rv_cap(reach.get(cell, ZERO), theo)))


def possible_source(cache: CacheLayer) -> np.ndarray:
    reach = _source_reach(cache)
    delivered = _source_delivered(cache)
    return _cache_layer(cache, lambda cell: rv_cap(delivered.get(cell, ZERO), reach.get(cell, ZERO)))


def blocked_source(cache: CacheLayer) -> np.ndarray:
    reach = _source_reach(cache)
    possible = possible_source(cache)
    return _cache_layer(cache, lambda cell: rv_difference(reach.get(cell, ZERO), possible[cell]))


def actual_source(cache: CacheLayer) -> np.ndarray:
    consumed = _aggregate_by_source(cache, ((item.carrier.source_id, item.weight) for item in _consumed(cache)))
    possible = possible_source(cache)
    return _cache_layer(cache, lambda cell: rv_cap(consumed.get(cell, ZERO), possible[cell]))


def theoretical_sink(source_layer: np.ndarray, sink_layer: np.ndarray, use_layer: np.ndarray) -> np.ndarray:
    if not (_any_positive(source_layer) and _any_positive(use_layer)):
        return zero_layer(*sink_layer.shape)
    return sink_layer.copy()


def actual_sink(cache: CacheLayer) -> np.ndarray:
    params = get_run_parameters()
    absorbed: dict[CellId, list[DistributionValue]] = defaultdict(list)
    for carrier in cache.carriers():
        for cell, amount in sorted(carrier.sink_effects.items()):
            absorbed[cell].append(amount)

    def cell_value(cell: CellId) -> DistributionValue:
        total = rv_sum(absorbed.get(cell, ()))
        if params.sink_type == "finite":
            return rv_cap(total, cache.locations[cell].sink)
        return total

    return _cache_layer(cache, cell_value)


def theoretical_use(source_layer: np.ndarray, use_layer: np.ndarray) -> np.ndarray:
    if not _any_positive(source_layer):
        return zero_layer(*use_layer.shape)
    return use_layer.copy()


def inaccessible_use(source_layer: np.ndarray, use_layer: np.ndarray, cache: CacheLayer) -> np.ndarray:
    params = get_run_parameters()
    theoretical = theoretical_use(source_layer, use_layer)
    arrivals = _use_arrivals(cache)

    def cell_value(cell: CellId, theo: DistributionValue) -> DistributionValue:
        carriers = arrivals.get(cell, [])
        if params.use_type == "infinite":
            return theo if not carriers else ZERO
        reach = rv_cap(rv_sum(c.possible_weight for c in carriers), theo)
        return rv_difference(theo, reach)

    return map_matrix_by_id(theoretical, cell_value)


def possible_use(cache: CacheLayer) -> np.ndarray:
    arrivals = _use_arrivals(cache)
    return _cache_layer(cache, lambda cell: _use_possible(cache, cell, arrivals.get(cell, [])))


def blocked_use(cache: CacheLayer) -> np.ndarray:
    arrivals = _use_arrivals(cache)

    def cell_value(cell: CellId) -> DistributionValue:
        carriers = arrivals.get(cell, [])
        return rv_difference(_use_reach(cache, cell, carriers), _use_possible(cache, cell, carriers))

    return _cache_layer(cache, cell_value)


def actual_use(cache: CacheLayer) -> np.ndarray:
    arrivals = _use_arrivals(cache)
    consumed: dict[CellId, list[DistributionValue]] = defaultdict(list)
    for item in _consumed(cache):
        consumed[item.carrier.use_id].append(item.weight)

    def cell_value(cell: CellId) -> DistributionValue:
        possible = _use_possible(cache, cell, arrivals.get(cell, []))
        return rv_cap(rv_sum(consumed.get(cell, ())), possible)

    return _cache_layer(cache, cell_value)


def possible_flow(cache: CacheLayer, flow_model: str) -> np.ndarray:
    return _flow_layer(cache, flow_model, [(c, c.actual_weight) for c in cache.carriers()])


def blocked_flow(cache: CacheLayer, flow_model: str) -> np.ndarray:
    return _flow_layer(
        cache,
        flow_model,
        [(c, rv_difference(c.possible_weight, c.actual_weight)) for c in cache.carriers()],
    )


def actual_flow(cache: CacheLayer, flow_model: str) -> np.ndarray:
    return _flow_layer(cache, flow_model, [(item.carrier, item.weight) for item in _consumed(cache)])


def map_matrix_by_id(
    layer: np.ndarray,
    fn: Callable[[CellId, DistributionValue], DistributionValue],
) -> np.ndarray:
    rows, cols = layer.shape
    return make_matrix(rows, cols, lambda cell: fn(cell, layer[cell]))


def _any_positive(layer: np.ndarray) -> bool:
    return any(rv.mean > 0.0 for rv in layer.ravel())


def _cache_layer(cache: CacheLayer, fn: Callable[[CellId], DistributionValue]) -> np.ndarray:
    return make_matrix(cache.rows, cache.cols, fn)


def _aggregate_by_source(
    cache: CacheLayer,
    pairs: Iterable[tuple[CellId, DistributionValue]],
) -> dict[CellId, DistributionValue]:
    """Sum per source for rival benefits; keep the largest delivery for non-rival ones."""

    grouped: dict[CellId, list[DistributionValue]] = defaultdict(list)
    for cell, weight in pairs:
        grouped[cell].append(weight)

    if get_run_parameters().benefit_type == "rival":
        return {cell: rv_sum(weights) for cell, weights in grouped.items()}
    return {cell: max(weights, key=lambda rv: rv.mean) for cell, weights in grouped.items()}


def _source_reach(cache: CacheLayer) -> dict[CellId, DistributionValue]:
    reach = _aggregate_by_source(cache, ((c.source_id, c.possible_weight) for c in cache.carriers()))
    return {cell: rv_cap(weight, cache.locations[cell].source) for cell, weight in reach.items()}


def _source_delivered(cache: CacheLayer) -> dict[CellId, DistributionValue]:
    return _aggregate_by_source(cache, ((c.source_id, c.actual_weight) for c in cache.carriers()))


def _use_arrivals(cache: CacheLayer) -> dict[CellId, list[ServiceCarrier]]:
    arrivals: dict[CellId, list[ServiceCarrier]] = defaultdict(list)
    for carrier in cache.carriers():
        arrivals[carrier.use_id].append(carrier)
    return arrivals


def _use_reach(cache: CacheLayer, cell: CellId, carriers: list[ServiceCarrier]) -> DistributionValue:
    reach = rv_sum(c.possible_weight for c in carriers)
    if get_run_parameters().use_type == "finite":
        return rv_cap(reach, cache.locations[cell].use)
    return reach


def _use_possible(cache: CacheLayer, cell: CellId, carriers: list[ServiceCarrier]) -> DistributionValue:
    delivered = rv_sum(c.actual_weight for c in carriers)
    return rv_cap(delivered, _use_reach(cache, cell, carriers))


def _consumed(cache: CacheLayer) -> list[_Consumed]:
    """Per-carrier consumption after rival rationing and finite use demand."""

    params = get_run_parameters()
    carriers = cache.carriers()

    ration: dict[CellId, float] = {}
    if params.benefit_type == "rival" and params.source_type == "finite":
        promised: dict[CellId, float] = defaultdict(float)
        for carrier in carriers:
            promised[carrier.source_id] += carrier.actual_weight.mean
        for cell, total in promised.items():
            supply = cache.locations[cell].source.mean
            ration[cell] = min(1.0, supply / total) if total > 0.0 else 1.0

    rationed = [rv_scale(c.actual_weight, ration.get(c.source_id, 1.0)) for c in carriers]

    demand_factor: dict[CellId, float] = {}
    if params.use_type == "finite":
        arriving: dict[CellId, float] = defaultdict(float)
        for carrier, weight in zip(carriers, rationed):
            arriving[carrier.use_id] += weight.mean
        for cell, total in arriving.items():
            demand = cache.locations[cell].use.mean
            demand_factor[cell] = min(1.0, demand / total) if total > 0.0 else 1.0

    return [
        _Consumed(carrier, rv_scale(weight, demand_factor.get(carrier.use_id, 1.0)))
        for carrier, weight in zip(carriers, rationed)
    ]


def _flow_layer(
    cache: CacheLayer,
    flow_model: str,
    weighted: list[tuple[ServiceCarrier, DistributionValue]],
) -> np.ndarray:
    if not get_model(flow_model).spatial:
        return zero_layer(cache.rows, cache.cols)

    passing: dict[CellId, list[DistributionValue]] = defaultdict(list)
    for carrier, weight in weighted:
        for cell in carrier.route[1:]:
            passing[cell].append(weight)
    return _cache_layer(cache, lambda cell: rv_sum(passing.get(cell, ())))
