"""Flow model interface, registry, and dispatcher."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import contextvars
import logging
import math
import time
from typing import Callable, Iterable, Mapping, TypeVar

import numpy as np

from span.config import RunParameters, SpanConfigError
from span.locations import CacheLayer, Location, ServiceCarrier, make_location_map
from span.matrix import CellId
from span.params import get_run_parameters
from span.randvars import ZERO, DistributionValue, rv_difference, rv_min, rv_scale


logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# Cells over which a proximity or view benefit halves.
DECAY_HALF_DISTANCE = 5.0
_SQRT2 = math.sqrt(2.0)


class UnknownFlowModelError(SpanConfigError):
    """Raised when a flow model name is not registered."""


class FlowModel:
    """Distributes service flow over a location graph by depositing carriers."""

    name: str = ""
    spatial: bool = True

    def __init__(self, params: RunParameters) -> None:
        self.params = params

    def distribute(self, locations: Mapping[CellId, Location], rows: int, cols: int) -> None:
        raise NotImplementedError

    def map_sources(
        self,
        fn: Callable[[Location], _T],
        locations: Mapping[CellId, Location],
        *,
        max_workers: int | None = None,
    ) -> list[_T]:
        """Apply `fn` to every location with source value, on worker threads.

        Each task runs inside a copy of the caller's context so run
        parameters stay visible to the workers.
        """

        sources = [loc for loc in locations.values() if loc.source.mean > 0.0]
        if not sources:
            return []
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(contextvars.copy_context().run, fn, loc) for loc in sources]
            return [future.result() for future in futures]

    def deposit(self, locations: Mapping[CellId, Location], carrier: ServiceCarrier) -> bool:
        """Store `carrier` at its use location unless its flow is negligible."""

        if carrier.possible_weight.mean < self.params.trans_threshold:
            return False
        locations[carrier.use_id].carrier_cache.append(carrier)
        return True


_MODELS: dict[str, type[FlowModel]] = {}


def register_model(name: str) -> Callable[[type[FlowModel]], type[FlowModel]]:
    def decorator(cls: type[FlowModel]) -> type[FlowModel]:
        if name in _MODELS:
            raise ValueError(f"flow model already registered: {name}")
        cls.name = name
        _MODELS[name] = cls
        return cls

    return decorator


def available_models() -> tuple[str, ...]:
    return tuple(sorted(_MODELS))


def get_model(name: str) -> type[FlowModel]:
    try:
        return _MODELS[name]
    except (KeyError, TypeError):
        options = ", ".join(available_models())
        raise UnknownFlowModelError(f"Unsupported flow model {name!r}; expected one of: {options}") from None


def distribute_flow(
    flow_model: str,
    source_layer: np.ndarray,
    sink_layer: np.ndarray,
    use_layer: np.ndarray,
    flow_layers: Mapping[str, np.ndarray],
) -> CacheLayer:
    """Run the named model over the working-resolution layers and return its cache layer."""

    model_cls = get_model(flow_model)
    model = model_cls(get_run_parameters())

    rows, cols = source_layer.shape
    locations = make_location_map(source_layer, sink_layer, use_layer, flow_layers)

    start = time.perf_counter()
    model.distribute(locations, rows, cols)
    cache = CacheLayer(locations=locations, rows=rows, cols=cols, flow_model=flow_model)
    logger.info(
        "%s model deposited %d carriers in %.3f s",
        flow_model,
        cache.carrier_count(),
        time.perf_counter() - start,
    )
    return cache


def step_length(a: CellId, b: CellId) -> float:
    return _SQRT2 if a[0] != b[0] and a[1] != b[1] else 1.0


def distance_decay(distance: float) -> float:
    return 0.5 ** (distance / DECAY_HALF_DISTANCE)


def absorb(
    weight: DistributionValue,
    sink: DistributionValue,
) -> tuple[DistributionValue, DistributionValue]:
    """Split `weight` into (remaining, absorbed) at a sink of capacity `sink`."""

    if sink.mean <= 0.0 or weight.mean <= 0.0:
        return weight, ZERO
    absorbed = rv_min(weight, sink)
    return rv_difference(weight, absorbed), absorbed


def absorb_along(
    weight: DistributionValue,
    cells: Iterable[CellId],
    locations: Mapping[CellId, Location],
) -> tuple[DistributionValue, dict[CellId, DistributionValue]]:
    """Pass `weight` through the sinks on `cells` in order."""

    effects: dict[CellId, DistributionValue] = {}
    for cell in cells:
        weight, absorbed = absorb(weight, locations[cell].sink)
        if absorbed.mean > 0.0:
            effects[cell] = absorbed
    return weight, effects


def decayed(weight: DistributionValue, distance: float) -> DistributionValue:
    return rv_scale(weight, distance_decay(distance))
