"""Location graph, carrier caches, and the cache layer produced by flow models."""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Iterator, Mapping

import numpy as np

from span.matrix import CellId, get_neighbors, grids_align
from span.randvars import ZERO, DistributionValue


@dataclass(frozen=True)
class ServiceCarrier:
    """One unit of service traced from a source location to a use location."""

    source_id: CellId
    use_id: CellId
    route: tuple[CellId, ...]
    possible_weight: DistributionValue
    actual_weight: DistributionValue
    sink_effects: Mapping[CellId, DistributionValue] = field(default_factory=dict)

    def sort_key(self) -> tuple:
        return (self.source_id, self.use_id, self.route)


class CarrierCache:
    """Append-only carrier collection safe for concurrent writers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._carriers: list[ServiceCarrier] = []

    def append(self, carrier: ServiceCarrier) -> None:
        with self._lock:
            self._carriers.append(carrier)

    def snapshot(self) -> tuple[ServiceCarrier, ...]:
        with self._lock:
            return tuple(self._carriers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._carriers)

    def __iter__(self) -> Iterator[ServiceCarrier]:
        return iter(self.snapshot())


@dataclass(frozen=True)
class Location:
    """One landscape cell with its layer values and carrier deposits."""

    id: CellId
    neighbors: tuple[CellId, ...]
    source: DistributionValue
    sink: DistributionValue
    use: DistributionValue
    flow_features: Mapping[str, DistributionValue]
    carrier_cache: CarrierCache = field(default_factory=CarrierCache, compare=False, repr=False)

    def feature(self, name: str) -> DistributionValue:
        return self.flow_features.get(name, ZERO)


@dataclass(frozen=True)
class CacheLayer:
    """All locations of a finished run, queried by the result analyzer."""

    locations: Mapping[CellId, Location]
    rows: int
    cols: int
    flow_model: str

    def carriers(self) -> list[ServiceCarrier]:
        """Every deposited carrier in a scheduling-independent order."""

        collected: list[ServiceCarrier] = []
        for location in self.locations.values():
            collected.extend(location.carrier_cache.snapshot())
        collected.sort(key=ServiceCarrier.sort_key)
        return collected

    def carriers_at(self, cell: CellId) -> list[ServiceCarrier]:
        return sorted(self.locations[cell].carrier_cache.snapshot(), key=ServiceCarrier.sort_key)

    def carrier_count(self) -> int:
        return sum(len(location.carrier_cache) for location in self.locations.values())


def make_location_map(
    source_layer: np.ndarray,
    sink_layer: np.ndarray | None,
    use_layer: np.ndarray | None,
    flow_layers: Mapping[str, np.ndarray | None],
) -> dict[CellId, Location]:
    """Return one Location per cell of `source_layer`, keyed by (row, col)."""

    present = [layer for layer in (source_layer, sink_layer, use_layer, *flow_layers.values()) if layer is not None]
    if not grids_align(*present):
        raise ValueError("source, sink, use, and flow layers must share dimensions")

    rows, cols = source_layer.shape
    locations: dict[CellId, Location] = {}
    for i in range(rows):
        for j in range(cols):
            cell = (i, j)
            locations[cell] = Location(
                id=cell,
                neighbors=get_neighbors(cell, rows, cols),
                source=source_layer[cell],
                sink=_value_at(sink_layer, cell),
                use=_value_at(use_layer, cell),
                flow_features={name: _value_at(layer, cell) for name, layer in flow_layers.items()},
            )
    return locations


def _value_at(layer: np.ndarray | None, cell: CellId) -> DistributionValue:
    if layer is None:
        return ZERO
    return layer[cell]
