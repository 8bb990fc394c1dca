"""Proximity model: benefit spreads outward from each source and fades with distance."""

from __future__ import annotations

import heapq
import logging
import math
from typing import Mapping

from span.locations import Location, ServiceCarrier
from span.matrix import CellId
from span.models.base import FlowModel, absorb_along, decayed, distance_decay, register_model, step_length


logger = logging.getLogger(__name__)


@register_model("Proximity")
class ProximityModel(FlowModel):
    """Shortest-path spread over the 8-connected grid with exponential decay."""

    def distribute(self, locations: Mapping[CellId, Location], rows: int, cols: int) -> None:
        counts = self.map_sources(lambda loc: self._spread(loc, locations), locations)
        logger.debug("Proximity spread from %d sources, %d carriers", len(counts), sum(counts))

    def _spread(self, source: Location, locations: Mapping[CellId, Location]) -> int:
        threshold = self.params.trans_threshold
        strength = source.source.mean
        best: dict[CellId, float] = {source.id: 0.0}
        parent: dict[CellId, CellId | None] = {source.id: None}
        heap: list[tuple[float, CellId]] = [(0.0, source.id)]
        deposited = 0

        while heap:
            dist, cell = heapq.heappop(heap)
            if dist > best.get(cell, math.inf):
                continue
            # Distances pop in increasing order, so every remaining cell is weaker.
            if strength * distance_decay(dist) < threshold:
                break

            if locations[cell].use.mean > 0.0:
                route = _route_to(cell, parent)
                possible = decayed(source.source, dist)
                actual, effects = absorb_along(possible, route, locations)
                carrier = ServiceCarrier(
                    source_id=source.id,
                    use_id=cell,
                    route=route,
                    possible_weight=possible,
                    actual_weight=actual,
                    sink_effects=effects,
                )
                if self.deposit(locations, carrier):
                    deposited += 1

            for neighbor in locations[cell].neighbors:
                candidate = dist + step_length(cell, neighbor)
                if candidate < best.get(neighbor, math.inf):
                    best[neighbor] = candidate
                    parent[neighbor] = cell
                    heapq.heappush(heap, (candidate, neighbor))

        return deposited


def _route_to(cell: CellId, parent: Mapping[CellId, CellId | None]) -> tuple[CellId, ...]:
    path = [cell]
    step = parent[cell]
    while step is not None:
        path.append(step)
        step = parent[step]
    return tuple(reversed(path))
