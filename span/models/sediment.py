"""Sediment model: material moves downstream until a pit, the grid edge, or a loop."""

from __future__ import annotations

import logging
from typing import Mapping

from span.config import ALTITUDE_LAYER, HYDROSHEDS_LAYER
from span.locations import Location, ServiceCarrier
from span.matrix import CellId
from span.models.base import FlowModel, absorb, register_model, step_length
from span.preprocess import FLOW_DIRECTION_OFFSETS, flow_direction_code


logger = logging.getLogger(__name__)


@register_model("Sediment")
class SedimentModel(FlowModel):
    """Routes each source along D8 directions, or steepest descent on altitude."""

    def distribute(self, locations: Mapping[CellId, Location], rows: int, cols: int) -> None:
        counts = self.map_sources(lambda loc: self._route(loc, locations, rows, cols), locations)
        logger.debug("Sediment routed %d sources, %d carriers", len(counts), sum(counts))

    def _route(self, source: Location, locations: Mapping[CellId, Location], rows: int, cols: int) -> int:
        path = downstream_path(source.id, locations, rows, cols)
        weight = source.source
        effects = {}
        deposited = 0
        for k, cell in enumerate(path):
            location = locations[cell]
            weight, absorbed = absorb(weight, location.sink)
            if absorbed.mean > 0.0:
                effects[cell] = absorbed
            if location.use.mean > 0.0:
                carrier = ServiceCarrier(
                    source_id=source.id,
                    use_id=cell,
                    route=tuple(path[: k + 1]),
                    possible_weight=source.source,
                    actual_weight=weight,
                    sink_effects=dict(effects),
                )
                if self.deposit(locations, carrier):
                    deposited += 1
        return deposited


def downstream_path(
    start: CellId,
    locations: Mapping[CellId, Location],
    rows: int,
    cols: int,
) -> list[CellId]:
    """Cells visited from `start` until flow stops or would revisit a cell."""

    path = [start]
    visited = {start}
    cell = start
    while True:
        nxt = _next_cell(locations[cell], locations, rows, cols)
        if nxt is None or nxt in visited:
            return path
        path.append(nxt)
        visited.add(nxt)
        cell = nxt


def _next_cell(
    location: Location,
    locations: Mapping[CellId, Location],
    rows: int,
    cols: int,
) -> CellId | None:
    if HYDROSHEDS_LAYER in location.flow_features:
        code = flow_direction_code(location.flow_features[HYDROSHEDS_LAYER])
        if code is None:
            return None
        dy, dx = FLOW_DIRECTION_OFFSETS[code]
        ni, nj = location.id[0] + dy, location.id[1] + dx
        if 0 <= ni < rows and 0 <= nj < cols:
            return (ni, nj)
        return None

    height = location.feature(ALTITUDE_LAYER).mean
    best_drop = 0.0
    best: CellId | None = None
    for neighbor in location.neighbors:
        drop = (height - locations[neighbor].feature(ALTITUDE_LAYER).mean) / step_length(location.id, neighbor)
        if drop > best_drop:
            best_drop = drop
            best = neighbor
    return best
