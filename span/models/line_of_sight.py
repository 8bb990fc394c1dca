"""Line-of-sight model: views from use locations to sources, occluded by terrain."""

from __future__ import annotations

import logging
import math
from typing import Mapping, Sequence

import numpy as np

from span.config import ALTITUDE_LAYER
from span.locations import Location, ServiceCarrier
from span.matrix import CellId
from span.models.base import FlowModel, absorb_along, decayed, register_model
from span.randvars import ZERO


logger = logging.getLogger(__name__)

VIEWER_HEIGHT = 2.0


@register_model("LineOfSight")
class LineOfSightModel(FlowModel):
    """Pairs every source with every use along a straight sight line."""

    def distribute(self, locations: Mapping[CellId, Location], rows: int, cols: int) -> None:
        uses = [locations[cell] for cell in sorted(locations) if locations[cell].use.mean > 0.0]
        counts = self.map_sources(lambda loc: self._view(loc, uses, locations), locations)
        logger.debug("LineOfSight traced %d sources against %d uses, %d carriers", len(counts), len(uses), sum(counts))

    def _view(self, source: Location, uses: Sequence[Location], locations: Mapping[CellId, Location]) -> int:
        deposited = 0
        for use in uses:
            line = line_cells(source.id, use.id)
            distance = math.hypot(use.id[0] - source.id[0], use.id[1] - source.id[1])
            possible = decayed(source.source, distance)
            if possible.mean < self.params.trans_threshold:
                continue
            if is_occluded(line, locations):
                actual, effects = ZERO, {}
            else:
                actual, effects = absorb_along(possible, line, locations)
            carrier = ServiceCarrier(
                source_id=source.id,
                use_id=use.id,
                route=line,
                possible_weight=possible,
                actual_weight=actual,
                sink_effects=effects,
            )
            if self.deposit(locations, carrier):
                deposited += 1
        return deposited


def line_cells(start: CellId, end: CellId) -> tuple[CellId, ...]:
    """Grid cells on the straight segment from `start` to `end`, inclusive."""

    steps = int(max(abs(end[0] - start[0]), abs(end[1] - start[1]))) + 1
    ys = np.round(np.linspace(start[0], end[0], steps)).astype(np.int32)
    xs = np.round(np.linspace(start[1], end[1], steps)).astype(np.int32)
    return tuple((int(y), int(x)) for y, x in zip(ys, xs))


def is_occluded(line: Sequence[CellId], locations: Mapping[CellId, Location]) -> bool:
    """True when terrain between the source (line[0]) and viewer (line[-1]) rises above the sight line."""

    if len(line) <= 2:
        return False
    source, viewer = line[0], line[-1]
    eye = locations[viewer].feature(ALTITUDE_LAYER).mean + VIEWER_HEIGHT
    target = locations[source].feature(ALTITUDE_LAYER).mean
    total = math.hypot(source[0] - viewer[0], source[1] - viewer[1])
    for cell in line[1:-1]:
        t = math.hypot(cell[0] - viewer[0], cell[1] - viewer[1]) / total
        sight = eye + (target - eye) * t
        if locations[cell].feature(ALTITUDE_LAYER).mean > sight:
            return True
    return False
