"""Carbon model: a non-spatial pool shared among users by their emissions."""

from __future__ import annotations

import logging
from typing import Mapping

from span.locations import Location, ServiceCarrier
from span.matrix import CellId
from span.models.base import FlowModel, register_model
from span.randvars import rv_scale


logger = logging.getLogger(__name__)


@register_model("Carbon")
class CarbonModel(FlowModel):
    """Each source serves every use in proportion to its share of total use.

    Sinks (carbon releases) remove the same fraction of every carrier, equal
    to total sink over total source and capped at everything.
    """

    spatial = False

    def distribute(self, locations: Mapping[CellId, Location], rows: int, cols: int) -> None:
        ordered = [locations[cell] for cell in sorted(locations)]
        uses = [loc for loc in ordered if loc.use.mean > 0.0]
        sinks = [loc for loc in ordered if loc.sink.mean > 0.0]
        total_use = sum(loc.use.mean for loc in uses)
        total_source = sum(loc.source.mean for loc in ordered if loc.source.mean > 0.0)
        total_sink = sum(loc.sink.mean for loc in sinks)
        if total_use <= 0.0 or total_source <= 0.0:
            logger.debug("Carbon pool is empty: source=%.3f use=%.3f", total_source, total_use)
            return

        loss = min(1.0, total_sink / total_source)

        def share(source: Location) -> int:
            deposited = 0
            for use in uses:
                possible = rv_scale(source.source, use.use.mean / total_use)
                effects = {}
                if loss > 0.0:
                    effects = {sink.id: rv_scale(possible, loss * sink.sink.mean / total_sink) for sink in sinks}
                carrier = ServiceCarrier(
                    source_id=source.id,
                    use_id=use.id,
                    route=(),
                    possible_weight=possible,
                    actual_weight=rv_scale(possible, 1.0 - loss),
                    sink_effects=effects,
                )
                if self.deposit(locations, carrier):
                    deposited += 1
            return deposited

        counts = self.map_sources(share, locations)
        logger.debug("Carbon shared %d sources among %d uses, %d carriers", len(counts), len(uses), sum(counts))
