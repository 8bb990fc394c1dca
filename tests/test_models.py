from __future__ import annotations

import math

import numpy as np
import pytest

from span.config import RunParameters, SpanConfigError
from span.locations import CacheLayer
from span.matrix import as_layer
from span.models import UnknownFlowModelError, available_models, distribute_flow, get_model
from span.models.line_of_sight import line_cells
from span.params import run_parameters


def _layer(values) -> np.ndarray:
    return as_layer(np.asarray(values, dtype=np.float64))


def _run(
    flow_model: str,
    source,
    use,
    sink=None,
    flows: dict | None = None,
    params: RunParameters | None = None,
) -> CacheLayer:
    source_layer = _layer(source)
    sink_layer = _layer(sink) if sink is not None else as_layer(np.zeros(source_layer.shape))
    flow_layers = {name: _layer(values) for name, values in (flows or {}).items()}
    with run_parameters(params or RunParameters()):
        return distribute_flow(flow_model, source_layer, sink_layer, _layer(use), flow_layers)


def test_registered_models() -> None:
    assert available_models() == ("Carbon", "LineOfSight", "Proximity", "Sediment")
    assert get_model("Proximity").name == "Proximity"


def test_unknown_model_fails_before_building_locations(monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise AssertionError("location map built for an unknown model")

    monkeypatch.setattr("span.models.base.make_location_map", fail)

    with pytest.raises(UnknownFlowModelError) as excinfo:
        _run("Unknown", [[1.0]], [[1.0]])
    assert isinstance(excinfo.value, SpanConfigError)


def test_proximity_decays_with_distance() -> None:
    cache = _run("Proximity", [[10.0, 0, 0, 0, 0]], [[0, 0, 0, 0, 1.0]])

    carriers = cache.carriers()
    assert len(carriers) == 1
    carrier = carriers[0]
    assert carrier.route == ((0, 0), (0, 1), (0, 2), (0, 3), (0, 4))
    assert carrier.possible_weight.mean == pytest.approx(10.0 * 0.5 ** (4 / 5))
    assert carrier.actual_weight == carrier.possible_weight


def test_proximity_sinks_absorb_along_route() -> None:
    cache = _run("Proximity", [[10.0, 0, 0, 0, 0]], [[0, 0, 0, 0, 1.0]], sink=[[0, 0, 3.0, 0, 0]])

    carrier = cache.carriers()[0]
    assert carrier.actual_weight.mean == pytest.approx(carrier.possible_weight.mean - 3.0)
    assert carrier.sink_effects[(0, 2)].mean == pytest.approx(3.0)


def test_proximity_stops_below_transition_threshold() -> None:
    source = np.zeros((1, 12))
    source[0, 0] = 0.02
    use = np.zeros((1, 12))
    use[0, 11] = 1.0

    cache = _run("Proximity", source, use, params=RunParameters(trans_threshold=0.01))

    assert cache.carrier_count() == 0


def test_sediment_follows_steepest_descent() -> None:
    cache = _run(
        "Sediment",
        [[6.0, 0, 0, 0]],
        [[0, 0, 0, 1.0]],
        sink=[[0, 0, 2.0, 0]],
        flows={"Altitude": [[4.0, 3.0, 2.0, 1.0]]},
    )

    carriers = cache.carriers()
    assert len(carriers) == 1
    carrier = carriers[0]
    assert carrier.route == ((0, 0), (0, 1), (0, 2), (0, 3))
    assert carrier.possible_weight.mean == pytest.approx(6.0)
    assert carrier.actual_weight.mean == pytest.approx(4.0)
    assert set(carrier.sink_effects) == {(0, 2)}


def test_sediment_follows_flow_directions() -> None:
    # (0,0) drains south, (1,0) drains east, (1,1) is a pit.
    cache = _run(
        "Sediment",
        [[3.0, 0], [0, 0]],
        [[0, 0], [0, 1.0]],
        flows={"Hydrosheds": [[4, 4], [1, 0]]},
    )

    carriers = cache.carriers()
    assert [c.route for c in carriers] == [((0, 0), (1, 0), (1, 1))]


def test_sediment_stays_put_on_flat_terrain() -> None:
    cache = _run("Sediment", [[3.0, 0]], [[0, 1.0]], flows={"Altitude": [[1.0, 1.0]]})

    assert cache.carrier_count() == 0


def test_line_of_sight_is_blocked_by_ridges() -> None:
    source = [[5.0, 0, 0, 0, 0]]
    use = [[0, 0, 0, 0, 1.0]]

    open_view = _run("LineOfSight", source, use, flows={"Altitude": [[0, 0, 0, 0, 0]]})
    ridge = _run("LineOfSight", source, use, flows={"Altitude": [[0, 0, 50.0, 0, 0]]})

    open_carrier = open_view.carriers()[0]
    blocked_carrier = ridge.carriers()[0]
    assert open_carrier.actual_weight == open_carrier.possible_weight
    assert blocked_carrier.possible_weight.mean == pytest.approx(5.0 * 0.5 ** (4 / 5))
    assert blocked_carrier.actual_weight.mean == 0.0


def test_line_cells_are_contiguous_and_inclusive() -> None:
    cells = line_cells((0, 0), (2, 4))

    assert cells[0] == (0, 0)
    assert cells[-1] == (2, 4)
    assert len(cells) == 5
    for a, b in zip(cells, cells[1:]):
        assert max(abs(a[0] - b[0]), abs(a[1] - b[1])) == 1


def test_carbon_shares_pool_by_use() -> None:
    cache = _run("Carbon", [[8.0, 0], [0, 0]], [[0, 1.0], [3.0, 0]], sink=[[0, 0], [0, 2.0]])

    carriers = {c.use_id: c for c in cache.carriers()}
    assert set(carriers) == {(0, 1), (1, 0)}
    assert carriers[(0, 1)].possible_weight.mean == pytest.approx(2.0)
    assert carriers[(1, 0)].possible_weight.mean == pytest.approx(6.0)
    assert carriers[(0, 1)].actual_weight.mean == pytest.approx(1.5)
    assert carriers[(1, 0)].actual_weight.mean == pytest.approx(4.5)
    assert all(c.route == () for c in carriers.values())
    absorbed = sum(c.sink_effects[(1, 1)].mean for c in carriers.values())
    assert math.isclose(absorbed, 2.0)
