from __future__ import annotations

import numpy as np
import pytest

from span.matrix import as_layer, layer_means
from span.preprocess import (
    aggregate_flow_dirs,
    preprocess_flow_layers,
    preprocess_layer,
    scaled_dimensions,
    zero_layer_below_threshold,
)
from span.randvars import ZERO, constant


def test_thresholding_is_idempotent() -> None:
    layer = as_layer([[0.1, 0.5, 2.0], [0.49, 0.0, 7.0]])

    once = zero_layer_below_threshold(0.5, layer)
    twice = zero_layer_below_threshold(0.5, once)

    assert once.tolist() == twice.tolist()
    np.testing.assert_allclose(layer_means(once), [[0.0, 0.5, 2.0], [0.0, 0.0, 7.0]])


def test_absent_layer_becomes_zero_layer() -> None:
    layer = preprocess_layer(None, 0.0, 3, 2)

    assert layer.shape == (3, 2)
    assert all(cell == ZERO for cell in layer.ravel())


def test_threshold_applies_after_resampling() -> None:
    layer = as_layer([[1.0, 0.0], [0.0, 0.0]])

    scaled = preprocess_layer(layer, 0.5, 1, 1)

    assert scaled[0, 0] == ZERO


def test_scaled_dimensions_truncate() -> None:
    assert scaled_dimensions(5, 7, 2) == (2, 3)
    assert scaled_dimensions(4, 4, 1) == (4, 4)
    with pytest.raises(ValueError):
        scaled_dimensions(4, 4, 0.5)


def test_flow_directions_aggregate_by_vector_sum() -> None:
    east, southeast, south, west = constant(1), constant(2), constant(4), constant(16)

    assert aggregate_flow_dirs([east, east, southeast]) == constant(1)
    assert aggregate_flow_dirs([east, west]) == ZERO
    assert aggregate_flow_dirs([ZERO, constant(3), south]) == constant(4)
    assert aggregate_flow_dirs([]) == ZERO


def test_flow_layers_resample_by_kind() -> None:
    flows = {
        "Hydrosheds": as_layer(np.full((2, 2), 64.0)),
        "Altitude": as_layer([[1.0, 3.0], [5.0, 7.0]]),
        "Roads": None,
    }

    scaled = preprocess_flow_layers(flows, 1, 1)

    assert scaled["Hydrosheds"][0, 0] == constant(64)
    assert scaled["Altitude"][0, 0].mean == pytest.approx(4.0)
    assert scaled["Roads"][0, 0] == ZERO
