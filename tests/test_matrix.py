from __future__ import annotations

import numpy as np
import pytest

from span.matrix import (
    as_layer,
    get_neighbors,
    grids_align,
    is_matrix,
    layer_means,
    make_matrix,
    resample_matrix,
)
from span.randvars import DistributionValue, constant, rv_average


def test_neighbors_are_clipped_at_edges_without_wraparound() -> None:
    assert len(get_neighbors((1, 1), 3, 3)) == 8
    assert set(get_neighbors((0, 0), 3, 3)) == {(0, 1), (1, 0), (1, 1)}
    assert len(get_neighbors((0, 1), 3, 3)) == 5
    assert get_neighbors((0, 0), 1, 1) == ()
    assert (2, 2) not in get_neighbors((0, 0), 3, 3)


def test_downsample_averages_blocks() -> None:
    layer = as_layer(np.arange(16, dtype=np.float64).reshape(4, 4))

    small = resample_matrix(2, 2, rv_average, layer)

    np.testing.assert_allclose(layer_means(small), [[2.5, 4.5], [10.5, 12.5]])


def test_uneven_blocks_cover_every_cell() -> None:
    layer = as_layer(np.ones((5, 5)))

    counts = resample_matrix(2, 2, len, layer)

    assert counts.tolist() == [[4, 6], [6, 9]]


def test_uniform_round_trip_keeps_value() -> None:
    layer = as_layer(np.full((6, 6), 3.7))

    small = resample_matrix(3, 3, rv_average, layer)
    restored = resample_matrix(6, 6, rv_average, small)

    assert restored.shape == (6, 6)
    assert all(cell == constant(3.7) for cell in restored.ravel())


def test_upsample_replicates_cells() -> None:
    layer = as_layer([[1.0, 2.0], [3.0, 4.0]])

    big = resample_matrix(4, 4, rv_average, layer)

    np.testing.assert_allclose(
        layer_means(big),
        [[1, 1, 2, 2], [1, 1, 2, 2], [3, 3, 4, 4], [3, 3, 4, 4]],
    )


def test_as_layer_accepts_numbers_and_distribution_values() -> None:
    rv = DistributionValue((1.0, 3.0), (0.5, 0.5))
    layer = as_layer([[rv, 2], [0.5, np.float32(1.5)]])

    assert layer.dtype == object
    assert layer[0, 0] is rv
    assert layer[0, 1] == constant(2.0)


def test_as_layer_rejects_malformed_grids() -> None:
    assert not is_matrix([[1, 2], [3]])
    assert not is_matrix([])
    assert not is_matrix("ab")

    with pytest.raises(ValueError):
        as_layer([[1, 2], [3]])
    with pytest.raises(TypeError):
        as_layer([["a", "b"]])
    with pytest.raises(TypeError):
        as_layer([[True, False]])
    with pytest.raises(ValueError):
        as_layer(np.array([[np.nan, 1.0]]))


def test_make_matrix_and_alignment() -> None:
    layer = make_matrix(2, 3, lambda cell: cell[0] * 10 + cell[1])

    assert layer.tolist() == [[0, 1, 2], [10, 11, 12]]
    assert grids_align(layer, np.zeros((2, 3)))
    assert not grids_align(layer, np.zeros((3, 2)))
    with pytest.raises(ValueError):
        make_matrix(0, 3, lambda cell: 0)


def test_upsample_inverts_uneven_downsample_blocks() -> None:
    values = np.zeros((5, 5))
    values[2:, :] = 3.0
    layer = as_layer(values)

    small = resample_matrix(2, 2, rv_average, layer)
    restored = resample_matrix(5, 5, rv_average, small)

    np.testing.assert_allclose(layer_means(small), [[0.0, 0.0], [3.0, 3.0]])
    np.testing.assert_allclose(layer_means(restored), values)
