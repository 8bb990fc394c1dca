"""Grid helpers for layers of distribution values."""

from __future__ import annotations

from numbers import Real
from typing import Any, Callable, Iterable, Sequence

import numpy as np

from span.randvars import ZERO, DistributionValue, constant


CellId = tuple[int, int]


def is_matrix(obj: Any) -> bool:
    """True for a non-empty rectangular 2D array or sequence of equal-length rows."""

    if isinstance(obj, np.ndarray):
        return obj.ndim == 2 and obj.shape[0] > 0 and obj.shape[1] > 0
    if isinstance(obj, (str, bytes)) or not isinstance(obj, Sequence):
        return False
    if len(obj) == 0:
        return False
    widths = set()
    for row in obj:
        if isinstance(row, (str, bytes)) or not isinstance(row, (Sequence, np.ndarray)):
            return False
        widths.add(len(row))
    return len(widths) == 1 and widths.pop() > 0


def as_layer(obj: Any) -> np.ndarray:
    """Convert a 2D grid of numbers or distribution values into an object layer."""

    if not is_matrix(obj):
        raise ValueError("layer must be a non-empty rectangular 2D grid")
    if isinstance(obj, np.ndarray) and obj.dtype != object:
        if not np.issubdtype(obj.dtype, np.number) or np.issubdtype(obj.dtype, np.complexfloating):
            raise TypeError(f"layer has unsupported dtype {obj.dtype}")
        if not np.all(np.isfinite(obj)):
            raise ValueError("layer contains non-finite values")
        rows, cols = obj.shape
        return make_matrix(rows, cols, lambda cell: constant(obj[cell]))

    rows = len(obj)
    cols = len(obj[0])
    return make_matrix(rows, cols, lambda cell: _as_value(obj[cell[0]][cell[1]]))


def make_matrix(rows: int, cols: int, fill: Callable[[CellId], Any]) -> np.ndarray:
    """Build a rows x cols object layer with `fill(id)` at every cell."""

    if rows <= 0 or cols <= 0:
        raise ValueError("rows and cols must be positive")
    layer = np.empty((rows, cols), dtype=object)
    for i in range(rows):
        for j in range(cols):
            layer[i, j] = fill((i, j))
    return layer


def zero_layer(rows: int, cols: int) -> np.ndarray:
    return make_matrix(rows, cols, lambda _: ZERO)


def map_matrix(fn: Callable[[Any], Any], layer: np.ndarray) -> np.ndarray:
    rows, cols = layer.shape
    return make_matrix(rows, cols, lambda cell: fn(layer[cell]))


def grids_align(*layers: np.ndarray) -> bool:
    """True when every layer shares the same (rows, cols) shape."""

    shapes = {np.shape(layer) for layer in layers}
    return len(shapes) <= 1


def get_neighbors(cell: CellId, rows: int, cols: int) -> tuple[CellId, ...]:
    """8-connected neighbors of `cell`, clipped at the grid edges."""

    i, j = cell
    neighbors: list[CellId] = []
    for ni in range(max(0, i - 1), min(rows, i + 2)):
        for nj in range(max(0, j - 1), min(cols, j + 2)):
            if ni == i and nj == j:
                continue
            neighbors.append((ni, nj))
    return tuple(neighbors)


def resample_matrix(
    rows: int,
    cols: int,
    aggregate: Callable[[Iterable[Any]], Any],
    layer: np.ndarray,
) -> np.ndarray:
    """Resample `layer` to rows x cols, applying `aggregate` over each covering block.

    Downsampling aggregates blocks of source cells; upsampling replicates
    each source cell over the target cells it covers.
    """

    src_rows, src_cols = layer.shape
    row_spans = _block_spans(src_rows, rows)
    col_spans = _block_spans(src_cols, cols)

    def cell_value(cell: CellId) -> Any:
        r0, r1 = row_spans[cell[0]]
        c0, c1 = col_spans[cell[1]]
        return aggregate(layer[r0:r1, c0:c1].ravel().tolist())

    return make_matrix(rows, cols, cell_value)


def layer_means(layer: np.ndarray) -> np.ndarray:
    """Float array of each cell's mean."""

    rows, cols = layer.shape
    means = np.zeros((rows, cols), dtype=np.float64)
    for i in range(rows):
        for j in range(cols):
            means[i, j] = layer[i, j].mean
    return means


def _block_spans(src: int, dst: int) -> list[tuple[int, int]]:
    if dst <= 0:
        raise ValueError("target dimension must be positive")
    if dst > src:
        # Each target cell reads the coarse cell whose downsampling block contains it.
        spans: list[tuple[int, int]] = [(0, 1)] * dst
        for coarse, (start, stop) in enumerate(_block_spans(dst, src)):
            for k in range(start, stop):
                spans[k] = (coarse, coarse + 1)
        return spans
    ratio = src / dst
    spans = []
    for k in range(dst):
        start = min(int(np.floor(k * ratio)), src - 1)
        stop = max(int(np.floor((k + 1) * ratio)), start + 1)
        spans.append((start, min(stop, src)))
    return spans


def _as_value(value: Any) -> DistributionValue:
    if isinstance(value, DistributionValue):
        return value
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (Real, np.number)):
        raise TypeError(f"layer cells must be numbers or DistributionValue, got {type(value).__name__}")
    if not np.isfinite(float(value)):
        raise ValueError("layer contains non-finite values")
    return constant(float(value))
