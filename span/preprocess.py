"""Layer preprocessing: resample to the working grid, then zero sub-threshold cells."""

from __future__ import annotations

import math
from typing import Iterable, Mapping

import numpy as np

from span.config import HYDROSHEDS_LAYER
from span.matrix import map_matrix, resample_matrix, zero_layer
from span.randvars import ZERO, DistributionValue, constant, rv_average


# D8 direction codes (Hydrosheds / ESRI convention) -> (row offset, col offset).
FLOW_DIRECTION_OFFSETS: dict[int, tuple[int, int]] = {
    1: (0, 1),
    2: (1, 1),
    4: (1, 0),
    8: (1, -1),
    16: (0, -1),
    32: (-1, -1),
    64: (-1, 0),
    128: (-1, 1),
}


def scaled_dimensions(rows: int, cols: int, downscaling_factor: float) -> tuple[int, int]:
    if downscaling_factor < 1:
        raise ValueError("downscaling_factor must be >= 1")
    return int(rows / downscaling_factor), int(cols / downscaling_factor)


def zero_layer_below_threshold(threshold: float, layer: np.ndarray) -> np.ndarray:
    """Replace every cell whose mean is below `threshold` with ZERO."""

    return map_matrix(lambda rv: ZERO if rv.mean < threshold else rv, layer)


def preprocess_layer(layer: np.ndarray | None, threshold: float, rows: int, cols: int) -> np.ndarray:
    """Resample a source/sink/use layer to rows x cols, then apply its threshold."""

    if layer is None:
        return zero_layer(rows, cols)
    resampled = resample_matrix(rows, cols, rv_average, layer)
    return zero_layer_below_threshold(threshold, resampled)


def preprocess_flow_layers(
    flow_layers: Mapping[str, np.ndarray | None],
    rows: int,
    cols: int,
) -> dict[str, np.ndarray]:
    """Resample each flow-feature layer; direction grids keep a direction per cell."""

    scaled: dict[str, np.ndarray] = {}
    for name, layer in flow_layers.items():
        if layer is None:
            scaled[name] = zero_layer(rows, cols)
            continue
        aggregate = aggregate_flow_dirs if name == HYDROSHEDS_LAYER else rv_average
        scaled[name] = resample_matrix(rows, cols, aggregate, layer)
    return scaled


def flow_direction_code(rv: DistributionValue) -> int | None:
    """The D8 code stored in a cell, or None if the cell holds no valid direction."""

    code = int(round(rv.mean))
    if code in FLOW_DIRECTION_OFFSETS:
        return code
    return None


def aggregate_flow_dirs(rvs: Iterable[DistributionValue]) -> DistributionValue:
    """Combine D8 direction codes by summing their unit vectors.

    The result is the code whose direction is closest to the resultant, or
    ZERO when the block holds no valid direction or the vectors cancel out.
    """

    dy_total = 0.0
    dx_total = 0.0
    for rv in rvs:
        code = flow_direction_code(rv)
        if code is None:
            continue
        dy, dx = FLOW_DIRECTION_OFFSETS[code]
        norm = math.hypot(dy, dx)
        dy_total += dy / norm
        dx_total += dx / norm

    if math.hypot(dy_total, dx_total) < 1e-9:
        return ZERO

    heading = math.atan2(dy_total, dx_total)
    best_code = min(
        FLOW_DIRECTION_OFFSETS,
        key=lambda c: _angle_between(heading, math.atan2(*FLOW_DIRECTION_OFFSETS[c])),
    )
    return constant(best_code)


def _angle_between(a: float, b: float) -> float:
    diff = abs(a - b) % (2.0 * math.pi)
    return min(diff, 2.0 * math.pi - diff)
