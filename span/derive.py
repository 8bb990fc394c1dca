"""Derived raster products from result layers."""

from __future__ import annotations

import numpy as np


def float_preview_u8(values: np.ndarray, *, robust_percentiles: tuple[float, float] = (0.0, 100.0)) -> np.ndarray:
    """Map float values to 8-bit preview grayscale."""

    lo, hi = np.percentile(values, robust_percentiles)
    if hi - lo <= 1e-12:
        return np.where(values > 0.0, 255, 0).astype(np.uint8)
    norm = np.clip((values - lo) / (hi - lo), 0.0, 1.0)
    return np.round(norm * 255.0).astype(np.uint8)


def layer_summary(means: np.ndarray) -> dict[str, float]:
    """Totals of a layer of cell means."""

    if means.ndim != 2:
        raise ValueError("means must be a 2D array")
    return {
        "total": float(np.sum(means)),
        "max": float(np.max(means)),
        "mean": float(np.mean(means)),
        "nonzero_cells": float(np.count_nonzero(means > 0.0)),
    }
