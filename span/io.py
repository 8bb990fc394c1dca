"""Raster input and result serialization for command-line runs."""

from __future__ import annotations

import json
from pathlib import Path
import re
import shutil
from typing import Any

import numpy as np
from PIL import Image

from span.matrix import layer_means, make_matrix
from span.randvars import constant, rv_from_normal


def load_raster(path: str | Path) -> np.ndarray:
    """Load a 2D float raster saved with numpy."""

    array = np.load(Path(path), allow_pickle=False)
    if array.ndim != 2:
        raise ValueError(f"{path}: expected a 2D raster, got shape {array.shape}")
    return array.astype(np.float64)


def load_layer(mean_path: str | Path, sd_path: str | Path | None = None, *, states: int | None = None) -> np.ndarray:
    """Load a layer of distribution values; with `sd_path`, cells become discretised normals."""

    means = load_raster(mean_path)
    if sd_path is None:
        rows, cols = means.shape
        return make_matrix(rows, cols, lambda cell: constant(means[cell]))

    sds = load_raster(sd_path)
    if sds.shape != means.shape:
        raise ValueError(f"{sd_path}: shape {sds.shape} does not match {mean_path} shape {means.shape}")
    rows, cols = means.shape
    return make_matrix(rows, cols, lambda cell: rv_from_normal(means[cell], sds[cell], states=states))


def resolve_output_dir(
    out_root: str | Path,
    run_label: str,
    rows: int,
    cols: int,
    *,
    overwrite: bool,
) -> Path:
    """Create and return the output directory for one run."""

    target = Path(out_root) / run_label / f"{rows}x{cols}"
    if target.exists() and any(target.iterdir()) and not overwrite:
        raise FileExistsError(
            f"Output directory already exists and is not empty: {target}. Use --overwrite to replace files."
        )
    target.mkdir(parents=True, exist_ok=True)
    return target


def clean_output_dir(target: Path, *, out_root: Path) -> None:
    """Delete all children of target directory, refusing paths outside out_root."""

    target_r = target.resolve()
    target_r.relative_to(out_root.resolve())

    if not target_r.exists():
        target_r.mkdir(parents=True, exist_ok=True)
        return

    for child in target_r.iterdir():
        if child.is_symlink() or child.is_file():
            child.unlink()
        elif child.is_dir():
            shutil.rmtree(child)


def move_tree_contents(src_dir: Path, dst_dir: Path) -> None:
    """Move all files from src_dir into dst_dir."""

    for child in src_dir.iterdir():
        shutil.move(str(child), str(dst_dir / child.name))


def layer_file_stem(name: str) -> str:
    """File-system name for a result layer, e.g. 'Source - Theoretical' -> 'source_theoretical'."""

    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def write_layer_npy(path: str | Path, layer: np.ndarray) -> None:
    np.save(Path(path), layer_means(layer).astype(np.float32), allow_pickle=False)


def write_png_u8(path: str | Path, raster_u8: np.ndarray) -> None:
    image = Image.fromarray(raster_u8.astype(np.uint8))
    image.save(Path(path))


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True)
    Path(path).write_text(text + "\n", encoding="utf-8")
