from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from cli.main import main
from span.io import layer_file_stem
from span.results import RESULT_LAYER_NAMES


def _write_inputs(root: Path) -> dict[str, Path]:
    rows, cols = 6, 8
    source = np.zeros((rows, cols))
    source[0, 0] = 6.0
    source[2, 5] = 3.0
    use = np.zeros((rows, cols))
    use[5, 7] = 4.0
    use[1, 2] = 1.0
    sink = np.zeros((rows, cols))
    sink[3, 3] = 0.5
    altitude = np.add.outer(np.arange(rows, 0, -1.0), np.arange(cols, 0, -1.0))

    paths = {}
    for name, array in (("source", source), ("use", use), ("sink", sink), ("altitude", altitude)):
        paths[name] = root / f"{name}.npy"
        np.save(paths[name], array)
    paths["source_sd"] = root / "source_sd.npy"
    np.save(paths["source_sd"], np.where(source > 0.0, 0.5, 0.0))
    return paths


def _args(paths: dict[str, Path], out_dir: Path) -> list[str]:
    return [
        "--source",
        str(paths["source"]),
        "--source-sd",
        str(paths["source_sd"]),
        "--use",
        str(paths["use"]),
        "--sink",
        str(paths["sink"]),
        "--flow-layer",
        f"Altitude={paths['altitude']}",
        "--flow-model",
        "Proximity",
        "--rv-max-states",
        "5",
        "--out",
        str(out_dir),
        "--overwrite",
    ]


def test_runtime_fields_only_in_meta_json(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"
    code = main(_args(_write_inputs(tmp_path), out_dir))
    assert code == 0

    base = out_dir / "proximity" / "6x8"
    meta = json.loads((base / "meta.json").read_text(encoding="utf-8"))
    deterministic_meta = json.loads((base / "deterministic_meta.json").read_text(encoding="utf-8"))

    assert "run_seconds" in meta
    assert meta["run_seconds"] >= 0.0
    assert "generated_at_utc" in meta

    assert "run_seconds" not in deterministic_meta
    assert "generated_at_utc" not in deterministic_meta

    assert deterministic_meta["rows"] == 6
    assert deterministic_meta["cols"] == 8
    assert deterministic_meta["flow_layers"] == ["Altitude"]
    assert deterministic_meta["config"]["flow_model"] == "Proximity"
    assert deterministic_meta["config"]["rv_max_states"] == 5
    layers = deterministic_meta["layers"]
    assert set(layers) == set(RESULT_LAYER_NAMES)
    assert layers["Source - Theoretical"]["total"] == pytest.approx(9.0, abs=1e-6)

    for name in RESULT_LAYER_NAMES:
        stem = layer_file_stem(name)
        assert (base / f"{stem}.npy").exists(), stem
        assert (base / f"{stem}.png").exists(), stem
    assert np.load(base / "flow_actual.npy").shape == (6, 8)


def test_existing_output_requires_overwrite(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"
    args = _args(_write_inputs(tmp_path), out_dir)
    assert main(args) == 0

    base = out_dir / "proximity" / "6x8"
    stale = base / "stale.png"
    stale.write_bytes(b"")
    assert main(args) == 0
    assert not stale.exists()

    with pytest.raises(FileExistsError):
        main([arg for arg in args if arg != "--overwrite"])


def test_bad_arguments_exit_with_usage_error(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    paths = _write_inputs(tmp_path)
    args = _args(paths, tmp_path / "out")

    with pytest.raises(SystemExit) as excinfo:
        main(args + ["--flow-layer", "Altitude"])
    assert excinfo.value.code == 2

    with pytest.raises(SystemExit) as excinfo:
        main(args + ["--trans-threshold", "0"])
    assert excinfo.value.code == 2

    with pytest.raises(SystemExit) as excinfo:
        main(args + ["--use", str(tmp_path / "missing.npy")])
    assert excinfo.value.code == 2
