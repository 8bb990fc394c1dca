"""Upsampling of result layers and delivery to the caller."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import numpy as np

from span.config import RESULT_TYPES
from span.derive import layer_summary
from span.matrix import layer_means, resample_matrix
from span.randvars import rv_average


RESULT_LAYER_NAMES = (
    "Source - Theoretical",
    "Source - Inaccessible",
    "Source - Possible",
    "Source - Blocked",
    "Source - Actual",
    "Sink - Theoretical",
    "Sink - Actual",
    "Use - Theoretical",
    "Use - Inaccessible",
    "Use - Possible",
    "Use - Blocked",
    "Use - Actual",
    "Flow - Possible",
    "Flow - Blocked",
    "Flow - Actual",
)


@dataclass(frozen=True)
class SpanResults:
    """Named result layers at native resolution plus the original inputs."""

    layers: Mapping[str, np.ndarray]
    source_layer: np.ndarray
    sink_layer: np.ndarray | None
    use_layer: np.ndarray
    flow_layers: Mapping[str, np.ndarray | None] = field(default_factory=dict)

    def names(self) -> tuple[str, ...]:
        return tuple(self.layers)

    def __getitem__(self, name: str) -> np.ndarray:
        return self.layers[name]

    def __contains__(self, name: object) -> bool:
        return name in self.layers

    def means(self, name: str) -> np.ndarray:
        return layer_means(self.layers[name])

    def summary(self) -> dict[str, dict[str, float]]:
        return {name: layer_summary(self.means(name)) for name in self.layers}


def upsample_results(layers: Mapping[str, np.ndarray], rows: int, cols: int) -> dict[str, np.ndarray]:
    """Resample every named layer back to rows x cols with expected-value averaging."""

    return {name: resample_matrix(rows, cols, rv_average, layer) for name, layer in layers.items()}


def provide_results(
    result_type: str,
    layers: Mapping[str, np.ndarray],
    source_layer: np.ndarray,
    sink_layer: np.ndarray | None,
    use_layer: np.ndarray,
    flow_layers: Mapping[str, np.ndarray | None],
    *,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], Any] = print,
) -> SpanResults:
    """Hand the named layers to the caller, optionally through an interactive menu."""

    if result_type not in RESULT_TYPES:
        raise ValueError(f"result_type must be one of {RESULT_TYPES}, got {result_type!r}")

    results = SpanResults(
        layers=dict(layers),
        source_layer=source_layer,
        sink_layer=sink_layer,
        use_layer=use_layer,
        flow_layers=dict(flow_layers),
    )
    if result_type == "interactive":
        run_results_menu(results, input_fn=input_fn, output_fn=output_fn)
    return results


def run_results_menu(
    results: SpanResults,
    *,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], Any] = print,
) -> None:
    """Numbered text menu: pick a layer to print its cell means, `q` to quit."""

    names = results.names()
    while True:
        output_fn("")
        for index, name in enumerate(names, start=1):
            output_fn(f"{index:2d}) {name}")
        output_fn(" q) Quit")
        try:
            choice = input_fn("Choose a result layer: ").strip().lower()
        except EOFError:
            return
        if choice in {"q", "quit", ""}:
            return
        if not choice.isdigit() or not 1 <= int(choice) <= len(names):
            output_fn(f"Invalid selection: {choice!r}")
            continue

        name = names[int(choice) - 1]
        means = results.means(name)
        stats = layer_summary(means)
        output_fn(f"{name}")
        output_fn(np.array2string(means, precision=3, suppress_small=True, max_line_width=120))
        output_fn(f"total={stats['total']:.3f} max={stats['max']:.3f} nonzero_cells={int(stats['nonzero_cells'])}")
