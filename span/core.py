"""Run entry point: validation, preprocessing, flow simulation, and result analysis."""

from __future__ import annotations

import logging
from numbers import Real
import time
from typing import Any, Callable, Mapping

import numpy as np

from span.analyzer import (
    actual_flow,
    actual_sink,
    actual_source,
    actual_use,
    blocked_flow,
    blocked_source,
    blocked_use,
    inaccessible_source,
    inaccessible_use,
    possible_flow,
    possible_source,
    possible_use,
    theoretical_sink,
    theoretical_source,
    theoretical_use,
)
from span.config import BENEFIT_TYPES, CAPACITY_TYPES, RESULT_TYPES, SpanConfig, SpanConfigError
from span.matrix import as_layer, grids_align, is_matrix
from span.models import distribute_flow, get_model
from span.params import run_parameters
from span.preprocess import preprocess_flow_layers, preprocess_layer, scaled_dimensions
from span.results import SpanResults, provide_results, upsample_results


logger = logging.getLogger(__name__)


def validate_config(
    config: SpanConfig,
) -> tuple[np.ndarray, np.ndarray | None, np.ndarray, dict[str, np.ndarray | None]]:
    """Check every precondition and return the input layers as object layers.

    Raises SpanConfigError before any layer is resampled or simulated.
    """

    for option in ("source_type", "sink_type", "use_type"):
        _require_choice(option, getattr(config, option), CAPACITY_TYPES)
    _require_choice("benefit_type", config.benefit_type, BENEFIT_TYPES)
    _require_choice("result_type", config.result_type, RESULT_TYPES)
    get_model(config.flow_model)

    for option in ("source_threshold", "sink_threshold", "use_threshold"):
        value = getattr(config, option)
        if not _is_number(value) or value < 0.0:
            raise SpanConfigError(f"{_option_name(option)} must be a non-negative number, got {value!r}")
    if not _is_number(config.trans_threshold) or config.trans_threshold <= 0.0:
        raise SpanConfigError(f"trans-threshold must be a positive number, got {config.trans_threshold!r}")
    if isinstance(config.rv_max_states, bool) or not isinstance(config.rv_max_states, (int, np.integer)):
        raise SpanConfigError(f"rv-max-states must be an integer, got {config.rv_max_states!r}")
    if config.rv_max_states < 1:
        raise SpanConfigError(f"rv-max-states must be >= 1, got {config.rv_max_states!r}")
    if not _is_number(config.downscaling_factor) or config.downscaling_factor < 1:
        raise SpanConfigError(f"downscaling-factor must be a number >= 1, got {config.downscaling_factor!r}")

    source = _require_layer("source_layer", config.source_layer)
    use = _require_layer("use_layer", config.use_layer)
    sink = None if config.sink_layer is None else _require_layer("sink_layer", config.sink_layer)

    flow_layers = {} if config.flow_layers is None else config.flow_layers
    if not isinstance(flow_layers, Mapping):
        raise SpanConfigError("flow-layers must be a mapping of names to layers")
    flows: dict[str, np.ndarray | None] = {}
    for name, layer in flow_layers.items():
        if not isinstance(name, str) or not name:
            raise SpanConfigError(f"flow-layers names must be non-empty strings, got {name!r}")
        flows[name] = None if layer is None else _require_layer(f"flow-layers[{name}]", layer)

    present = [layer for layer in (source, sink, use, *flows.values()) if layer is not None]
    if not grids_align(*present):
        shapes = ", ".join(f"{layer.shape[0]}x{layer.shape[1]}" for layer in present)
        raise SpanConfigError(f"All layers must share the source layer dimensions; got {shapes}")

    rows, cols = source.shape
    scaled_rows, scaled_cols = scaled_dimensions(rows, cols, config.downscaling_factor)
    if scaled_rows < 1 or scaled_cols < 1:
        raise SpanConfigError(
            f"downscaling-factor {config.downscaling_factor} is too large for a {rows}x{cols} grid"
        )
    return source, sink, use, flows


def run_span(
    config: SpanConfig | Mapping[str, Any],
    *,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], Any] = print,
) -> SpanResults:
    """Simulate service flow for one configuration and publish the named result layers."""

    if not isinstance(config, SpanConfig):
        if not isinstance(config, Mapping):
            raise SpanConfigError("configuration must be a SpanConfig or a mapping of options")
        config = SpanConfig.from_options(config)

    source, sink, use, flows = validate_config(config)
    rows, cols = source.shape
    scaled_rows, scaled_cols = scaled_dimensions(rows, cols, config.downscaling_factor)
    logger.info(
        "Running %s flow on %dx%d grid (working grid %dx%d)",
        config.flow_model,
        rows,
        cols,
        scaled_rows,
        scaled_cols,
    )

    with run_parameters(config.run_parameters()):
        start = time.perf_counter()
        scaled_source = preprocess_layer(source, config.source_threshold, scaled_rows, scaled_cols)
        scaled_sink = preprocess_layer(sink, config.sink_threshold, scaled_rows, scaled_cols)
        scaled_use = preprocess_layer(use, config.use_threshold, scaled_rows, scaled_cols)
        scaled_flows = preprocess_flow_layers(flows, scaled_rows, scaled_cols)
        logger.info("Preprocessed layers in %.3f s", time.perf_counter() - start)

        cache = distribute_flow(config.flow_model, scaled_source, scaled_sink, scaled_use, scaled_flows)

        analyses: dict[str, Callable[[], np.ndarray]] = {
            "Source - Theoretical": lambda: theoretical_source(scaled_source, scaled_use),
            "Source - Inaccessible": lambda: inaccessible_source(scaled_source, scaled_use, cache),
            "Source - Possible": lambda: possible_source(cache),
            "Source - Blocked": lambda: blocked_source(cache),
            "Source - Actual": lambda: actual_source(cache),
            "Sink - Theoretical": lambda: theoretical_sink(scaled_source, scaled_sink, scaled_use),
            "Sink - Actual": lambda: actual_sink(cache),
            "Use - Theoretical": lambda: theoretical_use(scaled_source, scaled_use),
            "Use - Inaccessible": lambda: inaccessible_use(scaled_source, scaled_use, cache),
            "Use - Possible": lambda: possible_use(cache),
            "Use - Blocked": lambda: blocked_use(cache),
            "Use - Actual": lambda: actual_use(cache),
            "Flow - Possible": lambda: possible_flow(cache, config.flow_model),
            "Flow - Blocked": lambda: blocked_flow(cache, config.flow_model),
            "Flow - Actual": lambda: actual_flow(cache, config.flow_model),
        }

        start = time.perf_counter()
        working: dict[str, np.ndarray] = {}
        for name, analysis in analyses.items():
            working[name] = analysis()
            logger.debug("Computed %s", name)
        layers = upsample_results(working, rows, cols)
        logger.info("Analyzed %d result layers in %.3f s", len(layers), time.perf_counter() - start)

        return provide_results(
            config.result_type,
            layers,
            source,
            sink,
            use,
            flows,
            input_fn=input_fn,
            output_fn=output_fn,
        )


def _require_choice(option: str, value: Any, choices: tuple[str, ...]) -> None:
    if value not in choices:
        options = ", ".join(choices)
        raise SpanConfigError(f"{_option_name(option)} must be one of: {options}; got {value!r}")


def _require_layer(option: str, layer: Any) -> np.ndarray:
    if not is_matrix(layer):
        raise SpanConfigError(f"{_option_name(option)} must be a non-empty rectangular 2D grid")
    try:
        return as_layer(layer)
    except (TypeError, ValueError) as exc:
        raise SpanConfigError(f"{_option_name(option)}: {exc}") from exc


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and bool(np.isfinite(float(value)))


def _option_name(option: str) -> str:
    return option.replace("_", "-")
