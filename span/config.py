"""Configuration models for service-flow runs."""

from __future__ import annotations

from dataclasses import MISSING, asdict, dataclass, field, fields
from typing import Any, Mapping


DEFAULT_SOURCE_THRESHOLD = 0.0
DEFAULT_SINK_THRESHOLD = 0.0
DEFAULT_USE_THRESHOLD = 0.0
DEFAULT_TRANS_THRESHOLD = 0.01
DEFAULT_RV_MAX_STATES = 10
DEFAULT_DOWNSCALING_FACTOR = 1

CAPACITY_TYPES = ("finite", "infinite")
BENEFIT_TYPES = ("rival", "non-rival")
RESULT_TYPES = ("interactive", "programmatic")

# Reserved flow-feature names understood by the preprocessor and models.
HYDROSHEDS_LAYER = "Hydrosheds"
ALTITUDE_LAYER = "Altitude"


class SpanConfigError(ValueError):
    """Raised when a run configuration violates a precondition."""


@dataclass(frozen=True)
class RunParameters:
    """Run-scoped parameters visible to flow models and analyzers."""

    rv_max_states: int = DEFAULT_RV_MAX_STATES
    trans_threshold: float = DEFAULT_TRANS_THRESHOLD
    source_type: str = "finite"
    sink_type: str = "finite"
    use_type: str = "finite"
    benefit_type: str = "rival"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SpanConfig:
    """Entry configuration bundle for one simulation run."""

    source_layer: Any
    use_layer: Any
    source_type: str
    sink_type: str
    use_type: str
    benefit_type: str
    flow_model: str
    result_type: str
    sink_layer: Any = None
    flow_layers: Mapping[str, Any] | None = field(default_factory=dict)
    source_threshold: float = DEFAULT_SOURCE_THRESHOLD
    sink_threshold: float = DEFAULT_SINK_THRESHOLD
    use_threshold: float = DEFAULT_USE_THRESHOLD
    trans_threshold: float = DEFAULT_TRANS_THRESHOLD
    rv_max_states: int = DEFAULT_RV_MAX_STATES
    downscaling_factor: float = DEFAULT_DOWNSCALING_FACTOR

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "SpanConfig":
        """Build a config from hyphenated option names (``source-layer`` etc.)."""

        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise SpanConfigError(f"Unrecognized option: {key!r}")
            kwargs[name] = value

        required = {f.name for f in fields(cls) if f.default is MISSING and f.default_factory is MISSING}
        missing = sorted(required - set(kwargs))
        if missing:
            names = ", ".join(name.replace("_", "-") for name in missing)
            raise SpanConfigError(f"Missing required option(s): {names}")
        return cls(**kwargs)

    def run_parameters(self) -> RunParameters:
        return RunParameters(
            rv_max_states=int(self.rv_max_states),
            trans_threshold=float(self.trans_threshold),
            source_type=self.source_type,
            sink_type=self.sink_type,
            use_type=self.use_type,
            benefit_type=self.benefit_type,
        )

    def scalar_options(self) -> dict[str, Any]:
        """Non-layer options, suitable for JSON metadata."""

        return {
            "source_threshold": self.source_threshold,
            "sink_threshold": self.sink_threshold,
            "use_threshold": self.use_threshold,
            "trans_threshold": self.trans_threshold,
            "rv_max_states": self.rv_max_states,
            "downscaling_factor": self.downscaling_factor,
            "source_type": self.source_type,
            "sink_type": self.sink_type,
            "use_type": self.use_type,
            "benefit_type": self.benefit_type,
            "flow_model": self.flow_model,
            "result_type": self.result_type,
        }
