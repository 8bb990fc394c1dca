"""Service path attribution: simulate ecosystem-service flow across a landscape grid."""

from .config import RunParameters, SpanConfig, SpanConfigError
from .core import run_span, validate_config
from .randvars import ZERO, DistributionValue
from .results import RESULT_LAYER_NAMES, SpanResults

__all__ = [
    "RESULT_LAYER_NAMES",
    "ZERO",
    "DistributionValue",
    "RunParameters",
    "SpanConfig",
    "SpanConfigError",
    "SpanResults",
    "run_span",
    "validate_config",
]
