"""Flow models and the dispatcher that selects between them."""

from .base import (
    FlowModel,
    UnknownFlowModelError,
    available_models,
    distribute_flow,
    get_model,
    register_model,
)
from . import carbon, line_of_sight, proximity, sediment  # noqa: F401  (registers models)

__all__ = [
    "FlowModel",
    "UnknownFlowModelError",
    "available_models",
    "distribute_flow",
    "get_model",
    "register_model",
]
