"""Run-scoped parameter context shared by flow models and analyzers."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from span.config import DEFAULT_RV_MAX_STATES, RunParameters


_ACTIVE_PARAMETERS: ContextVar[RunParameters | None] = ContextVar("span_run_parameters", default=None)


@contextmanager
def run_parameters(params: RunParameters) -> Iterator[RunParameters]:
    """Install `params` for the duration of one run and restore the previous state on exit."""

    token = _ACTIVE_PARAMETERS.set(params)
    try:
        yield params
    finally:
        _ACTIVE_PARAMETERS.reset(token)


def get_run_parameters() -> RunParameters:
    params = _ACTIVE_PARAMETERS.get()
    if params is None:
        raise RuntimeError("No active run parameters; use run_parameters() around the run")
    return params


def has_run_parameters() -> bool:
    return _ACTIVE_PARAMETERS.get() is not None


def current_max_states() -> int:
    params = _ACTIVE_PARAMETERS.get()
    if params is None:
        return DEFAULT_RV_MAX_STATES
    return params.rv_max_states
