"""Utility functions for the Pull Secret Rotator."""

from .conditions import (
    get_condition,
    set_available_condition,
    set_degraded_condition,
    update_condition,
)
from .durations import parse_duration
from .errors import ReconcileError, sanitize_exception
from .events import emit_event
from .rate_limit import rate_limit_k8s
from .selectors import LabelSelector

__all__ = [
    "update_condition",
    "get_condition",
    "set_available_condition",
    "set_degraded_condition",
    "parse_duration",
    "ReconcileError",
    "sanitize_exception",
    "emit_event",
    "rate_limit_k8s",
    "LabelSelector",
]
