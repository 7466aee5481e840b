"""Step description parsing for Hybrid QA."""

from .step_parser import (
    ACTION_RULES,
    DEFAULT_WAIT_MS,
    classify_step,
    extract_target,
    extract_input_values,
    extract_wait_duration,
    parse_step,
    parse_steps,
    wait_duration_ms,
)

__all__ = [
    "ACTION_RULES",
    "DEFAULT_WAIT_MS",
    "classify_step",
    "extract_target",
    "extract_input_values",
    "extract_wait_duration",
    "parse_step",
    "parse_steps",
    "wait_duration_ms",
]
