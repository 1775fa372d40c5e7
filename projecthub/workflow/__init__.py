"""Task status state machine."""

from .transitions import (
    TASK_TRANSITIONS,
    validate_transition,
    get_available_transitions,
    get_checkbox_action,
)

__all__ = [
    "TASK_TRANSITIONS",
    "validate_transition",
    "get_available_transitions",
    "get_checkbox_action",
]
