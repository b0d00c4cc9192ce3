"""Publication gate"""

from .publication import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    apply_transition,
    decide_status,
    gate_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "apply_transition",
    "decide_status",
    "gate_transition",
]
