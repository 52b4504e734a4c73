"""Chat service package supporting intent detection and target resolution."""

from .intent import SessionState, classify
from .target import resolve_target, today_name

__all__ = [
    "SessionState",
    "classify",
    "resolve_target",
    "today_name",
]
