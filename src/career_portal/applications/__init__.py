"""Application lifecycle management."""

from .lifecycle import ApplicationLifecycleManager
from .transitions import COURSE_TRANSITIONS, JOB_TRANSITIONS, allowed_targets, is_legal

__all__ = [
    "ApplicationLifecycleManager",
    "COURSE_TRANSITIONS",
    "JOB_TRANSITIONS",
    "allowed_targets",
    "is_legal",
]
