"""Turn prompts and jobs into timed platform operations."""

from .detached import AgentLaunch, DetachedScheduler, PlannedOperation
from .sequential import ResolvedTask, SequentialExecutor
from .timing import DEFAULT_TIMING, TimingProfile

__all__ = [
    "AgentLaunch",
    "DEFAULT_TIMING",
    "DetachedScheduler",
    "PlannedOperation",
    "ResolvedTask",
    "SequentialExecutor",
    "TimingProfile",
]
