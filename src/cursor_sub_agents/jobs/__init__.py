"""Job, task-type and command definitions."""

from .commands import CommandCatalog, CommandEntry
from .loader import (
    JobEntry,
    JobError,
    JobLoadError,
    JobNotFoundError,
    JobRepository,
    JobValidationError,
    RawJob,
)
from .models import Job, Scope, Task, TaskTypeMapping
from .task_types import DEFAULT_TASK_TYPES, TaskTypeEntry, TaskTypeError, TaskTypeRegistry
from .validation import (
    IdMismatchPolicy,
    TaskValidationError,
    split_id_mismatch,
    validate_all_tasks,
    validate_job_structure,
    validate_task_structure,
)

__all__ = [
    "CommandCatalog",
    "CommandEntry",
    "DEFAULT_TASK_TYPES",
    "IdMismatchPolicy",
    "Job",
    "JobEntry",
    "JobError",
    "JobLoadError",
    "JobNotFoundError",
    "JobRepository",
    "JobValidationError",
    "RawJob",
    "Scope",
    "Task",
    "TaskTypeEntry",
    "TaskTypeError",
    "TaskTypeMapping",
    "TaskTypeRegistry",
    "TaskValidationError",
    "split_id_mismatch",
    "validate_all_tasks",
    "validate_job_structure",
    "validate_task_structure",
]
