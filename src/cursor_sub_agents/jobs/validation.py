"""Structural validation of job and task documents.

Job files are parsed into untyped JSON first; these checks run before the
data is narrowed into :class:`~cursor_sub_agents.jobs.models.Job`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from .models import Task, TaskTypeMapping

ID_MISMATCH_PREFIX = "Job ID mismatch"


class IdMismatchPolicy(str, Enum):
    """Severity of a job whose ``id`` field differs from its lookup key."""

    ERROR = "error"
    WARN = "warn"


class CommandChecker(Protocol):
    def validate_commands_exist(self, names: Iterable[str]) -> list[str]:
        ...


@dataclass(slots=True, frozen=True)
class TaskValidationError:
    task_index: int
    task_name: str
    error: str

    def __str__(self) -> str:
        return f"Task {self.task_index} ({self.task_name}): {self.error}"

    def to_dict(self) -> dict[str, Any]:
        return {"task_index": self.task_index, "task_name": self.task_name, "error": self.error}


def validate_job_structure(job: Any, job_id: str) -> list[str]:
    """Return every structural problem with a raw job document."""

    if job is None:
        return ["Job is null or undefined"]
    if not isinstance(job, Mapping):
        return ["Job must be an object"]

    errors: list[str] = []

    value = job.get("id")
    if not value:
        errors.append("Job missing 'id' field")
    elif not isinstance(value, str):
        errors.append("Job 'id' field must be a string")
    elif value != job_id:
        errors.append(f"{ID_MISMATCH_PREFIX}: job.json has '{value}' but expected '{job_id}'")

    goal = job.get("goal")
    if not goal:
        errors.append("Job missing 'goal' field")
    elif not isinstance(goal, str):
        errors.append("Job 'goal' field must be a string")

    tasks = job.get("tasks")
    if tasks is None:
        errors.append("Job missing 'tasks' field")
    elif not isinstance(tasks, list):
        errors.append("Job 'tasks' must be an array")
    elif not tasks:
        errors.append("Job has no tasks")

    return errors


def split_id_mismatch(
    errors: Sequence[str], policy: IdMismatchPolicy | str
) -> tuple[list[str], list[str]]:
    """Partition structural errors into ``(errors, warnings)`` under ``policy``."""

    if IdMismatchPolicy(policy) is IdMismatchPolicy.ERROR:
        return list(errors), []
    fatal = [error for error in errors if not error.startswith(ID_MISMATCH_PREFIX)]
    warnings = [error for error in errors if error.startswith(ID_MISMATCH_PREFIX)]
    return fatal, warnings


def _task_fields(task: Mapping[str, Any] | Task) -> Mapping[str, Any]:
    if isinstance(task, Task):
        return task.model_dump()
    if isinstance(task, Mapping):
        return task
    return {}


def validate_task_structure(
    task: Mapping[str, Any] | Task,
    task_index: int,
    task_types: TaskTypeMapping,
) -> TaskValidationError | None:
    """Check one task; the first failing rule wins.

    ``task_index`` is zero-based; the reported index is one-based.
    """

    fields = _task_fields(task)
    position = task_index + 1

    name = fields.get("name")
    if not name:
        return TaskValidationError(position, "unnamed", "Task missing 'name' field")
    name = str(name)

    task_type = fields.get("type")
    if not task_type:
        return TaskValidationError(position, name, "Task missing 'type' field")
    if not isinstance(task_type, str):
        return TaskValidationError(position, name, "Task 'type' must be a string")
    if not isinstance(fields.get("files"), list):
        return TaskValidationError(position, name, "Task 'files' must be an array")
    if not fields.get("prompt"):
        return TaskValidationError(position, name, "Task missing 'prompt' field")

    if task_type not in task_types:
        available = ", ".join(task_types.keys())
        return TaskValidationError(
            position,
            name,
            f'Task type "{task_type}" not found. Available types: {available}',
        )
    return None


def validate_all_tasks(
    tasks: Sequence[Mapping[str, Any] | Task],
    task_types: TaskTypeMapping,
    commands: CommandChecker,
) -> list[TaskValidationError]:
    """Validate every task of a job, collecting all failures rather than stopping at the first."""

    errors: list[TaskValidationError] = []
    for index, task in enumerate(tasks):
        structure_error = validate_task_structure(task, index, task_types)
        if structure_error is not None:
            errors.append(structure_error)
            continue

        fields = _task_fields(task)
        name = str(fields["name"])
        task_type = fields["type"]
        sequence = task_types.get(task_type) or []
        if not sequence:
            errors.append(
                TaskValidationError(index + 1, name, f'Task type "{task_type}" has no commands defined')
            )
            continue

        missing = commands.validate_commands_exist(sequence)
        if missing:
            errors.append(
                TaskValidationError(index + 1, name, f"Missing commands: {', '.join(missing)}")
            )
    return errors


__all__ = [
    "CommandChecker",
    "IdMismatchPolicy",
    "TaskValidationError",
    "split_id_mismatch",
    "validate_all_tasks",
    "validate_job_structure",
    "validate_task_structure",
]
