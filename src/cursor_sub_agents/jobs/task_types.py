"""Task-type registry: task type name to ordered command sequence, in two scopes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from pydantic import TypeAdapter, ValidationError

from ..storage.atomic import write_json_atomic
from .models import Scope, TaskTypeMapping

logger = logging.getLogger(__name__)

DEFAULT_TASK_TYPES: TaskTypeMapping = {
    "fix-issue": ["research", "plan-fix", "implement", "review"],
    "implement": ["understand", "implement", "fix-issues", "review", "e2e-test", "update-plan"],
    "research": ["research", "document"],
    "identify-issues": ["analyze", "identify", "document"],
}

_MAPPING_ADAPTER = TypeAdapter(dict[str, list[str]])


class TaskTypeError(ValueError):
    """Raised for invalid task-type edits."""


@dataclass(slots=True, frozen=True)
class TaskTypeEntry:
    name: str
    commands: list[str]
    scope: Scope
    overrides_global: bool = False


def _copy_defaults() -> TaskTypeMapping:
    return {name: list(commands) for name, commands in DEFAULT_TASK_TYPES.items()}


class TaskTypeRegistry:
    """Merged view of the global and project task-type files.

    The global file is created with the built-in defaults the first time it
    is read. Project entries override global entries with the same name.
    """

    def __init__(self, global_file: Path, project_file: Path) -> None:
        self._files = {Scope.GLOBAL: Path(global_file), Scope.PROJECT: Path(project_file)}

    def path_for(self, scope: Scope) -> Path:
        return self._files[scope]

    def ensure_global_file(self) -> None:
        path = self._files[Scope.GLOBAL]
        if path.exists():
            return
        try:
            write_json_atomic(path, _copy_defaults())
        except OSError as exc:
            logger.warning(
                "Could not create default task types file",
                extra={"path": str(path), "error": str(exc)},
            )

    def _read(self, scope: Scope) -> TaskTypeMapping | None:
        path = self._files[scope]
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return _MAPPING_ADAPTER.validate_python(raw)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable task types file",
                extra={"path": str(path), "scope": scope.value, "error": str(exc)},
            )
            return None

    def load_global(self) -> TaskTypeMapping:
        self.ensure_global_file()
        mapping = self._read(Scope.GLOBAL)
        return mapping if mapping is not None else _copy_defaults()

    def load_project(self) -> TaskTypeMapping:
        return self._read(Scope.PROJECT) or {}

    def load_scope(self, scope: Scope) -> TaskTypeMapping:
        return self.load_global() if scope is Scope.GLOBAL else self.load_project()

    def load(self) -> TaskTypeMapping:
        """Return the effective mapping (shallow merge, project wins)."""

        return {**self.load_global(), **self.load_project()}

    def entries(self) -> list[TaskTypeEntry]:
        global_types = self.load_global()
        project_types = self.load_project()
        entries = {
            name: TaskTypeEntry(name, list(commands), Scope.GLOBAL)
            for name, commands in global_types.items()
        }
        for name, commands in project_types.items():
            entries[name] = TaskTypeEntry(
                name, list(commands), Scope.PROJECT, overrides_global=name in global_types
            )
        return [entries[name] for name in sorted(entries)]

    def commands_for(self, task_type: str) -> list[str]:
        return list(self.load().get(task_type, []))

    def save(self, mapping: TaskTypeMapping, scope: Scope) -> Path:
        path = self._files[scope]
        write_json_atomic(path, {name: list(commands) for name, commands in mapping.items()})
        return path

    def add(self, name: str, commands: Iterable[str], scope: Scope = Scope.PROJECT) -> Path:
        name = name.strip()
        sequence = [command.strip() for command in commands if command and command.strip()]
        if not name:
            raise TaskTypeError("Task type name must not be empty")
        if not sequence:
            raise TaskTypeError(f'Task type "{name}" needs at least one command')

        mapping = self.load_scope(scope)
        mapping[name] = sequence
        return self.save(mapping, scope)

    def remove(self, name: str, scope: Scope = Scope.PROJECT) -> bool:
        mapping = self.load_scope(scope)
        if name not in mapping:
            return False
        del mapping[name]
        self.save(mapping, scope)
        return True

    def validate(self, commands) -> dict[str, list[str]]:
        """Map each task type to the commands it references that have no backing file."""

        report: dict[str, list[str]] = {}
        for name, sequence in self.load().items():
            missing = commands.validate_commands_exist(sequence)
            if missing:
                report[name] = missing
        return report


__all__ = [
    "DEFAULT_TASK_TYPES",
    "TaskTypeEntry",
    "TaskTypeError",
    "TaskTypeRegistry",
]
