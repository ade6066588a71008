"""Presence checks and listings for file-backed commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .models import Scope

COMMAND_SUFFIX = ".md"


@dataclass(slots=True, frozen=True)
class CommandEntry:
    name: str
    scope: Scope
    path: Path
    preview: str | None
    overrides_global: bool = False


def _preview(path: Path) -> str | None:
    try:
        with path.open(encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if stripped:
                    return stripped.lstrip("#").strip() or None
    except OSError:
        return None
    return None


class CommandCatalog:
    """Commands are markdown files in the project or global commands directory."""

    def __init__(self, global_dir: Path, project_dir: Path) -> None:
        self._dirs = {Scope.GLOBAL: Path(global_dir), Scope.PROJECT: Path(project_dir)}

    def path_for(self, name: str, scope: Scope) -> Path:
        return self._dirs[scope] / f"{name}{COMMAND_SUFFIX}"

    def location(self, name: str) -> Scope | None:
        for scope in (Scope.PROJECT, Scope.GLOBAL):
            if self.path_for(name, scope).is_file():
                return scope
        return None

    def exists(self, name: str) -> bool:
        return self.location(name) is not None

    def validate_commands_exist(self, names: Iterable[str]) -> list[str]:
        """Return the names with no backing file in either scope, in input order."""

        return [name for name in names if not self.exists(name)]

    def _names(self, scope: Scope) -> list[str]:
        directory = self._dirs[scope]
        if not directory.is_dir():
            return []
        return sorted(path.stem for path in directory.glob(f"*{COMMAND_SUFFIX}") if path.is_file())

    def entries(self) -> list[CommandEntry]:
        """Merged listing; a project command shadows the global one of the same name."""

        global_names = set(self._names(Scope.GLOBAL))
        entries: dict[str, CommandEntry] = {}
        for name in sorted(global_names):
            path = self.path_for(name, Scope.GLOBAL)
            entries[name] = CommandEntry(name, Scope.GLOBAL, path, _preview(path))
        for name in self._names(Scope.PROJECT):
            path = self.path_for(name, Scope.PROJECT)
            entries[name] = CommandEntry(
                name, Scope.PROJECT, path, _preview(path), overrides_global=name in global_names
            )
        return [entries[name] for name in sorted(entries)]


__all__ = ["COMMAND_SUFFIX", "CommandCatalog", "CommandEntry"]
