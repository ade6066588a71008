"""Async runner for automation tools plus the detached spawner."""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Iterable, Sequence


@dataclass(slots=True, frozen=True)
class ToolInvocation:
    """A single tool call: argv plus optional text fed on stdin."""

    argv: tuple[str, ...]
    input: str | None = None

    @property
    def tool(self) -> str:
        return self.argv[0]


@dataclass(slots=True, frozen=True)
class DelayedCommand:
    """Self-contained shell invocation that sleeps, then performs one operation."""

    shell: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.shell, *self.args]


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an automation tool invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Execute automation tools asynchronously."""

    async def run(self, argv: Sequence[str], *, input: str | None = None) -> CommandResult:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout_bytes, stderr_bytes = await process.communicate(
            input.encode("utf-8") if input is not None else None
        )
        return CommandResult(
            args=tuple(argv),
            returncode=process.returncode,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )


class FakeCommandRunner(CommandRunner):
    """Test double that records invocations and replays canned results."""

    def __init__(self, responses: Iterable[CommandResult] | None = None) -> None:
        self._responses = list(responses or [])
        self._invocations: list[ToolInvocation] = []

    async def run(self, argv: Sequence[str], *, input: str | None = None) -> CommandResult:  # type: ignore[override]
        self._invocations.append(ToolInvocation(tuple(argv), input))
        if self._responses:
            return self._responses.pop(0)
        return CommandResult(args=tuple(argv), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[ToolInvocation]:
        return self._invocations


def tool_on_path(name: str) -> bool:
    return shutil.which(name) is not None


_detached: list[subprocess.Popen] = []


def reap_detached() -> int:
    """Collect exited detached children; returns how many are still running."""

    _detached[:] = [process for process in _detached if process.poll() is None]
    return len(_detached)


def spawn_detached(command: DelayedCommand) -> None:
    """Start ``command`` unsupervised; it may outlive this process.

    Handles are kept so children that finished are reaped on later calls.
    """

    reap_detached()

    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    _detached.append(subprocess.Popen(command.argv, **kwargs))


__all__ = [
    "CommandResult",
    "CommandRunner",
    "DelayedCommand",
    "FakeCommandRunner",
    "ToolInvocation",
    "reap_detached",
    "spawn_detached",
    "tool_on_path",
]
