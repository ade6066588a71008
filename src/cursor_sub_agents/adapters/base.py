"""Shared platform adapter machinery: tool probing, invocation, delayed rendering."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from .runner import CommandRunner, DelayedCommand, ToolInvocation, tool_on_path
from .utils import format_seconds

logger = logging.getLogger(__name__)

POSIX_DELAY_SHELL = "/bin/sh"


class AutomationError(RuntimeError):
    """Raised when an automation tool fails or cannot be executed."""


class ToolNotFoundError(AutomationError):
    """Raised when no candidate tool for a capability is installed."""

    def __init__(self, message: str, *, capability: str, candidates: Sequence[str], installation: str | None) -> None:
        super().__init__(message)
        self.capability = capability
        self.candidates = tuple(candidates)
        self.installation = installation


class UnsupportedPlatformError(RuntimeError):
    """Raised when no adapter exists for the running operating system."""


@dataclass(slots=True)
class RequirementDetail:
    tool: str
    available: bool
    installation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"tool": self.tool, "available": self.available}
        if self.installation and not self.available:
            payload["installation"] = self.installation
        return payload


@dataclass(slots=True)
class RequirementReport:
    platform: str
    details: list[RequirementDetail] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return all(detail.available for detail in self.details)

    @property
    def missing(self) -> list[str]:
        return [detail.tool for detail in self.details if not detail.available]

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "available": self.available,
            "missing": self.missing,
            "details": [detail.to_dict() for detail in self.details],
        }


class ToolResolver:
    """Pick the first installed tool from an ordered candidate list per capability.

    Probing is lazy; only successful lookups are cached so a tool installed
    later is still found. ``resolve`` and ``aresolve`` share the cache.
    """

    def __init__(
        self,
        candidates: Mapping[str, Sequence[str]],
        tool_available: Callable[[str], bool] | None = None,
    ) -> None:
        self._candidates = {name: tuple(tools) for name, tools in candidates.items()}
        self._tool_available = tool_available or tool_on_path
        self._resolved: dict[str, str] = {}

    def candidates(self, capability: str) -> tuple[str, ...]:
        return self._candidates.get(capability, ())

    def is_available(self, tool: str) -> bool:
        return self._tool_available(tool)

    def resolve(self, capability: str) -> str | None:
        cached = self._resolved.get(capability)
        if cached is not None:
            return cached
        for tool in self.candidates(capability):
            if self._tool_available(tool):
                self._resolved[capability] = tool
                return tool
        return None

    async def aresolve(self, capability: str) -> str | None:
        cached = self._resolved.get(capability)
        if cached is not None:
            return cached
        return await asyncio.to_thread(self.resolve, capability)

    def reset(self) -> None:
        self._resolved.clear()


class PlatformAdapter(ABC):
    """Capability interface over one operating system's automation tools.

    Subclasses describe every operation as a :class:`ToolInvocation`. The
    immediate methods run that invocation; the ``build_delayed_*`` methods
    render the very same invocation into a detached ``sleep``-then-run
    command, so both paths carry identical escaped payloads.
    """

    platform_name = "unknown platform"
    url_capability = "url"
    keyboard_capability = "keyboard"

    def __init__(
        self,
        *,
        runner: CommandRunner | None = None,
        tool_available: Callable[[str], bool] | None = None,
        target_app: str = "Cursor",
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._environ = dict(os.environ if environ is None else environ)
        self.target_app = target_app
        self._tools = ToolResolver(self.tool_candidates(), tool_available)

    @abstractmethod
    def tool_candidates(self) -> dict[str, list[str]]:
        """Ordered candidate tools per capability."""

    @abstractmethod
    def open_url_invocation(self, url: str) -> ToolInvocation:
        ...

    @abstractmethod
    def type_text_invocation(self, text: str) -> ToolInvocation:
        ...

    @abstractmethod
    def enter_invocation(self) -> ToolInvocation:
        ...

    @abstractmethod
    def activate_invocation(self) -> ToolInvocation | None:
        """Invocation focusing the target window, or ``None`` where unsupported."""

    @abstractmethod
    async def check_requirements(self) -> RequirementReport:
        ...

    @abstractmethod
    def get_shell_command(self) -> str:
        ...

    @property
    def tools(self) -> ToolResolver:
        return self._tools

    def installation_hint(self, capability: str) -> str | None:
        return None

    def describe_capability(self, capability: str) -> str:
        return "URL opener" if capability == self.url_capability else "keyboard automation tool"

    def require_tool(self, capability: str) -> str:
        tool = self._tools.resolve(capability)
        if tool is not None:
            return tool
        candidates = self._tools.candidates(capability)
        hint = self.installation_hint(capability)
        message = f"No {self.describe_capability(capability)} found on {self.platform_name}."
        if candidates:
            message += f" Install one of: {', '.join(candidates)}."
        if hint:
            message += f" {hint}"
        raise ToolNotFoundError(message, capability=capability, candidates=candidates, installation=hint)

    def format_error(self, operation: str, tool: str, error: str) -> str:
        return f"Failed to {operation} on {self.platform_name} using {tool}: {error}"

    async def _run(self, operation: str, invocation: ToolInvocation) -> None:
        try:
            result = await self._runner.run(invocation.argv, input=invocation.input)
        except OSError as exc:
            raise AutomationError(self.format_error(operation, invocation.tool, str(exc))) from exc
        if not result.ok:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise AutomationError(self.format_error(operation, invocation.tool, detail))

    async def open_url(self, url: str) -> None:
        await self._tools.aresolve(self.url_capability)
        await self._run("open URL", self.open_url_invocation(url))

    async def type_text(self, text: str) -> None:
        await self._tools.aresolve(self.keyboard_capability)
        await self._run("type text", self.type_text_invocation(text))

    async def press_enter(self) -> None:
        await self._tools.aresolve(self.keyboard_capability)
        await self._run("press Enter", self.enter_invocation())

    async def activate_target_window(self) -> bool:
        """Focus the target application; failures are logged, never raised."""

        await self._tools.aresolve(self.keyboard_capability)
        try:
            invocation = self.activate_invocation()
        except AutomationError as exc:
            logger.warning("Could not activate target window", extra={"error": str(exc)})
            return False
        if invocation is None:
            logger.warning(
                "Window activation is not supported here",
                extra={"platform": self.platform_name, "target_app": self.target_app},
            )
            return False
        try:
            await self._run("activate window", invocation)
        except AutomationError as exc:
            logger.warning("Could not activate target window", extra={"error": str(exc)})
            return False
        return True

    def render_delayed(self, invocation: ToolInvocation, delay_seconds: float) -> DelayedCommand:
        """Wrap ``invocation`` in ``/bin/sh -c "sleep N && ..."``; stdin payloads are piped via printf."""

        command = shlex.join(invocation.argv)
        if invocation.input is not None:
            command = f"printf '%s' {shlex.quote(invocation.input)} | {command}"
        script = f"sleep {format_seconds(delay_seconds)} && {command}"
        return DelayedCommand(POSIX_DELAY_SHELL, ("-c", script))

    def build_delayed_open_url_command(self, url: str, delay_seconds: float) -> DelayedCommand:
        return self.render_delayed(self.open_url_invocation(url), delay_seconds)

    def build_delayed_enter_command(self, delay_seconds: float) -> DelayedCommand:
        return self.render_delayed(self.enter_invocation(), delay_seconds)

    def build_delayed_type_text_command(self, text: str, delay_seconds: float) -> DelayedCommand:
        return self.render_delayed(self.type_text_invocation(text), delay_seconds)

    def build_delayed_activate_command(self, delay_seconds: float) -> DelayedCommand:
        invocation = self.activate_invocation()
        if invocation is None:
            return self.render_delayed(ToolInvocation((":",)), delay_seconds)
        return self.render_delayed(invocation, delay_seconds)

    def _shell_detail(self, shell: str) -> RequirementDetail:
        name = os.path.basename(shell.replace("\\", "/")).split(".")[0] or "sh"
        return RequirementDetail(
            f"Shell ({shell})",
            self._tools.is_available(name),
            "Shell should be available by default on this system.",
        )


__all__ = [
    "AutomationError",
    "PlatformAdapter",
    "RequirementDetail",
    "RequirementReport",
    "ToolNotFoundError",
    "ToolResolver",
    "UnsupportedPlatformError",
]
