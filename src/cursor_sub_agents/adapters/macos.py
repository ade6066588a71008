"""macOS adapter driving System Events through ``osascript``."""

from __future__ import annotations

from .base import PlatformAdapter, RequirementDetail, RequirementReport
from .runner import ToolInvocation
from .utils import escape_applescript_string, format_seconds

BUILTIN_HINT = "{tool} is part of macOS and should be available by default. If missing, this may indicate a system issue."


class MacOSAdapter(PlatformAdapter):
    """Keystrokes go to whichever app is frontmost, so each one is preceded by
    a best-effort activation of the target app inside the same script."""

    platform_name = "macOS"

    def __init__(self, *args, activation_delay: float = 0.2, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.activation_delay = activation_delay

    def tool_candidates(self) -> dict[str, list[str]]:
        return {self.url_capability: ["open"], self.keyboard_capability: ["osascript"]}

    def installation_hint(self, capability: str) -> str | None:
        tool = "open" if capability == self.url_capability else "osascript"
        return BUILTIN_HINT.format(tool=tool)

    def _activate_statement(self) -> str:
        return f'tell application "{escape_applescript_string(self.target_app)}" to activate'

    def _focused(self, tool: str, statement: str) -> ToolInvocation:
        return ToolInvocation(
            (
                tool,
                "-e", "try",
                "-e", self._activate_statement(),
                "-e", f"delay {format_seconds(self.activation_delay)}",
                "-e", "end try",
                "-e", statement,
            )
        )

    def open_url_invocation(self, url: str) -> ToolInvocation:
        return ToolInvocation((self.require_tool(self.url_capability), url))

    def type_text_invocation(self, text: str) -> ToolInvocation:
        tool = self.require_tool(self.keyboard_capability)
        statement = f'tell application "System Events" to keystroke "{escape_applescript_string(text)}"'
        return self._focused(tool, statement)

    def enter_invocation(self) -> ToolInvocation:
        tool = self.require_tool(self.keyboard_capability)
        return self._focused(tool, 'tell application "System Events" to keystroke return')

    def activate_invocation(self) -> ToolInvocation | None:
        return ToolInvocation((self.require_tool(self.keyboard_capability), "-e", self._activate_statement()))

    def get_shell_command(self) -> str:
        shell = self._environ.get("SHELL")
        if shell:
            return shell
        for candidate in ("/opt/homebrew/bin/zsh", "/bin/zsh"):
            if self._tools.is_available(candidate):
                return candidate
        return "/bin/sh"

    async def check_requirements(self) -> RequirementReport:
        self._tools.reset()
        osascript = await self._tools.aresolve(self.keyboard_capability)
        opener = await self._tools.aresolve(self.url_capability)
        return RequirementReport(
            platform=self.platform_name,
            details=[
                RequirementDetail("osascript", osascript is not None, BUILTIN_HINT.format(tool="osascript")),
                RequirementDetail("open", opener is not None, BUILTIN_HINT.format(tool="open")),
                self._shell_detail(self.get_shell_command()),
            ],
        )


__all__ = ["MacOSAdapter"]
