"""Windows adapter built on PowerShell, SendKeys and AppActivate."""

from __future__ import annotations

from .base import PlatformAdapter, RequirementDetail, RequirementReport
from .runner import DelayedCommand, ToolInvocation
from .utils import escape_sendkeys, powershell_quote

POWERSHELL_CANDIDATES = ["powershell", "pwsh"]
POWERSHELL_HINT = "PowerShell should be available on Windows 7+. If missing, install PowerShell from Microsoft."


class WindowsAdapter(PlatformAdapter):
    """Every operation is a PowerShell script passed via ``-Command``.

    Text is escaped for the SendKeys syntax and then embedded as a
    single-quoted PowerShell literal; no other layer re-quotes it.
    """

    platform_name = "Windows"

    def tool_candidates(self) -> dict[str, list[str]]:
        return {
            self.url_capability: list(POWERSHELL_CANDIDATES),
            self.keyboard_capability: list(POWERSHELL_CANDIDATES),
        }

    def installation_hint(self, capability: str) -> str | None:
        return POWERSHELL_HINT

    def describe_capability(self, capability: str) -> str:
        return "PowerShell executable"

    def _script(self, capability: str, script: str) -> ToolInvocation:
        return ToolInvocation((self.require_tool(capability), "-NoProfile", "-Command", script))

    @staticmethod
    def _sendkeys_script(keys: str) -> str:
        return (
            "Add-Type -AssemblyName System.Windows.Forms; "
            f"[System.Windows.Forms.SendKeys]::SendWait({powershell_quote(keys)})"
        )

    def open_url_invocation(self, url: str) -> ToolInvocation:
        return self._script(self.url_capability, f"Start-Process {powershell_quote(url)}")

    def type_text_invocation(self, text: str) -> ToolInvocation:
        return self._script(self.keyboard_capability, self._sendkeys_script(escape_sendkeys(text)))

    def enter_invocation(self) -> ToolInvocation:
        return self._script(self.keyboard_capability, self._sendkeys_script("{ENTER}"))

    def activate_invocation(self) -> ToolInvocation | None:
        app = powershell_quote(self.target_app)
        pattern = powershell_quote(f"*{self.target_app}*")
        script = (
            "Add-Type -AssemblyName Microsoft.VisualBasic; "
            f"try {{ [Microsoft.VisualBasic.Interaction]::AppActivate({app}) }} "
            f"catch {{ Get-Process | Where-Object {{ $_.MainWindowTitle -like {pattern} }} | "
            "Select-Object -First 1 | ForEach-Object { [Microsoft.VisualBasic.Interaction]::AppActivate($_.Id) } }"
        )
        return self._script(self.keyboard_capability, script)

    def render_delayed(self, invocation: ToolInvocation, delay_seconds: float) -> DelayedCommand:
        # argv is (powershell, -NoProfile, -Command, script); prefix the script with the sleep.
        tool, *options, script = invocation.argv
        milliseconds = max(int(round(delay_seconds * 1000)), 0)
        return DelayedCommand(tool, (*options, f"Start-Sleep -Milliseconds {milliseconds}; {script}"))

    def get_shell_command(self) -> str:
        if self._tools.resolve(self.keyboard_capability) is not None:
            return "powershell.exe"
        return "cmd.exe"

    async def check_requirements(self) -> RequirementReport:
        self._tools.reset()
        powershell = await self._tools.aresolve(self.keyboard_capability)
        details = [
            RequirementDetail("PowerShell", powershell is not None, POWERSHELL_HINT),
            self._shell_detail(self.get_shell_command()),
        ]
        if powershell is not None:
            try:
                result = await self._runner.run([powershell, "-NoProfile", "-Command", "Get-ExecutionPolicy"])
            except OSError as exc:
                details.append(
                    RequirementDetail(
                        "PowerShell Execution Policy",
                        False,
                        self.format_error("read execution policy", powershell, str(exc)),
                    )
                )
                return RequirementReport(platform=self.platform_name, details=details)
            restrictive = result.stdout.strip().lower() in {"restricted", "allsigned"}
            details.append(
                RequirementDetail(
                    "PowerShell Execution Policy",
                    not restrictive,
                    "PowerShell execution policy is restrictive. Run: "
                    "Set-ExecutionPolicy -ExecutionPolicy RemoteSigned -Scope CurrentUser",
                )
            )
        return RequirementReport(platform=self.platform_name, details=details)


__all__ = ["POWERSHELL_CANDIDATES", "WindowsAdapter"]
