"""Linux adapter with X11/Wayland detection and tool fallbacks."""

from __future__ import annotations

from typing import Literal

from .base import PlatformAdapter, RequirementDetail, RequirementReport
from .runner import ToolInvocation

LinuxEnvironment = Literal["x11", "wayland", "unknown"]

LINUX_URL_OPENERS = ["xdg-open", "gio", "gnome-open", "kde-open", "exo-open"]
LINUX_X11_KEYBOARD_TOOLS = ["xdotool", "ydotool"]
LINUX_WAYLAND_KEYBOARD_TOOLS = ["wtype", "ydotool"]
KDE_KEYBOARD_TOOL = "kdotool"

PACKAGE_MANAGERS = [
    ("pacman", "sudo pacman -S {package}"),
    ("apt", "sudo apt-get install {package}"),
    ("yum", "sudo yum install {package}"),
    ("dnf", "sudo dnf install {package}"),
    ("zypper", "sudo zypper install {package}"),
]

_ENTER_ARGS = {
    "xdotool": ("key", "Return"),
    "wtype": ("-k", "Return"),
    "ydotool": ("key", "28:1", "28:0"),
    "kdotool": ("key", "Return"),
}


def detect_linux_environment(environ) -> LinuxEnvironment:
    session_type = environ.get("XDG_SESSION_TYPE", "")
    if session_type == "wayland" or environ.get("WAYLAND_DISPLAY"):
        return "wayland"
    if session_type == "x11" or environ.get("DISPLAY"):
        return "x11"
    return "unknown"


class LinuxAdapter(PlatformAdapter):
    platform_name = "Linux"

    @property
    def environment(self) -> LinuxEnvironment:
        return detect_linux_environment(self._environ)

    def keyboard_tools(self) -> list[str]:
        environment = self.environment
        if environment == "x11":
            return list(LINUX_X11_KEYBOARD_TOOLS)
        if environment == "wayland":
            tools = list(LINUX_WAYLAND_KEYBOARD_TOOLS)
            if "KDE" in self._environ.get("XDG_CURRENT_DESKTOP", ""):
                tools.insert(0, KDE_KEYBOARD_TOOL)
            return tools
        return []

    def tool_candidates(self) -> dict[str, list[str]]:
        return {
            self.url_capability: list(LINUX_URL_OPENERS),
            self.keyboard_capability: self.keyboard_tools(),
        }

    def describe_capability(self, capability: str) -> str:
        if capability == self.keyboard_capability:
            label = {"x11": "X11", "wayland": "Wayland"}.get(self.environment, "an unknown display server")
            return f"keyboard automation tool for {label}"
        return super().describe_capability(capability)

    def _package_install(self, package: str) -> str | None:
        for manager, template in PACKAGE_MANAGERS:
            if self._tools.is_available(manager):
                return template.format(package=package)
        return None

    def installation_hint(self, capability: str) -> str | None:
        if capability == self.url_capability:
            return self._package_install("xdg-utils") or (
                "Install xdg-utils using your distribution's package manager"
            )
        if self.environment == "unknown":
            return "Unable to detect display server. Ensure XDG_SESSION_TYPE or DISPLAY/WAYLAND_DISPLAY is set."
        if self.environment == "x11":
            return self._package_install("xdotool") or (
                "Install xdotool using your distribution's package manager"
            )
        command = self._package_install("wtype")
        if command:
            return f"{command} (or install ydotool)"
        return "Install wtype or ydotool using your distribution's package manager"

    def open_url_invocation(self, url: str) -> ToolInvocation:
        opener = self.require_tool(self.url_capability)
        if opener == "gio":
            return ToolInvocation((opener, "open", url))
        return ToolInvocation((opener, url))

    def type_text_invocation(self, text: str) -> ToolInvocation:
        tool = self.require_tool(self.keyboard_capability)
        if tool == "xdotool":
            return ToolInvocation((tool, "type", "--", text))
        if tool == "wtype":
            return ToolInvocation((tool, "-"), input=text)
        if tool == "ydotool":
            return ToolInvocation((tool, "type", "--file", "-"), input=text)
        return ToolInvocation((tool, "type", text))

    def enter_invocation(self) -> ToolInvocation:
        tool = self.require_tool(self.keyboard_capability)
        return ToolInvocation((tool, *_ENTER_ARGS[tool]))

    def activate_invocation(self) -> ToolInvocation | None:
        # Wayland has no portable way to raise another client's window.
        if self.environment != "x11" or self._tools.resolve(self.keyboard_capability) != "xdotool":
            return None
        return ToolInvocation(("xdotool", "search", "--name", self.target_app, "windowactivate"))

    def get_shell_command(self) -> str:
        return self._environ.get("SHELL") or "/bin/sh"

    async def check_requirements(self) -> RequirementReport:
        self._tools.reset()
        opener = await self._tools.aresolve(self.url_capability)
        keyboard = await self._tools.aresolve(self.keyboard_capability)
        environment = self.environment
        return RequirementReport(
            platform=self.platform_name,
            details=[
                RequirementDetail(
                    f"Display Server ({environment})",
                    environment != "unknown",
                    "Unable to detect display server. Ensure XDG_SESSION_TYPE or DISPLAY/WAYLAND_DISPLAY is set.",
                ),
                RequirementDetail(
                    f"URL Opener ({opener or 'none'})",
                    opener is not None,
                    self.installation_hint(self.url_capability),
                ),
                RequirementDetail(
                    f"Keyboard Automation ({keyboard or 'none'})",
                    keyboard is not None,
                    self.installation_hint(self.keyboard_capability),
                ),
                self._shell_detail(self.get_shell_command()),
            ],
        )


__all__ = [
    "LINUX_URL_OPENERS",
    "LINUX_WAYLAND_KEYBOARD_TOOLS",
    "LINUX_X11_KEYBOARD_TOOLS",
    "LinuxAdapter",
    "detect_linux_environment",
]
