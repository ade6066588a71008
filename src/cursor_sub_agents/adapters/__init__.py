"""Platform adapters for URL opening and synthetic keyboard input."""

from __future__ import annotations

import sys

from .base import (
    AutomationError,
    PlatformAdapter,
    RequirementDetail,
    RequirementReport,
    ToolNotFoundError,
    ToolResolver,
    UnsupportedPlatformError,
)
from .linux import LinuxAdapter
from .macos import MacOSAdapter
from .runner import (
    CommandResult,
    CommandRunner,
    DelayedCommand,
    FakeCommandRunner,
    ToolInvocation,
    reap_detached,
    spawn_detached,
    tool_on_path,
)
from .windows import WindowsAdapter

_ADAPTERS: dict[str, type[PlatformAdapter]] = {
    "darwin": MacOSAdapter,
    "linux": LinuxAdapter,
    "win32": WindowsAdapter,
}


def get_platform_adapter(platform: str | None = None, **options) -> PlatformAdapter:
    """Return the adapter for ``platform`` (defaults to ``sys.platform``)."""

    key = platform or sys.platform
    if key.startswith("linux"):
        key = "linux"
    adapter_cls = _ADAPTERS.get(key)
    if adapter_cls is None:
        raise UnsupportedPlatformError(
            f"Unsupported platform: {key}. Supported platforms: macOS (darwin), Linux, Windows (win32)"
        )
    return adapter_cls(**options)


__all__ = [
    "AutomationError",
    "CommandResult",
    "CommandRunner",
    "DelayedCommand",
    "FakeCommandRunner",
    "LinuxAdapter",
    "MacOSAdapter",
    "PlatformAdapter",
    "RequirementDetail",
    "RequirementReport",
    "ToolInvocation",
    "ToolNotFoundError",
    "ToolResolver",
    "UnsupportedPlatformError",
    "WindowsAdapter",
    "get_platform_adapter",
    "reap_detached",
    "spawn_detached",
    "tool_on_path",
]
