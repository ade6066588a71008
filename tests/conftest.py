from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from cursor_sub_agents.adapters import (
    AutomationError,
    FakeCommandRunner,
    LinuxAdapter,
    RequirementDetail,
    RequirementReport,
)
from cursor_sub_agents.config import CsaSettings

X11_ENV = {"XDG_SESSION_TYPE": "x11", "DISPLAY": ":0", "SHELL": "/bin/bash"}


class LogicalClock:
    """Wall clock and sleep replacement; sleeping only advances the clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> LogicalClock:
    return LogicalClock()


@pytest.fixture
def settings(tmp_path: Path) -> CsaSettings:
    project = tmp_path / "project"
    project.mkdir()
    return CsaSettings(
        state_dir=tmp_path / "home" / ".csa",
        project_root=project,
        global_commands_dir=tmp_path / "home" / ".cursor" / "commands",
        followup_prompts=None,
    )


def make_linux_adapter(tools=("xdg-open", "xdotool", "bash"), environ=None, runner=None) -> LinuxAdapter:
    available = set(tools)
    return LinuxAdapter(
        runner=runner or FakeCommandRunner(),
        tool_available=lambda name: name in available,
        environ=X11_ENV if environ is None else environ,
    )


class RecordingAdapter:
    """Records the automation steps in the order they are issued."""

    def __init__(self, fail_on: str | None = None, max_failures: int | None = None) -> None:
        self.steps: list[tuple[str, ...]] = []
        self.fail_on = fail_on
        self.max_failures = max_failures

    def _record(self, *step: str) -> None:
        self.steps.append(step)
        if self.fail_on is None or step[0] != self.fail_on:
            return
        if self.max_failures is not None:
            if self.max_failures == 0:
                return
            self.max_failures -= 1
        raise AutomationError(f"{self.fail_on} failed")

    async def open_url(self, url: str) -> None:
        self._record("open_url", url)

    async def activate_target_window(self) -> bool:
        self._record("activate")
        return True

    async def type_text(self, text: str) -> None:
        self._record("type", text)

    async def press_enter(self) -> None:
        self._record("enter")

    async def check_requirements(self) -> RequirementReport:
        return RequirementReport(platform="Recording", details=[RequirementDetail("recorder", True)])
