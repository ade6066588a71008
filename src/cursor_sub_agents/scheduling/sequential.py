"""Sequential (await) execution: one window, many ordered steps."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from ..adapters import PlatformAdapter
from ..jobs.models import Job, Task
from ..prompts import (
    SUMMARY_PROMPT,
    command_prompt,
    hand_in_prompt,
    kickoff_prompt,
    overview_prompt,
)
from .timing import DEFAULT_TIMING, TimingProfile

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class ResolvedTask:
    """A validated task paired with its resolved command sequence."""

    task: Task
    commands: list[str] = field(default_factory=list)


class SequentialExecutor:
    """Drive the target application step by step, awaiting every delay.

    Ordering holds by construction: each step finishes (including its settle
    delays) before the next begins.
    """

    def __init__(
        self,
        adapter: PlatformAdapter,
        timing: TimingProfile = DEFAULT_TIMING,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._timing = timing
        self._sleep = sleep

    async def submit_text(self, text: str, *, is_command: bool = False) -> None:
        """Type ``text`` into the focused chat and submit it.

        Commands get a second Enter: the first selects the slash command,
        the second sends it.
        """

        await self._adapter.activate_target_window()
        await self._sleep(self._timing.activation_delay)

        await self._adapter.type_text(text)
        await self._sleep(self._timing.typing_settle)
        await self._adapter.press_enter()
        await self._sleep(self._timing.settle_after_submit(text))

        if is_command:
            await self._adapter.press_enter()
            await self._sleep(self._timing.enter_delay)

    async def run_tasks(self, plan: Sequence[ResolvedTask]) -> None:
        """Send kickoff and command messages for every task, in order."""

        for task_index, item in enumerate(plan):
            logger.info(
                "Running task",
                extra={
                    "task_index": task_index + 1,
                    "task_name": item.task.name,
                    "task_type": item.task.type,
                    "commands": item.commands,
                },
            )
            await self.submit_text(kickoff_prompt(item.task))
            await self._sleep(self._timing.enter_delay)

            for command_index, command in enumerate(item.commands):
                await self.submit_text(command_prompt(command), is_command=True)
                if command_index < len(item.commands) - 1:
                    await self._sleep(self._timing.enter_delay)

            if task_index < len(plan) - 1:
                await self._sleep(self._timing.enter_delay)

    async def drive_job(self, job: Job, plan: Sequence[ResolvedTask], agent_id: str, url: str) -> None:
        """Open a new chat for ``job`` and walk it through every task, then ask for the hand-in."""

        await self._adapter.open_url(url)
        await self._sleep(self._timing.window_open_wait)

        await self._adapter.activate_target_window()
        await self._sleep(self._timing.focus_wait)

        # The deep link pre-fills the goal; two Enters submit it.
        await self._adapter.press_enter()
        await self._sleep(self._timing.goal_submission_wait)
        await self._adapter.press_enter()
        await self._sleep(self._timing.goal_submission_wait)

        await self.submit_text(overview_prompt(job))
        await self._sleep(self._timing.task_list_delay(len(job.tasks)))

        await self.run_tasks(plan)

        await self.submit_text(hand_in_prompt(agent_id))
        await self._sleep(self._timing.enter_delay)
        await self.submit_text(SUMMARY_PROMPT)
        await self._sleep(self._timing.enter_delay)
        logger.info("Job steps sent", extra={"job_id": job.id, "agent_id": agent_id})


__all__ = ["ResolvedTask", "SequentialExecutor"]
