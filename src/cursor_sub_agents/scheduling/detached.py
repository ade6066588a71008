"""Detached (compressed) scheduling: many agents kicked off without blocking.

Every operation becomes an independent ``sleep <offset> && <operation>``
process. Nothing confirms that an earlier step (a window opening, a
keystroke landing) finished before a later one fires; ordering rests
entirely on the offsets below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

from ..adapters import DelayedCommand, PlatformAdapter, spawn_detached
from .timing import DEFAULT_TIMING, TimingProfile

logger = logging.getLogger(__name__)

OperationKind = Literal["open_url", "enter", "type_text"]


@dataclass(slots=True, frozen=True)
class PlannedOperation:
    offset: float
    kind: OperationKind
    command: DelayedCommand
    agent_id: str | None = None
    text: str | None = None


@dataclass(slots=True, frozen=True)
class AgentLaunch:
    """What one detached agent needs: its deep link and the follow-ups to type."""

    agent_id: str
    url: str
    follow_ups: tuple[str, ...] = ()


class DetachedScheduler:
    def __init__(
        self,
        adapter: PlatformAdapter,
        timing: TimingProfile = DEFAULT_TIMING,
        *,
        spawner: Callable[[DelayedCommand], None] = spawn_detached,
    ) -> None:
        self._adapter = adapter
        self._timing = timing
        self._spawner = spawner

    def plan_agent(self, launch: AgentLaunch, start: float = 0.0) -> list[PlannedOperation]:
        """Build one agent's operations at absolute offsets from ``start``.

        Open at ``start``, Enter at +2s and +4s, then follow-up ``k`` typed at
        +6s + k*4s with its Enter one estimated typing duration later.
        """

        timing = self._timing
        adapter = self._adapter
        agent_id = launch.agent_id
        operations = [
            PlannedOperation(
                start, "open_url", adapter.build_delayed_open_url_command(launch.url, start), agent_id
            ),
            PlannedOperation(
                start + timing.enter1_offset,
                "enter",
                adapter.build_delayed_enter_command(start + timing.enter1_offset),
                agent_id,
            ),
            PlannedOperation(
                start + timing.enter2_offset,
                "enter",
                adapter.build_delayed_enter_command(start + timing.enter2_offset),
                agent_id,
            ),
        ]

        for index, text in enumerate(launch.follow_ups):
            type_at = start + timing.follow_up_start_offset + index * timing.follow_up_interval
            enter_at = type_at + timing.estimated_typing_time(text)
            operations.append(
                PlannedOperation(
                    type_at,
                    "type_text",
                    adapter.build_delayed_type_text_command(text, type_at),
                    agent_id,
                    text,
                )
            )
            operations.append(
                PlannedOperation(enter_at, "enter", adapter.build_delayed_enter_command(enter_at), agent_id)
            )
        return operations

    def plan_session(self, launches: Sequence[AgentLaunch]) -> list[PlannedOperation]:
        """Plan every agent back to back, each offset by the previous agents' durations."""

        operations: list[PlannedOperation] = []
        start = 0.0
        for launch in launches:
            operations.extend(self.plan_agent(launch, start))
            start += self._timing.session_duration(len(launch.follow_ups))
        return sorted(operations, key=lambda operation: operation.offset)

    def dispatch(self, plan: Sequence[PlannedOperation]) -> int:
        """Spawn every planned command detached; returns how many were started."""

        for operation in plan:
            self._spawner(operation.command)
            logger.debug(
                "Dispatched delayed operation",
                extra={"agent_id": operation.agent_id, "kind": operation.kind, "offset": operation.offset},
            )
        return len(plan)


__all__ = ["AgentLaunch", "DetachedScheduler", "PlannedOperation"]
