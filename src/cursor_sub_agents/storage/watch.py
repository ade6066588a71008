"""Single event source for code that waits on state file changes."""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Literal

StateChangeKind = Literal["modified", "tick"]


@dataclass(slots=True, frozen=True)
class StateChange:
    kind: StateChangeKind


def _fingerprint(path: Path) -> tuple[int, int, int] | None:
    try:
        stat = os.stat(path)
    except FileNotFoundError:
        return None
    return (stat.st_mtime_ns, stat.st_size, stat.st_ino)


class StateChangeStream:
    """Poll the state file's stat signature and emit change events.

    Each subscription yields ``modified`` when the file's mtime, size or inode
    changes (atomic renames swap the inode) and ``tick`` every ``heartbeat``
    seconds regardless, so waiters re-check even when a change was missed.
    """

    def __init__(
        self,
        path: Path,
        *,
        poll_interval: float = 0.5,
        heartbeat: float | None = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._path = Path(path)
        self._poll_interval = poll_interval
        self._heartbeat = heartbeat
        self._sleep = sleep
        self._active = 0

    @property
    def active_subscriptions(self) -> int:
        return self._active

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[AsyncIterator[StateChange]]:
        self._active += 1
        events = self._events()
        try:
            yield events
        finally:
            await events.aclose()
            self._active -= 1

    async def _events(self) -> AsyncIterator[StateChange]:
        last = _fingerprint(self._path)
        since_tick = 0.0
        while True:
            await self._sleep(self._poll_interval)
            since_tick += self._poll_interval
            current = _fingerprint(self._path)
            if current != last:
                last = current
                yield StateChange("modified")
            if self._heartbeat is not None and since_tick >= self._heartbeat:
                since_tick = 0.0
                yield StateChange("tick")


class ManualChangeStream:
    """In-process stream driven by :meth:`notify`; pairs with ``InMemoryStateStore``."""

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue[StateChange]] = []

    @property
    def active_subscriptions(self) -> int:
        return len(self._queues)

    def notify(self, kind: StateChangeKind = "modified") -> None:
        for queue in list(self._queues):
            queue.put_nowait(StateChange(kind))

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[AsyncIterator[StateChange]]:
        queue: asyncio.Queue[StateChange] = asyncio.Queue()
        self._queues.append(queue)
        events = self._drain(queue)
        try:
            yield events
        finally:
            await events.aclose()
            self._queues.remove(queue)

    @staticmethod
    async def _drain(queue: asyncio.Queue[StateChange]) -> AsyncIterator[StateChange]:
        while True:
            yield await queue.get()


__all__ = ["ManualChangeStream", "StateChange", "StateChangeStream"]
