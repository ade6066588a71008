"""Cross-process lock on the state file's ``.lock`` sidecar with bounded retry."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

import filelock

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
DEFAULT_RETRIES = 10
MIN_BACKOFF_SECONDS = 0.1
MAX_BACKOFF_SECONDS = 1.0


class LockTimeoutError(RuntimeError):
    """Raised when the lock could not be acquired after the bounded retries."""


class FileLock:
    """Exclusive :class:`filelock.FileLock` on a sidecar ``<target>.lock`` file.

    Each attempt is non-blocking; a busy lock is retried with exponential
    backoff (``min_backoff`` doubling up to ``max_backoff``) for ``retries``
    extra attempts before :class:`LockTimeoutError` is raised.
    """

    def __init__(
        self,
        target: Path,
        *,
        retries: int = DEFAULT_RETRIES,
        min_backoff: float = MIN_BACKOFF_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._target = Path(target)
        self._lock_path = self._target.with_name(self._target.name + LOCK_SUFFIX)
        self._retries = retries
        self._min_backoff = min_backoff
        self._max_backoff = max_backoff
        self._sleep = sleep
        self._lock = filelock.FileLock(str(self._lock_path))

    @property
    def path(self) -> Path:
        return self._lock_path

    @property
    def locked(self) -> bool:
        return self._lock.is_locked

    def acquire(self) -> None:
        if self._lock.is_locked:
            raise RuntimeError(f"Lock {self._lock_path} is already held by this object")

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        delay = self._min_backoff
        for attempt in range(self._retries + 1):
            try:
                self._lock.acquire(timeout=0)
            except filelock.Timeout:
                if attempt == self._retries:
                    break
            else:
                return
            logger.debug(
                "State lock busy, retrying",
                extra={"lock_path": str(self._lock_path), "attempt": attempt + 1, "delay": delay},
            )
            self._sleep(delay)
            delay = min(delay * 2, self._max_backoff)

        raise LockTimeoutError(
            f"Could not acquire lock {self._lock_path} after {self._retries} retries"
        )

    def release(self) -> None:
        if self._lock.is_locked:
            self._lock.release()

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


__all__ = ["FileLock", "LockTimeoutError"]
