"""JSON-backed registry store shared by every csa process on the machine."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Protocol

from pydantic import ValidationError

from .atomic import write_json_atomic
from .locking import FileLock, LockTimeoutError
from .models import AgentsRegistry

logger = logging.getLogger(__name__)

SESSION_RETENTION = timedelta(hours=24)


class StateStoreError(RuntimeError):
    """Raised when the registry cannot be persisted."""


class StateStore(Protocol):
    """Load/save contract used by the lifecycle and orchestrator."""

    def load(self) -> AgentsRegistry:
        ...

    def save(self, registry: AgentsRegistry) -> None:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render an aware datetime the way the state file stores it (``...Z``, millisecond precision)."""

    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; returns ``None`` when absent or unparsable."""

    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class JsonStateStore:
    """Registry persisted to a single JSON file guarded by :class:`FileLock`.

    ``load`` degrades to an empty registry on any read, parse or lock failure;
    ``save`` raises.
    """

    def __init__(self, path: Path, *, lock_factory: Callable[[Path], FileLock] | None = None) -> None:
        self._path = Path(path)
        self._lock_factory = lock_factory or FileLock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AgentsRegistry:
        try:
            with self._lock_factory(self._path):
                raw = self._path.read_bytes()
        except FileNotFoundError:
            return AgentsRegistry()
        except (LockTimeoutError, OSError) as exc:
            logger.warning(
                "Could not read state file, using empty registry",
                extra={"path": str(self._path), "error": str(exc)},
            )
            return AgentsRegistry()

        try:
            return AgentsRegistry.model_validate(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "State file is not a valid registry, using empty registry",
                extra={"path": str(self._path), "error": str(exc)},
            )
            return AgentsRegistry()

    def save(self, registry: AgentsRegistry) -> None:
        payload = registry.to_json_dict()
        with self._lock_factory(self._path):
            try:
                write_json_atomic(self._path, payload)
            except OSError as exc:
                raise StateStoreError(f"Failed to save state to {self._path}: {exc}") from exc


class InMemoryStateStore:
    """Test double keeping the registry as a JSON snapshot in memory."""

    def __init__(self, registry: AgentsRegistry | None = None) -> None:
        self._payload = (registry or AgentsRegistry()).to_json_dict()
        self.save_count = 0

    def load(self) -> AgentsRegistry:
        return AgentsRegistry.model_validate(json.loads(json.dumps(self._payload)))

    def save(self, registry: AgentsRegistry) -> None:
        self._payload = registry.to_json_dict()
        self.save_count += 1


def cleanup_old_sessions(
    store: StateStore,
    *,
    now: datetime | None = None,
    retention: timedelta = SESSION_RETENTION,
) -> int:
    """Drop sessions completed at least ``retention`` ago; returns how many were removed."""

    current = now or utc_now()
    try:
        registry = store.load()
        expired = []
        for session_id, session in registry.sessions.items():
            completed = parse_timestamp(session.completed_at)
            if completed is None:
                continue
            if current - completed >= retention:
                expired.append(session_id)

        if not expired:
            return 0

        for session_id in expired:
            del registry.sessions[session_id]
        store.save(registry)
    except (StateStoreError, LockTimeoutError) as exc:
        logger.warning("Session cleanup failed", extra={"error": str(exc)})
        return 0

    logger.info("Removed expired sessions", extra={"count": len(expired), "sessions": expired})
    return len(expired)


__all__ = [
    "InMemoryStateStore",
    "JsonStateStore",
    "SESSION_RETENTION",
    "StateStore",
    "StateStoreError",
    "cleanup_old_sessions",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
]
