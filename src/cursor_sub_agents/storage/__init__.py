"""Storage abstractions for the shared agent registry."""

from .atomic import read_json, write_json_atomic
from .locking import FileLock, LockTimeoutError
from .models import AgentState, AgentStatus, AgentsRegistry, Session
from .state import (
    InMemoryStateStore,
    JsonStateStore,
    StateStore,
    StateStoreError,
    cleanup_old_sessions,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from .watch import ManualChangeStream, StateChange, StateChangeStream

__all__ = [
    "AgentState",
    "AgentStatus",
    "AgentsRegistry",
    "FileLock",
    "InMemoryStateStore",
    "JsonStateStore",
    "LockTimeoutError",
    "ManualChangeStream",
    "Session",
    "StateChange",
    "StateChangeStream",
    "StateStore",
    "StateStoreError",
    "cleanup_old_sessions",
    "format_timestamp",
    "parse_timestamp",
    "read_json",
    "utc_now",
    "write_json_atomic",
]
