"""Persisted registry models for sessions and agents."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AgentStatus(str, Enum):
    RUNNING = "running"
    PENDING_VERIFICATION = "pending_verification"
    FEEDBACK_REQUESTED = "feedback_requested"
    APPROVED = "approved"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class _StateModel(BaseModel):
    # Unknown keys written by other versions are carried through untouched.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        use_enum_values=False,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AgentState(_StateModel):
    """One tracked agent inside a session."""

    id: str
    prompt: str
    status: AgentStatus = AgentStatus.RUNNING
    started_at: str
    completed_at: str | None = None
    repository: str | None = None
    submitted_at: str | None = None
    verified_at: str | None = None
    feedback: str | None = None
    feedback_count: int | None = None
    return_message: str | None = None
    error: str | None = None


class Session(_StateModel):
    agents: list[AgentState] = Field(default_factory=list)
    created_at: str
    completed_at: str | None = None


class AgentsRegistry(_StateModel):
    """The whole persisted state file."""

    sessions: dict[str, Session] = Field(default_factory=dict)


__all__ = ["AgentState", "AgentStatus", "AgentsRegistry", "Session"]
