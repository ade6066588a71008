"""Job, task and scope models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TaskTypeMapping = dict[str, list[str]]


class Scope(str, Enum):
    GLOBAL = "global"
    PROJECT = "project"


class Task(BaseModel):
    """One unit of work inside a job."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Human readable task name.")
    type: str = Field(..., description="Task type resolved against the merged registry.")
    files: list[str] = Field(default_factory=list, description="Files the agent should read.")
    prompt: str = Field(..., description="Instruction sent in the task kickoff message.")


class Job(BaseModel):
    """A persisted goal plus its ordered tasks."""

    model_config = ConfigDict(extra="allow")

    id: str
    goal: str
    tasks: list[Task] = Field(default_factory=list)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = ["Job", "Scope", "Task", "TaskTypeMapping"]
