"""Tool registration for the cursor-sub-agents MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..config import CsaSettings
from ..lifecycle import SessionWaitResult
from ..orchestrator import Orchestrator


@dataclass(slots=True)
class ToolHandles:
    spawn_agents: Any
    spawn_jobs: Any
    wait_session: Any
    complete_agent: Any
    accept_agent: Any
    feedback_agent: Any
    execute_job: Any
    session_status: Any
    validate_job: Any
    validate_task_types: Any
    list_jobs: Any
    list_task_types: Any
    list_commands: Any


def _wait_payload(result: SessionWaitResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "session_id": result.session_id,
        "outcome": result.outcome,
        "agents": [
            {"id": agent.id, "status": agent.status.value, "prompt": agent.prompt}
            for agent in result.session.agents
        ],
    }
    if result.outcome == "pending":
        payload["pending"] = [
            {"id": agent.id, "return_message": agent.return_message, "feedback_count": agent.feedback_count}
            for agent in result.pending
        ]
        payload["running_count"] = len(result.running)
        payload["next_steps"] = [
            f"Review agent {agent.id}, then call accept_agent or feedback_agent" for agent in result.pending
        ]
    return payload


def register_tools(
    server: FastMCP,
    *,
    orchestrator: Orchestrator,
    settings: CsaSettings,
) -> ToolHandles:
    """Register the orchestrator's operations as MCP tools on the server."""

    def _spawn_agents(prompts: list[str], context: Context | None = None) -> dict[str, Any]:
        """Spawn one Cursor agent per prompt in detached mode."""

        result = orchestrator.spawn(prompts)
        _emit_log(
            context,
            "info",
            "Spawned agents",
            extra={"session_id": result.session_id, "agent_count": len(result.agents)},
        )
        payload = result.to_dict()
        payload["wait_hint"] = f"csa wait {result.session_id}"
        return payload

    async def _spawn_jobs(job_ids: list[str], context: Context | None = None) -> dict[str, Any]:
        """Validate and drive one agent per job, one after another."""

        result = await orchestrator.spawn_jobs(job_ids)
        _emit_log(
            context,
            "info",
            "Spawned job agents",
            extra={"session_id": result.session_id, "failed": len(result.failed)},
        )
        return result.to_dict()

    async def _wait_session(session_id: str, context: Context | None = None) -> dict[str, Any]:
        result = await orchestrator.wait(session_id)
        _emit_log(context, "info", "Wait finished", extra={"session_id": session_id, "outcome": result.outcome})
        return _wait_payload(result)

    async def _complete_agent(
        agent_id: str,
        message: str | None = None,
        timeout_minutes: float | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Submit an agent's work and wait for approval or feedback."""

        result = await orchestrator.complete(agent_id, message, timeout_minutes)
        _emit_log(context, "info", "Agent completion resolved", extra={"agent_id": agent_id, "outcome": result.outcome})
        return {"agent_id": agent_id, "outcome": result.outcome, "feedback": result.feedback}

    def _accept_agent(agent_id: str, context: Context | None = None) -> dict[str, Any]:
        result = orchestrator.accept(agent_id)
        _emit_log(context, "info", "Agent accepted", extra={"agent_id": agent_id, "changed": result.changed})
        return {
            "agent_id": agent_id,
            "session_id": result.session_id,
            "status": result.agent.status.value,
            "changed": result.changed,
            "session_completed": result.session_completed,
        }

    def _feedback_agent(agent_id: str, message: str, context: Context | None = None) -> dict[str, Any]:
        result = orchestrator.feedback(agent_id, message)
        _emit_log(context, "info", "Feedback recorded", extra={"agent_id": agent_id})
        return {"agent_id": agent_id, "session_id": result.session_id, "status": result.agent.status.value}

    async def _execute_job(job_id: str, context: Context | None = None) -> dict[str, Any]:
        """Send a job's tasks and commands into the focused Cursor window."""

        plan = await orchestrator.execute_job(job_id)
        _emit_log(context, "info", "Executed job", extra={"job_id": job_id, "task_count": len(plan)})
        return {
            "job_id": job_id,
            "tasks": [{"name": item.task.name, "type": item.task.type, "commands": item.commands} for item in plan],
        }

    def _session_status(session_id: str | None = None, context: Context | None = None) -> list[dict[str, Any]]:
        rows = orchestrator.status(session_id)
        _emit_log(context, "debug", "Listing agent status", extra={"count": len(rows)})
        return [row.to_dict() for row in rows]

    def _validate_job(job_id: str, context: Context | None = None) -> dict[str, Any]:
        report = orchestrator.validate_job(job_id)
        _emit_log(context, "debug", "Validated job", extra={"job_id": job_id, "valid": report.valid})
        return report.to_dict()

    def _validate_task_types(context: Context | None = None) -> dict[str, Any]:
        missing = orchestrator.validate_task_types()
        _emit_log(context, "debug", "Validated task types", extra={"invalid": sorted(missing)})
        return {"valid": not missing, "missing": missing}

    def _list_jobs(context: Context | None = None) -> list[dict[str, Any]]:
        entries = orchestrator.list_jobs()
        _emit_log(context, "debug", "Listing jobs", extra={"count": len(entries)})
        return [
            {
                "id": entry.job_id,
                "scope": entry.scope.value,
                "path": str(entry.path),
                "overrides_global": entry.overrides_global,
            }
            for entry in entries
        ]

    def _list_task_types(context: Context | None = None) -> list[dict[str, Any]]:
        entries = orchestrator.list_task_types()
        _emit_log(context, "debug", "Listing task types", extra={"count": len(entries)})
        return [
            {
                "name": entry.name,
                "commands": entry.commands,
                "scope": entry.scope.value,
                "overrides_global": entry.overrides_global,
            }
            for entry in entries
        ]

    def _list_commands(context: Context | None = None) -> list[dict[str, Any]]:
        entries = orchestrator.list_commands()
        _emit_log(context, "debug", "Listing commands", extra={"count": len(entries)})
        return [
            {
                "name": entry.name,
                "scope": entry.scope.value,
                "path": str(entry.path),
                "preview": entry.preview,
                "overrides_global": entry.overrides_global,
            }
            for entry in entries
        ]

    tool_spawn = server.tool(
        name="spawn_agents",
        description=(
            "Open one new Cursor agent chat per prompt and schedule the follow-up prompts. "
            "Returns the session id to wait on."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Sends synthetic keystrokes to the focused desktop session",
            }
        },
    )(_spawn_agents)

    tool_spawn_jobs = server.tool(
        name="spawn_jobs",
        description="Validate the given job ids, then open one agent per job and walk it through every task.",
    )(_spawn_jobs)

    tool_wait = server.tool(
        name="wait_session",
        description="Block until every agent of a session is approved or one is waiting for verification.",
    )(_wait_session)

    tool_complete = server.tool(
        name="complete_agent",
        description=(
            f"Submit an agent's work for verification and wait up to "
            f"{settings.complete_timeout_minutes:g} minutes (by default) for approval or feedback."
        ),
    )(_complete_agent)

    tool_accept = server.tool(
        name="accept_agent",
        description="Approve an agent's submitted work.",
    )(_accept_agent)

    tool_feedback = server.tool(
        name="feedback_agent",
        description="Send feedback to an agent that is waiting for verification.",
    )(_feedback_agent)

    tool_execute = server.tool(
        name="execute_job",
        description="Run a job's tasks in the currently focused Cursor chat.",
    )(_execute_job)

    tool_status = server.tool(
        name="session_status",
        description="List agents and their status, newest session first, optionally for one session.",
    )(_session_status)

    tool_validate_job = server.tool(
        name="validate_job",
        description="Report every structural, task type and command problem of a job.",
    )(_validate_job)

    tool_validate_task_types = server.tool(
        name="validate_task_types",
        description="Report task types that reference commands with no command file.",
    )(_validate_task_types)

    tool_list_jobs = server.tool(
        name="list_jobs",
        description="List jobs from the project and global scopes.",
    )(_list_jobs)

    tool_list_task_types = server.tool(
        name="list_task_types",
        description="List the merged task types with their command sequences and scope.",
    )(_list_task_types)

    tool_list_commands = server.tool(
        name="list_commands",
        description="List Cursor command files from the project and global scopes.",
    )(_list_commands)

    return ToolHandles(
        spawn_agents=tool_spawn,
        spawn_jobs=tool_spawn_jobs,
        wait_session=tool_wait,
        complete_agent=tool_complete,
        accept_agent=tool_accept,
        feedback_agent=tool_feedback,
        execute_job=tool_execute,
        session_status=tool_status,
        validate_job=tool_validate_job,
        validate_task_types=tool_validate_task_types,
        list_jobs=tool_list_jobs,
        list_task_types=tool_list_task_types,
        list_commands=tool_list_commands,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
