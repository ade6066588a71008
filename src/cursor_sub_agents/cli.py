"""Command line interface for cursor-sub-agents (``csa``)."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from .adapters import AutomationError, UnsupportedPlatformError
from .config import CsaSettings, get_settings
from .jobs import JobError, JobValidationError
from .lifecycle import CompletionTimeoutError, LifecycleError
from .orchestrator import JobBatchValidationError, Orchestrator
from .server import configure_logging, create_server
from .storage import LockTimeoutError, StateStoreError


def load_orchestrator(settings: CsaSettings) -> Orchestrator:
    return Orchestrator(settings)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _validation_lines(error: JobValidationError) -> list[str]:
    lines = [f"Job {error.job_id} is invalid" + (f" ({error.job_file})" if error.job_file else "") + ":"]
    lines.extend(f"  - {message}" for message in error.errors)
    lines.extend(f"  - {task_error}" for task_error in error.task_errors)
    if error.task_errors:
        lines.append("Run 'csa validate-tasks' to check all task types.")
    lines.append(f"Run 'csa validate-job {error.job_id}' for the full report.")
    return lines


def _describe_error(exc: Exception) -> list[str]:
    if isinstance(exc, JobBatchValidationError):
        lines: list[str] = []
        for failure in exc.failures:
            if isinstance(failure, JobValidationError):
                lines.extend(_validation_lines(failure))
            else:
                lines.append(str(failure))
        return lines
    if isinstance(exc, JobValidationError):
        return _validation_lines(exc)
    return [str(exc)]


def cmd_spawn(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    result = orchestrator.spawn(args.prompts)
    if args.json:
        _print_json(result.to_dict())
        return
    print(f"Session {result.session_id}: spawning {len(result.agents)} agent(s)")
    for agent in result.agents:
        preview = agent.prompt[:60] + ("..." if len(agent.prompt) > 60 else "")
        print(f"  • Agent {agent.id}: {preview}")
    print(f"To wait for agents: csa wait {result.session_id}")


def cmd_spawn_jobs(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    result = asyncio.run(orchestrator.spawn_jobs(args.job_ids))
    if args.json:
        _print_json(result.to_dict())
        return
    print(f"Session {result.session_id}: {len(result.agents)} job agent(s)")
    for agent in result.agents:
        error = result.failed.get(agent.id)
        print(f"  • Agent {agent.id}: " + (f"failed ({error})" if error else "spawned"))
    print(f"Now wait for sub-jobs to report with: csa wait {result.session_id}")


def cmd_wait(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    result = asyncio.run(orchestrator.wait(args.session_id))
    if result.outcome == "all_approved":
        print(f"All agents in session {result.session_id} approved")
        return

    print(f"{len(result.pending)} agent(s) waiting for verification:")
    for agent in result.pending:
        print(f"  • {agent.id}: {agent.return_message or '(no message)'}")
    print("Next steps:")
    for agent in result.pending:
        print(f"  csa accept {agent.id}")
        print(f'  csa feedback {agent.id} "<message>"')
    if result.running:
        print(f"  csa wait {result.session_id}  ({len(result.running)} agent(s) still running)")


def cmd_complete(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    result = asyncio.run(orchestrator.complete(args.agent_id, args.message, args.timeout))
    if result.outcome == "approved":
        print("Approved by orchestrator. Task complete!")
    else:
        print("Feedback received:")
        print(f"  {result.feedback}")


def cmd_accept(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    result = orchestrator.accept(args.agent_id)
    if not result.changed:
        print(f"Agent {args.agent_id} already approved")
        return
    print(f"Agent {args.agent_id} approved")
    if result.session_completed:
        print(f"All agents in session {result.session_id} approved")


def cmd_feedback(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    orchestrator.feedback(args.agent_id, args.message)
    print(f"Feedback sent to agent {args.agent_id}")


def cmd_execute(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    plan = asyncio.run(orchestrator.execute_job(args.job_id))
    for index, item in enumerate(plan, start=1):
        print(f"Task {index}/{len(plan)}: {item.task.name} ({' -> '.join(item.commands)})")


def cmd_status(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    rows = orchestrator.status(args.session_id)
    if args.json:
        _print_json([row.to_dict() for row in rows])
        return
    if not rows:
        print("No sessions found")
        return
    current = None
    for row in rows:
        if row.session_id != current:
            current = row.session_id
            print(f"Session {current}")
        print(f"  {row.agent_id} [{row.status.value}] {row.prompt[:60]}")


def cmd_validate_job(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    report = orchestrator.validate_job(args.job_id)
    if args.json:
        _print_json(report.to_dict())
    else:
        print(f"Job {report.job_id} ({report.scope.value}: {report.job_file})")
        for warning in report.warnings:
            print(f"  warning: {warning}")
        if report.valid:
            print("  valid")
        for message in report.errors:
            print(f"  - {message}")
        for task_error in report.task_errors:
            print(f"  - {task_error}")
    if not report.valid:
        raise SystemExit(1)


def cmd_validate_tasks(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    missing = orchestrator.validate_task_types()
    if args.json:
        _print_json({"valid": not missing, "missing": missing})
    elif not missing:
        print("All task types reference existing commands")
    else:
        for name, commands in sorted(missing.items()):
            print(f"  {name}: missing {', '.join(commands)}")
    if missing:
        raise SystemExit(1)


def cmd_jobs(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    entries = orchestrator.list_jobs()
    if args.json:
        _print_json(
            [
                {"id": e.job_id, "scope": e.scope.value, "path": str(e.path), "overrides_global": e.overrides_global}
                for e in entries
            ]
        )
        return
    for entry in entries:
        suffix = " (overrides global)" if entry.overrides_global else ""
        print(f"{entry.job_id} [{entry.scope.value}]{suffix}")


def cmd_task_types(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    entries = orchestrator.list_task_types()
    if args.json:
        _print_json(
            [
                {
                    "name": e.name,
                    "commands": e.commands,
                    "scope": e.scope.value,
                    "overrides_global": e.overrides_global,
                }
                for e in entries
            ]
        )
        return
    for entry in entries:
        print(f"{entry.name} [{entry.scope.value}]: {' -> '.join(entry.commands)}")


def cmd_commands(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    entries = orchestrator.list_commands()
    if args.json:
        _print_json(
            [
                {
                    "name": e.name,
                    "scope": e.scope.value,
                    "path": str(e.path),
                    "preview": e.preview,
                    "overrides_global": e.overrides_global,
                }
                for e in entries
            ]
        )
        return
    for entry in entries:
        preview = f" - {entry.preview}" if entry.preview else ""
        print(f"/{entry.name} [{entry.scope.value}]{preview}")


def cmd_serve(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    create_server(orchestrator.settings, orchestrator).run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="csa", description="Spawn and track Cursor sub-agents")
    sub = parser.add_subparsers(dest="cmd")

    p_spawn = sub.add_parser("spawn", help="Spawn one agent per prompt")
    p_spawn.add_argument("prompts", nargs="+")
    p_spawn.add_argument("--json", action="store_true", help="Output JSON")
    p_spawn.set_defaults(func=cmd_spawn)

    p_spawn_jobs = sub.add_parser("spawn-jobs", help="Spawn one agent per job")
    p_spawn_jobs.add_argument("job_ids", nargs="+")
    p_spawn_jobs.add_argument("--json", action="store_true", help="Output JSON")
    p_spawn_jobs.set_defaults(func=cmd_spawn_jobs)

    p_wait = sub.add_parser("wait", help="Wait until agents need review or are all approved")
    p_wait.add_argument("session_id")
    p_wait.set_defaults(func=cmd_wait)

    p_complete = sub.add_parser("complete", help="Submit an agent's work and wait for the verdict")
    p_complete.add_argument("agent_id")
    p_complete.add_argument("message", nargs="?")
    p_complete.add_argument("--timeout", type=float, default=None, help="Timeout in minutes")
    p_complete.set_defaults(func=cmd_complete)

    p_accept = sub.add_parser("accept", help="Approve a submitted agent")
    p_accept.add_argument("agent_id")
    p_accept.set_defaults(func=cmd_accept)

    p_feedback = sub.add_parser("feedback", help="Send feedback to a submitted agent")
    p_feedback.add_argument("agent_id")
    p_feedback.add_argument("message")
    p_feedback.set_defaults(func=cmd_feedback)

    p_execute = sub.add_parser("execute", help="Run a job in the focused Cursor chat")
    p_execute.add_argument("job_id")
    p_execute.set_defaults(func=cmd_execute)

    p_status = sub.add_parser("status", help="Show agent status")
    p_status.add_argument("session_id", nargs="?")
    p_status.add_argument("--json", action="store_true", help="Output JSON")
    p_status.set_defaults(func=cmd_status)

    p_validate_job = sub.add_parser("validate-job", help="Validate a job definition")
    p_validate_job.add_argument("job_id")
    p_validate_job.add_argument("--json", action="store_true", help="Output JSON")
    p_validate_job.set_defaults(func=cmd_validate_job)

    p_validate_tasks = sub.add_parser("validate-tasks", help="Check task types against command files")
    p_validate_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_validate_tasks.set_defaults(func=cmd_validate_tasks)

    for name, func, help_text in (
        ("jobs", cmd_jobs, "List jobs"),
        ("task-types", cmd_task_types, "List task types"),
        ("commands", cmd_commands, "List Cursor commands"),
    ):
        p_list = sub.add_parser(name, help=help_text)
        p_list.add_argument("--json", action="store_true", help="Output JSON")
        p_list.set_defaults(func=func)

    p_serve = sub.add_parser("serve", help="Run the MCP server over stdio")
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return

    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        args.func(load_orchestrator(settings), args)
    except (
        CompletionTimeoutError,
        JobError,
        LifecycleError,
        AutomationError,
        UnsupportedPlatformError,
        StateStoreError,
        LockTimeoutError,
        ValueError,
    ) as exc:
        first, *rest = _describe_error(exc)
        print(f"Error: {first}", file=sys.stderr)
        for line in rest:
            print(line, file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
