"""Operations behind the CLI and MCP surfaces."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from pydantic import ValidationError

from .adapters import (
    AutomationError,
    DelayedCommand,
    PlatformAdapter,
    RequirementReport,
    get_platform_adapter,
    spawn_detached,
)
from .config import CsaSettings
from .jobs import (
    CommandCatalog,
    CommandEntry,
    Job,
    JobEntry,
    JobError,
    JobRepository,
    JobValidationError,
    Scope,
    TaskTypeEntry,
    TaskTypeMapping,
    TaskTypeRegistry,
    TaskValidationError,
    split_id_mismatch,
    validate_all_tasks,
    validate_job_structure,
)
from .lifecycle import (
    AgentLifecycle,
    AgentRow,
    ChangeStream,
    CompletionResult,
    SessionWaitResult,
    TransitionResult,
)
from .prompts import build_prompt_url, goal_prompt, resolve_follow_up_prompts
from .scheduling import (
    DEFAULT_TIMING,
    AgentLaunch,
    DetachedScheduler,
    ResolvedTask,
    SequentialExecutor,
    TimingProfile,
)
from .storage import AgentState, AgentStatus, JsonStateStore, StateStore, cleanup_old_sessions, utc_now

logger = logging.getLogger(__name__)


class JobBatchValidationError(JobError):
    """Raised by ``spawn_jobs`` when one or more requested jobs are not runnable."""

    def __init__(self, failures: Sequence[JobError]) -> None:
        self.failures = list(failures)
        super().__init__("; ".join(str(failure) for failure in self.failures))


@dataclass(slots=True)
class JobValidationReport:
    job_id: str
    job_file: Path
    scope: Scope
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    task_errors: list[TaskValidationError] = field(default_factory=list)
    job: Job | None = None

    @property
    def valid(self) -> bool:
        return not self.errors and not self.task_errors

    def to_error(self) -> JobValidationError:
        return JobValidationError(self.job_id, self.job_file, self.errors, self.task_errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_file": str(self.job_file),
            "scope": self.scope.value,
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "task_errors": [error.to_dict() for error in self.task_errors],
            "task_count": len(self.job.tasks) if self.job is not None else None,
        }


@dataclass(slots=True)
class SpawnResult:
    session_id: str
    agents: list[AgentState]
    dispatched: int = 0
    failed: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "agents": [{"id": agent.id, "prompt": agent.prompt} for agent in self.agents],
            "dispatched": self.dispatched,
            "failed": dict(self.failed),
        }


class Orchestrator:
    """Wires the stores, registries and platform automation into user-facing operations.

    The platform adapter is created on first use, so read-only operations
    (status, listings, validation) work on platforms without automation
    support.
    """

    def __init__(
        self,
        settings: CsaSettings,
        *,
        store: StateStore | None = None,
        adapter_factory: Callable[[], PlatformAdapter] | None = None,
        timing: TimingProfile = DEFAULT_TIMING,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        spawner: Callable[[DelayedCommand], None] = spawn_detached,
        clock: Callable[[], datetime] | None = None,
        stream_factory: Callable[[], ChangeStream] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or JsonStateStore(settings.state_file)
        self._clock = clock or utc_now
        self.lifecycle = AgentLifecycle(self.store, clock=self._clock, stream_factory=stream_factory)
        self.jobs = JobRepository(settings.global_jobs_dir, settings.project_jobs_dir)
        self.task_types = TaskTypeRegistry(settings.global_task_types_file, settings.project_task_types_file)
        self.commands = CommandCatalog(settings.global_commands_dir, settings.project_commands_dir)
        self._adapter_factory = adapter_factory or (lambda: get_platform_adapter(target_app=settings.target_app))
        self._adapter: PlatformAdapter | None = None
        self._timing = timing
        self._sleep = sleep
        self._spawner = spawner

    @property
    def adapter(self) -> PlatformAdapter:
        if self._adapter is None:
            self._adapter = self._adapter_factory()
        return self._adapter

    def cleanup(self) -> int:
        return cleanup_old_sessions(self.store, now=self._clock())

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------
    def spawn(self, prompts: Sequence[str]) -> SpawnResult:
        """Register one agent per prompt and dispatch their detached automation."""

        prompts = [prompt for prompt in prompts if prompt and prompt.strip()]
        if not prompts:
            raise ValueError("At least one prompt is required")

        self.cleanup()
        adapter = self.adapter
        session_id, agents = self.lifecycle.create_session(prompts, str(self.settings.project_root))

        launches = []
        for agent in agents:
            follow_ups, source = resolve_follow_up_prompts(agent.id, self.settings)
            logger.debug("Resolved follow-up prompts", extra={"agent_id": agent.id, "source": source})
            launches.append(
                AgentLaunch(agent.id, build_prompt_url(self.settings.prompt_url, agent.prompt), tuple(follow_ups))
            )

        scheduler = DetachedScheduler(adapter, self._timing, spawner=self._spawner)
        try:
            plan = scheduler.plan_session(launches)
        except AutomationError as exc:
            for agent in agents:
                self.lifecycle.fail(agent.id, str(exc))
            raise

        dispatched = scheduler.dispatch(plan)
        logger.info(
            "Agents spawned",
            extra={"session_id": session_id, "agent_count": len(agents), "operations": dispatched},
        )
        return SpawnResult(session_id, agents, dispatched)

    async def spawn_jobs(self, job_ids: Sequence[str]) -> SpawnResult:
        """Validate every job, then drive one agent per job sequentially.

        Nothing is automated unless all jobs validate. An agent whose
        automation fails is marked ``failed`` and the next one still runs.
        """

        if not job_ids:
            raise ValueError("At least one job ID is required")

        self.cleanup()
        prepared: list[tuple[Job, list[ResolvedTask]]] = []
        failures: list[JobError] = []
        for job_id in job_ids:
            try:
                prepared.append(self.prepare_job(job_id))
            except JobError as exc:
                failures.append(exc)
        if failures:
            raise JobBatchValidationError(failures)

        executor = SequentialExecutor(self.adapter, self._timing, sleep=self._sleep)
        session_id, agents = self.lifecycle.create_session(
            [job.goal for job, _ in prepared], str(self.settings.project_root)
        )

        failed: dict[str, str] = {}
        for index, (agent, (job, plan)) in enumerate(zip(agents, prepared)):
            url = build_prompt_url(self.settings.prompt_url, goal_prompt(job.goal))
            logger.info("Driving job", extra={"agent_id": agent.id, "job_id": job.id, "session_id": session_id})
            try:
                await executor.drive_job(job, plan, agent.id, url)
            except AutomationError as exc:
                failed[agent.id] = str(exc)
                self.lifecycle.fail(agent.id, str(exc))
            if index < len(prepared) - 1:
                await self._sleep(self._timing.between_agents)

        return SpawnResult(session_id, agents, failed=failed)

    async def execute_job(self, job_id: str) -> list[ResolvedTask]:
        """Send a job's task and command messages into the currently focused window."""

        _, plan = self.prepare_job(job_id)
        executor = SequentialExecutor(self.adapter, self._timing, sleep=self._sleep)
        await executor.run_tasks(plan)
        return plan

    # ------------------------------------------------------------------
    # Agent lifecycle
    # ------------------------------------------------------------------
    async def wait(self, session_id: str) -> SessionWaitResult:
        return await self.lifecycle.wait_for_session(session_id)

    async def complete(
        self, agent_id: str, message: str | None = None, timeout_minutes: float | None = None
    ) -> CompletionResult:
        if timeout_minutes is None:
            timeout_minutes = self.settings.complete_timeout_minutes
        return await self.lifecycle.complete(agent_id, message, timeout_minutes)

    def accept(self, agent_id: str) -> TransitionResult:
        return self.lifecycle.accept(agent_id)

    def feedback(self, agent_id: str, message: str) -> TransitionResult:
        return self.lifecycle.feedback(agent_id, message)

    def status(self, session_id: str | None = None) -> list[AgentRow]:
        self.cleanup()
        return self.lifecycle.snapshot(session_id)

    def status_counts(self) -> dict[str, int]:
        counts = Counter(row.status.value for row in self.lifecycle.snapshot())
        return {status.value: counts.get(status.value, 0) for status in AgentStatus}

    # ------------------------------------------------------------------
    # Jobs, task types and commands
    # ------------------------------------------------------------------
    def validate_job(self, job_id: str, task_types: TaskTypeMapping | None = None) -> JobValidationReport:
        """Collect every structural and task problem of a job without stopping early.

        Raises ``JobNotFoundError``/``JobLoadError`` when there is no document
        to validate.
        """

        raw = self.jobs.load_raw(job_id)
        errors, warnings = split_id_mismatch(
            validate_job_structure(raw.data, job_id), self.settings.job_id_mismatch
        )
        report = JobValidationReport(job_id, raw.path, raw.scope, errors, warnings)

        tasks = raw.data.get("tasks") if isinstance(raw.data, dict) else None
        if isinstance(tasks, list) and tasks:
            mapping = task_types if task_types is not None else self.task_types.load()
            report.task_errors = validate_all_tasks(tasks, mapping, self.commands)

        if report.valid:
            try:
                report.job = Job.model_validate(raw.data)
            except ValidationError as exc:
                report.errors.extend(
                    f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
                )
        return report

    def prepare_job(self, job_id: str) -> tuple[Job, list[ResolvedTask]]:
        """Validate ``job_id`` and resolve each task's command sequence."""

        mapping = self.task_types.load()
        report = self.validate_job(job_id, mapping)
        for warning in report.warnings:
            logger.warning(warning, extra={"job_id": job_id, "job_file": str(report.job_file)})
        if not report.valid or report.job is None:
            raise report.to_error()
        plan = [ResolvedTask(task, list(mapping[task.type])) for task in report.job.tasks]
        return report.job, plan

    def validate_task_types(self) -> dict[str, list[str]]:
        return self.task_types.validate(self.commands)

    def list_jobs(self) -> list[JobEntry]:
        return self.jobs.list_all()

    def list_task_types(self) -> list[TaskTypeEntry]:
        self.task_types.ensure_global_file()
        return self.task_types.entries()

    def list_commands(self) -> list[CommandEntry]:
        return self.commands.entries()

    async def check_requirements(self) -> RequirementReport:
        return await self.adapter.check_requirements()


__all__ = ["JobBatchValidationError", "JobValidationReport", "Orchestrator", "SpawnResult"]
