"""Agent status transitions and the two blocking waits built on them."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Literal, Protocol, Sequence

from .storage import (
    AgentState,
    AgentStatus,
    AgentsRegistry,
    Session,
    StateChange,
    StateChangeStream,
    StateStore,
    format_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

SESSION_ID_LENGTH = 8
AGENT_ID_LENGTH = 6
_ID_ALPHABET = string.digits + string.ascii_lowercase

_SUBMITTABLE = {
    AgentStatus.RUNNING,
    AgentStatus.FEEDBACK_REQUESTED,
    AgentStatus.PENDING_VERIFICATION,
}
_ACCEPTABLE = {AgentStatus.PENDING_VERIFICATION, AgentStatus.FEEDBACK_REQUESTED}
_FAILABLE = _SUBMITTABLE


class LifecycleError(RuntimeError):
    """Base class for agent/session lifecycle failures."""


class AgentNotFoundError(LifecycleError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class SessionNotFoundError(LifecycleError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class InvalidStateTransitionError(LifecycleError):
    """Raised when an operation is not allowed from the agent's current status."""

    def __init__(self, agent_id: str, status: AgentStatus, message: str) -> None:
        super().__init__(message)
        self.agent_id = agent_id
        self.status = status


class CompletionTimeoutError(TimeoutError):
    def __init__(self, agent_id: str, timeout_minutes: float) -> None:
        super().__init__(
            f"Timeout: no response from orchestrator for agent {agent_id} after {timeout_minutes:g} minutes"
        )
        self.agent_id = agent_id
        self.timeout_minutes = timeout_minutes


class ChangeStream(Protocol):
    def subscribe(self) -> AbstractAsyncContextManager[AsyncIterator[StateChange]]:
        ...


@dataclass(slots=True)
class AgentRef:
    session_id: str
    session: Session
    agent: AgentState


@dataclass(slots=True)
class TransitionResult:
    session_id: str
    agent: AgentState
    changed: bool = True
    session_completed: bool = False


@dataclass(slots=True)
class SessionWaitResult:
    outcome: Literal["all_approved", "pending"]
    session_id: str
    session: Session
    pending: list[AgentState] = field(default_factory=list)

    @property
    def running(self) -> list[AgentState]:
        return [agent for agent in self.session.agents if agent.status == AgentStatus.RUNNING]


@dataclass(slots=True)
class CompletionResult:
    outcome: Literal["approved", "feedback"]
    agent_id: str
    feedback: str | None = None


@dataclass(slots=True)
class AgentRow:
    """Flattened agent view used by status listings."""

    session_id: str
    agent_id: str
    status: AgentStatus
    prompt: str
    started_at: str
    completed_at: str | None = None
    submitted_at: str | None = None
    feedback_count: int | None = None
    return_message: str | None = None
    feedback: str | None = None
    error: str | None = None
    repository: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "session_id": self.session_id,
            "agent_id": self.agent_id,
            "status": self.status.value,
            "prompt": self.prompt,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "submitted_at": self.submitted_at,
            "feedback_count": self.feedback_count,
            "return_message": self.return_message,
            "feedback": self.feedback,
            "error": self.error,
            "repository": self.repository,
        }
        return {key: value for key, value in payload.items() if value is not None}


def generate_id(length: int) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def find_agent(registry: AgentsRegistry, agent_id: str) -> AgentRef | None:
    for session_id, session in registry.sessions.items():
        for agent in session.agents:
            if agent.id == agent_id:
                return AgentRef(session_id, session, agent)
    return None


class AgentLifecycle:
    """Owns every agent status transition.

    Each transition loads the registry, mutates it and saves it back. Nothing
    detects a concurrent writer in between: the last save wins.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        clock: Callable[[], datetime] | None = None,
        stream_factory: Callable[[], ChangeStream] | None = None,
        id_factory: Callable[[int], str] = generate_id,
    ) -> None:
        self._store = store
        self._clock = clock or utc_now
        self._stream_factory = stream_factory
        self._id_factory = id_factory

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _stream(self) -> ChangeStream:
        if self._stream_factory is not None:
            return self._stream_factory()
        path = getattr(self._store, "path", None)
        if path is None:
            raise LifecycleError("No change stream available for this state store")
        return StateChangeStream(path)

    def _unique_id(self, length: int, taken: set[str]) -> str:
        while True:
            candidate = self._id_factory(length)
            if candidate not in taken:
                taken.add(candidate)
                return candidate

    def _load_agent(self, agent_id: str) -> tuple[AgentsRegistry, AgentRef]:
        registry = self._store.load()
        ref = find_agent(registry, agent_id)
        if ref is None:
            raise AgentNotFoundError(agent_id)
        return registry, ref

    def create_session(
        self, prompts: Sequence[str], repository: str | None = None
    ) -> tuple[str, list[AgentState]]:
        """Register a new session with one ``running`` agent per prompt."""

        registry = self._store.load()
        taken_sessions = set(registry.sessions)
        taken_agents = {agent.id for session in registry.sessions.values() for agent in session.agents}

        session_id = self._unique_id(SESSION_ID_LENGTH, taken_sessions)
        started_at = self._now()
        agents = [
            AgentState(
                id=self._unique_id(AGENT_ID_LENGTH, taken_agents),
                prompt=prompt,
                status=AgentStatus.RUNNING,
                started_at=started_at,
                repository=repository,
            )
            for prompt in prompts
        ]
        registry.sessions[session_id] = Session(agents=agents, created_at=started_at)
        self._store.save(registry)
        logger.info("Session created", extra={"session_id": session_id, "agents": [a.id for a in agents]})
        return session_id, agents

    def get_session(self, session_id: str) -> Session:
        session = self._store.load().sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def submit(self, agent_id: str, message: str | None = None) -> TransitionResult:
        """Move an agent to ``pending_verification``; approved agents are left alone."""

        registry, ref = self._load_agent(agent_id)
        agent = ref.agent
        if agent.status == AgentStatus.APPROVED:
            return TransitionResult(ref.session_id, agent, changed=False)
        if agent.status not in _SUBMITTABLE:
            raise InvalidStateTransitionError(
                agent_id, agent.status, f"Agent {agent_id} is {agent.status.value} and cannot be submitted"
            )

        resubmission = agent.status == AgentStatus.FEEDBACK_REQUESTED
        agent.status = AgentStatus.PENDING_VERIFICATION
        agent.submitted_at = self._now()
        if message:
            agent.return_message = message
        if resubmission:
            agent.feedback_count = (agent.feedback_count or 0) + 1
        elif agent.feedback_count is None:
            agent.feedback_count = 0

        self._store.save(registry)
        logger.info(
            "Agent submitted for verification",
            extra={"agent_id": agent_id, "session_id": ref.session_id, "resubmission": resubmission},
        )
        return TransitionResult(ref.session_id, agent)

    def accept(self, agent_id: str) -> TransitionResult:
        registry, ref = self._load_agent(agent_id)
        agent = ref.agent
        if agent.status == AgentStatus.APPROVED:
            return TransitionResult(ref.session_id, agent, changed=False)
        if agent.status not in _ACCEPTABLE:
            raise InvalidStateTransitionError(
                agent_id,
                agent.status,
                f"Agent {agent_id} is {agent.status.value}; only submitted agents can be accepted",
            )

        now = self._now()
        agent.status = AgentStatus.APPROVED
        agent.verified_at = now
        agent.completed_at = now

        session_completed = all(a.status == AgentStatus.APPROVED for a in ref.session.agents)
        if session_completed:
            ref.session.completed_at = now

        self._store.save(registry)
        logger.info(
            "Agent approved",
            extra={"agent_id": agent_id, "session_id": ref.session_id, "session_completed": session_completed},
        )
        return TransitionResult(ref.session_id, agent, session_completed=session_completed)

    def feedback(self, agent_id: str, message: str) -> TransitionResult:
        registry, ref = self._load_agent(agent_id)
        agent = ref.agent
        if agent.status == AgentStatus.APPROVED:
            raise InvalidStateTransitionError(
                agent_id, agent.status, f"Agent {agent_id} is already approved; feedback cannot be sent"
            )
        if agent.status != AgentStatus.PENDING_VERIFICATION:
            raise InvalidStateTransitionError(
                agent_id,
                agent.status,
                f"Agent {agent_id} is {agent.status.value}; feedback requires pending_verification",
            )

        agent.status = AgentStatus.FEEDBACK_REQUESTED
        agent.feedback = message
        agent.verified_at = self._now()
        self._store.save(registry)
        logger.info("Feedback sent", extra={"agent_id": agent_id, "session_id": ref.session_id})
        return TransitionResult(ref.session_id, agent)

    def fail(
        self,
        agent_id: str,
        error: str,
        status: AgentStatus = AgentStatus.FAILED,
    ) -> TransitionResult:
        """Put an agent in a terminal failure status (``failed`` or ``timeout``)."""

        if status not in (AgentStatus.FAILED, AgentStatus.TIMEOUT):
            raise ValueError(f"fail() only accepts failed or timeout, got {status.value}")
        registry, ref = self._load_agent(agent_id)
        agent = ref.agent
        if agent.status not in _FAILABLE:
            raise InvalidStateTransitionError(
                agent_id, agent.status, f"Agent {agent_id} is {agent.status.value} and cannot be marked {status.value}"
            )

        agent.status = status
        agent.error = error
        agent.completed_at = self._now()
        self._store.save(registry)
        logger.warning(
            "Agent marked as failed",
            extra={"agent_id": agent_id, "session_id": ref.session_id, "status": status.value, "error": error},
        )
        return TransitionResult(ref.session_id, agent)

    def _check_session(self, session_id: str) -> SessionWaitResult | None:
        session = self._store.load().sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if all(agent.status == AgentStatus.APPROVED for agent in session.agents):
            return SessionWaitResult("all_approved", session_id, session)
        pending = [a for a in session.agents if a.status == AgentStatus.PENDING_VERIFICATION]
        if pending:
            return SessionWaitResult("pending", session_id, session, pending)
        return None

    async def wait_for_session(self, session_id: str) -> SessionWaitResult:
        """Block until every agent is approved or at least one awaits verification."""

        result = await asyncio.to_thread(self._check_session, session_id)
        if result is not None:
            return result

        logger.info("Waiting for agents", extra={"session_id": session_id})
        async with self._stream().subscribe() as events:
            async for _ in events:
                result = await asyncio.to_thread(self._check_session, session_id)
                if result is not None:
                    return result
        raise LifecycleError(f"Change stream ended while waiting for session {session_id}")

    def _check_completion(self, agent_id: str) -> CompletionResult | None:
        ref = find_agent(self._store.load(), agent_id)
        if ref is None:
            raise AgentNotFoundError(agent_id)
        agent = ref.agent
        if agent.status == AgentStatus.APPROVED:
            return CompletionResult("approved", agent_id)
        if agent.status == AgentStatus.FEEDBACK_REQUESTED and agent.feedback:
            return CompletionResult("feedback", agent_id, agent.feedback)
        return None

    async def complete(
        self,
        agent_id: str,
        message: str | None = None,
        timeout_minutes: float = 30,
    ) -> CompletionResult:
        """Submit the agent, then block until the orchestrator approves it or sends feedback."""

        submitted = await asyncio.to_thread(self.submit, agent_id, message)
        if not submitted.changed:
            return CompletionResult("approved", agent_id)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_minutes * 60

        result = await asyncio.to_thread(self._check_completion, agent_id)
        if result is not None:
            return result

        async with self._stream().subscribe() as events:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    await asyncio.wait_for(events.__anext__(), remaining)
                except asyncio.TimeoutError:
                    break
                except StopAsyncIteration:
                    raise LifecycleError(f"Change stream ended while waiting for agent {agent_id}") from None
                result = await asyncio.to_thread(self._check_completion, agent_id)
                if result is not None:
                    return result

        logger.warning("Completion timed out", extra={"agent_id": agent_id, "timeout_minutes": timeout_minutes})
        raise CompletionTimeoutError(agent_id, timeout_minutes)

    def snapshot(self, session_id: str | None = None) -> list[AgentRow]:
        """Rows for every agent, newest session first; ``SessionNotFoundError`` for an unknown id."""

        registry = self._store.load()
        if session_id is not None:
            if session_id not in registry.sessions:
                raise SessionNotFoundError(session_id)
            sessions = [(session_id, registry.sessions[session_id])]
        else:
            sessions = sorted(registry.sessions.items(), key=lambda item: item[1].created_at, reverse=True)

        rows = []
        for sid, session in sessions:
            for agent in session.agents:
                rows.append(
                    AgentRow(
                        session_id=sid,
                        agent_id=agent.id,
                        status=agent.status,
                        prompt=agent.prompt,
                        started_at=agent.started_at,
                        completed_at=agent.completed_at,
                        submitted_at=agent.submitted_at,
                        feedback_count=agent.feedback_count,
                        return_message=agent.return_message,
                        feedback=agent.feedback,
                        error=agent.error,
                        repository=agent.repository,
                    )
                )
        return rows


__all__ = [
    "AGENT_ID_LENGTH",
    "AgentLifecycle",
    "AgentNotFoundError",
    "AgentRef",
    "AgentRow",
    "ChangeStream",
    "CompletionResult",
    "CompletionTimeoutError",
    "InvalidStateTransitionError",
    "LifecycleError",
    "SESSION_ID_LENGTH",
    "SessionNotFoundError",
    "SessionWaitResult",
    "TransitionResult",
    "find_agent",
    "generate_id",
]
