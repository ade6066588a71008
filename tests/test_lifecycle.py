from __future__ import annotations

import asyncio
import string
import threading
from pathlib import Path

import pytest

from cursor_sub_agents.lifecycle import (
    AGENT_ID_LENGTH,
    SESSION_ID_LENGTH,
    AgentLifecycle,
    AgentNotFoundError,
    CompletionTimeoutError,
    InvalidStateTransitionError,
    SessionNotFoundError,
    generate_id,
)
from cursor_sub_agents.storage import AgentStatus, InMemoryStateStore, JsonStateStore, ManualChangeStream


def _lifecycle(clock, stream=None, store=None):
    stream = stream or ManualChangeStream()
    return AgentLifecycle(store or InMemoryStateStore(), clock=clock, stream_factory=lambda: stream), stream


async def _until_subscribed(stream: ManualChangeStream) -> None:
    while stream.active_subscriptions == 0:
        await asyncio.sleep(0)


def test_generate_id_is_base36() -> None:
    value = generate_id(SESSION_ID_LENGTH)
    assert len(value) == 8
    assert set(value) <= set(string.digits + string.ascii_lowercase)


def test_create_session_registers_running_agents(clock) -> None:
    lifecycle, _ = _lifecycle(clock)

    session_id, agents = lifecycle.create_session(["first", "second"], "/repo")

    assert len(session_id) == SESSION_ID_LENGTH
    assert [len(agent.id) for agent in agents] == [AGENT_ID_LENGTH, AGENT_ID_LENGTH]
    assert len({agent.id for agent in agents}) == 2
    session = lifecycle.get_session(session_id)
    assert [agent.status for agent in session.agents] == [AgentStatus.RUNNING] * 2
    assert session.created_at == "2025-01-01T12:00:00.000Z"
    assert session.agents[0].repository == "/repo"


def test_create_session_skips_colliding_ids(clock) -> None:
    ids = iter(["sessaaaa", "agent1", "agent1", "agent2", "sessaaaa", "sessbbbb", "agent2", "agent3"])
    lifecycle = AgentLifecycle(InMemoryStateStore(), clock=clock, id_factory=lambda length: next(ids))

    first_session, first_agents = lifecycle.create_session(["a", "b"])
    second_session, second_agents = lifecycle.create_session(["c"])

    assert first_session == "sessaaaa"
    assert [agent.id for agent in first_agents] == ["agent1", "agent2"]
    assert second_session == "sessbbbb"
    assert [agent.id for agent in second_agents] == ["agent3"]


def test_review_cycle_reaches_approved_and_stamps_session(clock) -> None:
    lifecycle, _ = _lifecycle(clock)
    session_id, (first, second) = lifecycle.create_session(["one", "two"])

    submitted = lifecycle.submit(first.id, "initial work")
    assert submitted.agent.status is AgentStatus.PENDING_VERIFICATION
    assert submitted.agent.feedback_count == 0
    assert submitted.agent.return_message == "initial work"

    fed_back = lifecycle.feedback(first.id, "add tests")
    assert fed_back.agent.status is AgentStatus.FEEDBACK_REQUESTED
    assert fed_back.agent.verified_at == "2025-01-01T12:00:00.000Z"
    clock.advance(minutes=5)
    resubmitted = lifecycle.submit(first.id)
    assert resubmitted.agent.feedback_count == 1
    assert resubmitted.agent.feedback == "add tests"
    assert resubmitted.agent.return_message == "initial work"
    assert resubmitted.agent.submitted_at == "2025-01-01T12:05:00.000Z"

    accepted = lifecycle.accept(first.id)
    assert accepted.changed and not accepted.session_completed
    assert lifecycle.get_session(session_id).completed_at is None

    lifecycle.submit(second.id)
    clock.advance(minutes=1)
    last = lifecycle.accept(second.id)
    assert last.session_completed
    session = lifecycle.get_session(session_id)
    assert session.completed_at == "2025-01-01T12:06:00.000Z"
    assert session.agents[1].verified_at == session.agents[1].completed_at == session.completed_at


def test_accept_on_approved_agent_is_a_no_op(clock) -> None:
    store = InMemoryStateStore()
    lifecycle, _ = _lifecycle(clock, store=store)
    _, (agent,) = lifecycle.create_session(["one"])
    lifecycle.submit(agent.id)
    lifecycle.accept(agent.id)
    saves = store.save_count

    again = lifecycle.accept(agent.id)

    assert not again.changed
    assert store.save_count == saves
    assert not lifecycle.submit(agent.id).changed


def test_illegal_transitions_are_rejected(clock) -> None:
    lifecycle, _ = _lifecycle(clock)
    _, (running, approved, failed) = lifecycle.create_session(["a", "b", "c"])
    lifecycle.submit(approved.id)
    lifecycle.accept(approved.id)
    lifecycle.fail(failed.id, "keyboard tool crashed")

    with pytest.raises(InvalidStateTransitionError) as excinfo:
        lifecycle.feedback(running.id, "too early")
    assert excinfo.value.status is AgentStatus.RUNNING

    with pytest.raises(InvalidStateTransitionError):
        lifecycle.accept(running.id)

    with pytest.raises(InvalidStateTransitionError, match="already approved"):
        lifecycle.feedback(approved.id, "late")

    with pytest.raises(InvalidStateTransitionError):
        lifecycle.submit(failed.id)

    with pytest.raises(InvalidStateTransitionError):
        lifecycle.fail(approved.id, "nope")

    with pytest.raises(ValueError):
        lifecycle.fail(running.id, "bad status", status=AgentStatus.APPROVED)

    with pytest.raises(AgentNotFoundError):
        lifecycle.accept("zzzzzz")


def test_fail_records_error_and_timeout_status(clock) -> None:
    lifecycle, _ = _lifecycle(clock)
    _, (agent,) = lifecycle.create_session(["one"])

    result = lifecycle.fail(agent.id, "no answer", status=AgentStatus.TIMEOUT)

    assert result.agent.status is AgentStatus.TIMEOUT
    assert result.agent.error == "no answer"
    assert result.agent.completed_at == "2025-01-01T12:00:00.000Z"


def test_last_writer_wins(tmp_path: Path, clock) -> None:
    store = JsonStateStore(tmp_path / "state.json")
    lifecycle, _ = _lifecycle(clock, store=store)
    _, (agent,) = lifecycle.create_session(["one"])
    lifecycle.submit(agent.id)

    stale = store.load()
    lifecycle.accept(agent.id)
    store.save(stale)

    assert store.load().sessions[next(iter(stale.sessions))].agents[0].status is AgentStatus.PENDING_VERIFICATION


def test_wait_returns_immediately_when_all_approved(clock) -> None:
    lifecycle, stream = _lifecycle(clock)
    session_id, (agent,) = lifecycle.create_session(["one"])
    lifecycle.submit(agent.id)
    lifecycle.accept(agent.id)

    result = asyncio.run(lifecycle.wait_for_session(session_id))

    assert result.outcome == "all_approved"
    assert stream.active_subscriptions == 0


def test_wait_wakes_up_when_an_agent_submits(clock) -> None:
    lifecycle, stream = _lifecycle(clock)
    session_id, (first, second) = lifecycle.create_session(["one", "two"])

    async def scenario():
        waiter = asyncio.create_task(lifecycle.wait_for_session(session_id))
        await _until_subscribed(stream)
        stream.notify("tick")
        await asyncio.sleep(0)
        assert not waiter.done()

        lifecycle.submit(second.id, "ready")
        stream.notify()
        return await waiter

    result = asyncio.run(scenario())

    assert result.outcome == "pending"
    assert [agent.id for agent in result.pending] == [second.id]
    assert [agent.id for agent in result.running] == [first.id]
    assert stream.active_subscriptions == 0


def test_waits_read_state_off_the_event_loop_thread(clock) -> None:
    class ThreadRecordingStore(InMemoryStateStore):
        def __init__(self) -> None:
            super().__init__()
            self.load_threads: list[int] = []

        def load(self):
            self.load_threads.append(threading.get_ident())
            return super().load()

    store = ThreadRecordingStore()
    lifecycle, _ = _lifecycle(clock, store=store)
    session_id, (agent,) = lifecycle.create_session(["one"])
    lifecycle.submit(agent.id)
    store.load_threads.clear()

    async def scenario():
        loop_thread = threading.get_ident()
        waited = await lifecycle.wait_for_session(session_id)
        lifecycle.accept(agent.id)
        store.load_threads.clear()
        completed = await lifecycle.complete(agent.id, timeout_minutes=0.001)
        return loop_thread, waited, completed

    loop_thread, waited, completed = asyncio.run(scenario())

    assert waited.outcome == "pending"
    assert completed.outcome == "approved"
    assert store.load_threads
    assert loop_thread not in store.load_threads


def test_wait_for_unknown_or_deleted_session(clock) -> None:
    store = InMemoryStateStore()
    lifecycle, stream = _lifecycle(clock, store=store)

    with pytest.raises(SessionNotFoundError):
        asyncio.run(lifecycle.wait_for_session("missing1"))

    session_id, _ = lifecycle.create_session(["one"])

    async def scenario():
        waiter = asyncio.create_task(lifecycle.wait_for_session(session_id))
        await _until_subscribed(stream)
        registry = store.load()
        del registry.sessions[session_id]
        store.save(registry)
        stream.notify()
        await waiter

    with pytest.raises(SessionNotFoundError):
        asyncio.run(scenario())
    assert stream.active_subscriptions == 0


def test_complete_returns_on_approval(clock) -> None:
    lifecycle, stream = _lifecycle(clock)
    _, (agent,) = lifecycle.create_session(["one"])

    async def scenario():
        completion = asyncio.create_task(lifecycle.complete(agent.id, "done", timeout_minutes=1))
        await _until_subscribed(stream)
        lifecycle.accept(agent.id)
        stream.notify()
        return await completion

    result = asyncio.run(scenario())

    assert result.outcome == "approved"
    assert stream.active_subscriptions == 0


def test_complete_returns_feedback(clock) -> None:
    lifecycle, stream = _lifecycle(clock)
    _, (agent,) = lifecycle.create_session(["one"])

    async def scenario():
        completion = asyncio.create_task(lifecycle.complete(agent.id, timeout_minutes=1))
        await _until_subscribed(stream)
        lifecycle.feedback(agent.id, "please add docs")
        stream.notify("tick")
        return await completion

    result = asyncio.run(scenario())

    assert result.outcome == "feedback"
    assert result.feedback == "please add docs"


def test_complete_times_out_and_releases_subscription(clock) -> None:
    lifecycle, stream = _lifecycle(clock)
    _, (agent,) = lifecycle.create_session(["one"])

    with pytest.raises(CompletionTimeoutError) as excinfo:
        asyncio.run(lifecycle.complete(agent.id, timeout_minutes=0.001))

    assert isinstance(excinfo.value, TimeoutError)
    assert stream.active_subscriptions == 0
    assert lifecycle.snapshot()[0].status is AgentStatus.PENDING_VERIFICATION


def test_complete_on_approved_agent_returns_without_waiting(clock) -> None:
    lifecycle, stream = _lifecycle(clock)
    _, (agent,) = lifecycle.create_session(["one"])
    lifecycle.submit(agent.id)
    lifecycle.accept(agent.id)

    result = asyncio.run(lifecycle.complete(agent.id, timeout_minutes=0.001))

    assert result.outcome == "approved"


def test_snapshot_lists_newest_session_first(clock) -> None:
    lifecycle, _ = _lifecycle(clock)
    older, _ = lifecycle.create_session(["old"])
    clock.advance(hours=1)
    newer, _ = lifecycle.create_session(["new-1", "new-2"])

    rows = lifecycle.snapshot()

    assert [row.session_id for row in rows] == [newer, newer, older]
    assert rows[0].to_dict()["status"] == "running"
    assert [row.prompt for row in lifecycle.snapshot(older)] == ["old"]
    with pytest.raises(SessionNotFoundError):
        lifecycle.snapshot("missing1")
