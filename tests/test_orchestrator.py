"""Tests for council/orchestrator.py. The session server is an in-memory fake."""

import asyncio
import random
from unittest.mock import AsyncMock

from council.orchestrator import (
    MAX_LOG_LINES,
    Orchestrator,
    SessionStatus,
    TickOutcome,
)
from council.registry import AdvisorRegistry
from council.session_client import ExternalSessionUnreachable, SessionInfo
from council.tasks import DEFAULT_GOAL
from tests.conftest import FakeClock, FakeSessionClient, MockAdvisor, text_message


def _orchestrator(config, client, registry, clock=None, **kwargs) -> Orchestrator:
    return Orchestrator(
        config,
        client_factory=lambda url: client,
        registry_factory=lambda: registry,
        clock=clock or FakeClock(),
        rng=random.Random(0),
        **kwargs,
    )


async def _started(orch: Orchestrator, **kwargs):
    state = orch.add_session("/repo", base_url="http://opencode.test", **kwargs)
    await orch.start_session(state.id)
    return state


async def _tick_and_wait(orch: Orchestrator) -> None:
    await orch.tick()
    await orch.wait_idle()


def _finished_turn() -> list:
    return [
        text_message("m1", "user", "Build the payments endpoint"),
        text_message("m2", "assistant", "Endpoint added with tests."),
    ]


async def test_finished_turn_gets_guidance(sample_app_config, approving_registry):
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch)

    outcome = await orch.process_session(state)

    assert outcome == TickOutcome.SENT
    assert len(fake.posted) == 1
    session_id, text = fake.posted[0]
    assert session_id == "ses_1"
    assert text.startswith("## Council Guidance")
    assert "- Add tests for the retry path" in text
    assert state.last_processed == "m2"
    assert state.external_session_id == "ses_1"


async def test_debate_uses_latest_user_goal(sample_app_config, approving_registry):
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch)

    await orch.process_session(state)

    first_prompt = approving_registry.all()[0].chat.await_args_list[0].args[0][0].content
    assert "Build the payments endpoint" in first_prompt
    assert "Build the API" in first_prompt


async def test_no_prior_user_message_uses_review_goal(sample_app_config, approving_registry):
    fake = FakeSessionClient(history=[text_message("m1", "assistant", "Scaffolded the repo.")])
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch)

    assert await orch.process_session(state) == TickOutcome.SENT
    first_prompt = approving_registry.all()[0].chat.await_args_list[0].args[0][0].content
    assert DEFAULT_GOAL in first_prompt


async def test_cooldown_then_waiting(sample_app_config, approving_registry):
    clock = FakeClock()
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, approving_registry, clock=clock)
    state = await _started(orch)

    assert await orch.process_session(state) == TickOutcome.SENT
    assert await orch.process_session(state) == TickOutcome.COOLDOWN
    clock.advance(9.9)
    assert await orch.process_session(state) == TickOutcome.COOLDOWN
    clock.advance(0.1)
    # the posted guidance is now the newest message
    assert await orch.process_session(state) == TickOutcome.WAITING
    assert len(fake.posted) == 1


async def test_empty_and_missing_sessions(sample_app_config, approving_registry):
    fake = FakeSessionClient(sessions=[])
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch)

    assert await orch.process_session(state) == TickOutcome.NO_SESSION
    fake.sessions = [SessionInfo("ses_1", "Build the API")]
    assert await orch.process_session(state) == TickOutcome.EMPTY
    fake.history.append(text_message("m1", "user", "hello"))
    assert await orch.process_session(state) == TickOutcome.WAITING
    approving_registry.all()[0].chat.assert_not_called()


async def test_rejection_posts_fallback_message(sample_app_config):
    registry = AdvisorRegistry([MockAdvisor("A", "VOTE: REJECT"), MockAdvisor("B", "VOTE: REJECT")])
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, registry)
    state = await _started(orch)

    assert await orch.process_session(state) == TickOutcome.SENT
    assert fake.posted == [("ses_1", "Keep going.")]


async def test_nothing_to_send_is_skipped_once(sample_app_config, approving_registry):
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch, autonomous_guidance=False, fallback_messages=[])

    assert await orch.process_session(state) == TickOutcome.SKIPPED
    assert fake.posted == []
    assert any("skipping" in line for line in orch.get_logs(state.id))

    calls = approving_registry.all()[0].chat.await_count
    assert await orch.process_session(state) == TickOutcome.DUPLICATE
    assert approving_registry.all()[0].chat.await_count == calls


async def test_unreachable_server_marks_error_then_recovers(sample_app_config, approving_registry):
    fake = FakeSessionClient(history=_finished_turn())
    fake.list_sessions = AsyncMock(side_effect=ExternalSessionUnreachable("connection refused"))
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch)

    await _tick_and_wait(orch)

    assert state.status == SessionStatus.ERROR
    assert any("unreachable" in line for line in orch.get_logs(state.id))

    del fake.list_sessions
    await _tick_and_wait(orch)

    assert state.status == SessionStatus.RUNNING
    assert len(fake.posted) == 1


async def test_no_advisors_is_retried_next_tick(sample_app_config):
    registry = AdvisorRegistry([MockAdvisor("A", "VOTE: APPROVE", available=False)])
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, registry)
    state = await _started(orch)

    await _tick_and_wait(orch)

    assert state.status == SessionStatus.ERROR
    assert state.last_processed is None
    assert fake.posted == []

    registry.register(MockAdvisor("B", "VOTE: APPROVE"))
    await _tick_and_wait(orch)

    assert state.status == SessionStatus.RUNNING
    assert state.last_processed == "m2"
    assert len(fake.posted) == 1


async def test_one_failing_session_does_not_block_another(sample_app_config, approving_registry):
    broken = FakeSessionClient()
    broken.list_sessions = AsyncMock(side_effect=RuntimeError("bad payload"))
    healthy = FakeSessionClient(history=_finished_turn())
    clients = {"http://broken.test": broken, "http://healthy.test": healthy}
    orch = Orchestrator(
        sample_app_config,
        client_factory=clients.__getitem__,
        registry_factory=lambda: approving_registry,
        clock=FakeClock(),
    )
    bad = orch.add_session("/a", base_url="http://broken.test")
    good = orch.add_session("/b", base_url="http://healthy.test")
    await orch.start_session(bad.id)
    await orch.start_session(good.id)

    await _tick_and_wait(orch)

    assert bad.status == SessionStatus.ERROR
    assert good.status == SessionStatus.RUNNING
    assert len(healthy.posted) == 1


async def test_overlapping_tick_is_busy_and_removal_aborts(sample_app_config):
    entered = asyncio.Event()
    release = asyncio.Event()

    async def slow_reply(messages):
        entered.set()
        await release.wait()
        return "VOTE: APPROVE"

    advisor = MockAdvisor("A")
    advisor.chat = AsyncMock(side_effect=slow_reply)
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, AdvisorRegistry([advisor]))
    state = await _started(orch)

    in_flight = asyncio.create_task(orch.process_session(state))
    await entered.wait()

    assert await orch.process_session(state) == TickOutcome.BUSY

    await orch.remove_session(state.id)
    release.set()

    assert await in_flight == TickOutcome.ABORTED
    assert fake.posted == []
    assert fake.closed is True
    assert orch.get_sessions() == []


async def test_start_session_is_optimistic_on_timeout(sample_app_config, approving_registry):
    async def hang():
        await asyncio.sleep(10)

    fake = FakeSessionClient()
    fake.check = AsyncMock(side_effect=hang)
    orch = _orchestrator(sample_app_config, fake, approving_registry)

    state = await _started(orch)

    assert state.status == SessionStatus.RUNNING
    assert any("startup timeout" in line for line in orch.get_logs(state.id))


async def test_start_session_is_optimistic_on_refusal(sample_app_config, approving_registry):
    fake = FakeSessionClient()
    fake.check = AsyncMock(side_effect=ExternalSessionUnreachable("refused"))
    orch = _orchestrator(sample_app_config, fake, approving_registry)

    state = await _started(orch)

    assert state.status == SessionStatus.RUNNING
    logs = orch.get_logs(state.id)
    assert any("Council initialized with advisors: A, B" in line for line in logs)
    assert any("not reachable yet" in line for line in logs)


async def test_disabled_and_stopped_sessions_are_not_ticked(sample_app_config, approving_registry):
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, approving_registry)
    state = await _started(orch)

    orch.update_session(state.id, enabled=False)
    await _tick_and_wait(orch)
    assert fake.posted == []

    orch.update_session(state.id, enabled=True)
    await orch.stop_session(state.id)
    await _tick_and_wait(orch)
    assert fake.posted == []
    assert state.status == SessionStatus.STOPPED


def test_add_session_assigns_ports_and_defaults(sample_app_config, approving_registry):
    orch = _orchestrator(sample_app_config, FakeSessionClient(), approving_registry)

    first = orch.add_session("/one")
    second = orch.add_session("/two", autonomous_guidance=False)

    assert first.base_url == "http://localhost:4096"
    assert second.base_url == "http://localhost:4097"
    assert first.autonomous_guidance is True
    assert second.autonomous_guidance is False
    assert first.fallback_messages == ["Keep going."]
    assert first.status == SessionStatus.STOPPED


def test_get_sessions_reports_recent_logs(sample_app_config, approving_registry):
    orch = _orchestrator(sample_app_config, FakeSessionClient(), approving_registry)
    state = orch.add_session("/repo", base_url="http://opencode.test")

    (summary,) = orch.get_sessions()

    assert summary["id"] == state.id
    assert summary["status"] == "stopped"
    assert summary["logs"][0].endswith("Session created for /repo at http://opencode.test")
    assert state.logs.maxlen == MAX_LOG_LINES


async def test_periodic_loop_drives_ticks(sample_app_config, approving_registry):
    async def no_wait(_interval):
        await asyncio.sleep(0)

    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, approving_registry, sleep=no_wait)
    await _started(orch)

    orch.start()
    for _ in range(500):
        if fake.posted:
            break
        await asyncio.sleep(0)
    await orch.shutdown()

    assert len(fake.posted) == 1
    assert fake.closed is True


def _blocking_registry(entered: asyncio.Event, release: asyncio.Event) -> AdvisorRegistry:
    async def slow_reply(messages):
        entered.set()
        await release.wait()
        return "VOTE: APPROVE"

    advisor = MockAdvisor("A")
    advisor.chat = AsyncMock(side_effect=slow_reply)
    return AdvisorRegistry([advisor])


async def test_slow_debate_does_not_stall_other_sessions(sample_app_config):
    async def no_wait(_interval):
        await asyncio.sleep(0)

    entered, release = asyncio.Event(), asyncio.Event()
    busy = FakeSessionClient(history=_finished_turn())
    idle = FakeSessionClient(history=[text_message("m1", "user", "hello")])
    idle.list_sessions = AsyncMock(return_value=[SessionInfo("ses_b", "Docs")])
    clients = {"http://busy.test": busy, "http://idle.test": idle}
    orch = Orchestrator(
        sample_app_config,
        client_factory=clients.__getitem__,
        registry_factory=lambda: _blocking_registry(entered, release),
        clock=FakeClock(),
        sleep=no_wait,
    )
    for path, url in (("/a", "http://busy.test"), ("/b", "http://idle.test")):
        state = orch.add_session(path, base_url=url)
        await orch.start_session(state.id)

    orch.start()
    await entered.wait()
    for _ in range(200):
        await asyncio.sleep(0)

    assert idle.list_sessions.await_count > 1
    assert busy.posted == []
    await orch.shutdown()


async def test_tick_skips_session_still_in_flight(sample_app_config):
    entered, release = asyncio.Event(), asyncio.Event()
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, _blocking_registry(entered, release))
    await _started(orch)

    (first,) = await orch.tick()
    await entered.wait()
    assert await orch.tick() == []

    release.set()
    await first
    assert len(fake.posted) == 1
    assert len(await orch.tick()) == 1
    await orch.wait_idle()


async def test_restart_during_debate_does_not_post_through_old_client(sample_app_config):
    entered, release = asyncio.Event(), asyncio.Event()
    old, new = FakeSessionClient(history=_finished_turn()), FakeSessionClient(history=_finished_turn())
    clients = iter([old, new])
    orch = Orchestrator(
        sample_app_config,
        client_factory=lambda url: next(clients),
        registry_factory=lambda: _blocking_registry(entered, release),
        clock=FakeClock(),
    )
    state = await _started(orch)

    in_flight = asyncio.create_task(orch.process_session(state))
    await entered.wait()
    await orch.stop_session(state.id)
    await orch.start_session(state.id)
    release.set()

    assert await in_flight == TickOutcome.ABORTED
    assert old.closed is True
    assert old.posted == [] and new.posted == []
    assert state.status == SessionStatus.RUNNING


async def test_shutdown_cancels_in_flight_debates(sample_app_config):
    entered, release = asyncio.Event(), asyncio.Event()
    fake = FakeSessionClient(history=_finished_turn())
    orch = _orchestrator(sample_app_config, fake, _blocking_registry(entered, release))
    state = await _started(orch)

    (task,) = await orch.tick()
    await entered.wait()
    await orch.shutdown()

    assert task.cancelled()
    assert fake.posted == []
    assert state.status == SessionStatus.STOPPED
