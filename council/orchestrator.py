"""Orchestration loop: watch development sessions, debate finished turns, post guidance back."""

import asyncio
import logging
import random
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from config.config_loader import AppConfig
from council.debate import NoAdvisorsAvailable, run_debate
from council.guidance import compose_outbound
from council.registry import AdvisorRegistry
from council.scheduler import PeriodicTask, Sleep
from council.session_client import ExternalSessionUnreachable, OpenCodeClient, SessionClient
from council.tasks import task_from_history

logger = logging.getLogger(__name__)

MAX_LOG_LINES = 1000
RECENT_LOG_LINES = 50


class SessionStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


class TickOutcome(str, Enum):
    BUSY = "busy"                  # a debate for this session is still in flight
    COOLDOWN = "cooldown"
    NO_SESSION = "no_session"      # the server lists no sessions yet
    EMPTY = "empty"
    WAITING = "waiting"            # newest message is not an assistant turn
    DUPLICATE = "duplicate"        # newest assistant turn already debated
    SENT = "sent"
    SKIPPED = "skipped"            # debated, but nothing to post
    ABORTED = "aborted"            # session stopped or removed mid-debate


_ACTIVE = (SessionStatus.RUNNING, SessionStatus.ERROR)


@dataclass
class SessionState:
    id: str
    path: str
    base_url: str
    autonomous_guidance: bool
    fallback_messages: list[str]
    external_session_id: str | None = None
    last_processed: str | None = None
    enabled: bool = True
    status: SessionStatus = SessionStatus.STOPPED
    last_check: float = 0.0
    cooldown_until: float = 0.0
    logs: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_LOG_LINES))
    client: SessionClient | None = None
    registry: AdvisorRegistry | None = None
    debate_guard: asyncio.Lock = field(default_factory=asyncio.Lock)


class Orchestrator:
    """Owns the watched sessions and the periodic tick that serves them.

    Each session carries its own client, advisor registry and mode flags, so
    sessions never share state. ``clock``, ``sleep`` and ``rng`` are
    injectable for tests.
    """

    def __init__(
        self,
        config: AppConfig,
        client_factory: Callable[[str], SessionClient] = OpenCodeClient,
        registry_factory: Callable[[], AdvisorRegistry] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._registry_factory = registry_factory or (lambda: AdvisorRegistry.from_configs(config.advisors))
        self._clock = clock
        self._rng = rng or random.Random()
        self._sessions: dict[str, SessionState] = {}
        self._next_port = config.loop.base_port
        self._inflight: dict[str, asyncio.Task] = {}
        self._scheduler = PeriodicTask(self.tick, config.loop.poll_interval_sec, sleep=sleep, name="orchestrator")

    # --- session registry -------------------------------------------------

    def add_session(
        self,
        path: str,
        base_url: str | None = None,
        autonomous_guidance: bool | None = None,
        fallback_messages: list[str] | None = None,
    ) -> SessionState:
        if base_url is None:
            base_url = f"http://localhost:{self._next_port}"
            self._next_port += 1
        loop_cfg = self._config.loop
        state = SessionState(
            id=uuid.uuid4().hex[:8],
            path=path,
            base_url=base_url,
            autonomous_guidance=(
                loop_cfg.autonomous_guidance if autonomous_guidance is None else autonomous_guidance
            ),
            fallback_messages=list(loop_cfg.fallback_messages if fallback_messages is None else fallback_messages),
        )
        self._sessions[state.id] = state
        self._log(state, f"Session created for {path} at {base_url}")
        return state

    async def remove_session(self, session_id: str) -> None:
        await self.stop_session(session_id)
        self._sessions.pop(session_id, None)

    def update_session(
        self,
        session_id: str,
        *,
        enabled: bool | None = None,
        autonomous_guidance: bool | None = None,
        fallback_messages: list[str] | None = None,
    ) -> SessionState:
        state = self._require(session_id)
        if enabled is not None:
            state.enabled = enabled
        if autonomous_guidance is not None:
            state.autonomous_guidance = autonomous_guidance
        if fallback_messages is not None:
            state.fallback_messages = list(fallback_messages)
        return state

    def get_session(self, session_id: str) -> SessionState:
        return self._require(session_id)

    def get_sessions(self) -> list[dict]:
        return [
            {
                "id": s.id,
                "path": s.path,
                "base_url": s.base_url,
                "status": s.status.value,
                "enabled": s.enabled,
                "autonomous_guidance": s.autonomous_guidance,
                "external_session_id": s.external_session_id,
                "last_processed": s.last_processed,
                "last_check": s.last_check,
                "logs": list(s.logs)[-RECENT_LOG_LINES:],
            }
            for s in self._sessions.values()
        ]

    def get_logs(self, session_id: str) -> list[str]:
        state = self._sessions.get(session_id)
        return list(state.logs) if state else []

    def _require(self, session_id: str) -> SessionState:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Session not found: {session_id}") from None

    # --- lifecycle --------------------------------------------------------

    async def start_session(self, session_id: str) -> None:
        """Attach to the session server and mark the session running.

        Startup is optimistic: a timeout or a refused connection still ends
        in RUNNING, and later ticks keep retrying the inspection calls.
        """
        state = self._require(session_id)
        if state.status == SessionStatus.RUNNING:
            return

        state.status = SessionStatus.STARTING
        self._log(state, f"Connecting to {state.base_url}...")
        if state.client is None:
            state.client = self._client_factory(state.base_url)
        if state.registry is None:
            state.registry = self._registry_factory()
            names = ", ".join(a.name for a in state.registry.available()) or "none"
            self._log(state, f"Council initialized with advisors: {names}")

        try:
            await asyncio.wait_for(state.client.check(), timeout=self._config.loop.startup_timeout_sec)
            self._log(state, "Connected to session server")
        except TimeoutError:
            self._log(state, "No confirmation before startup timeout; assuming the server is up")
        except ExternalSessionUnreachable as exc:
            self._log(state, f"Server not reachable yet ({exc}); retrying on next tick")

        if state.status == SessionStatus.STARTING:
            state.status = SessionStatus.RUNNING

    async def stop_session(self, session_id: str) -> None:
        state = self._sessions.get(session_id)
        if state is None:
            return
        state.status = SessionStatus.STOPPED
        if state.client is not None:
            client, state.client = state.client, None
            await client.close()
        self._log(state, "Session stopped")

    def start(self) -> None:
        """Start the periodic tick. Requires a running event loop."""
        self._scheduler.start()

    async def shutdown(self) -> None:
        await self._scheduler.stop()
        pending = list(self._inflight.values())
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
        for session_id in list(self._sessions):
            await self.stop_session(session_id)

    # --- tick -------------------------------------------------------------

    async def tick(self) -> list[asyncio.Task]:
        """Start one processing task per active session and return the tasks started.

        Sessions run independently: a session whose previous tick is still in
        flight is skipped, and a slow debate never delays polling of the others.
        """
        started: list[asyncio.Task] = []
        for state in list(self._sessions.values()):
            if state.status not in _ACTIVE or not state.enabled:
                continue
            previous = self._inflight.get(state.id)
            if previous is not None and not previous.done():
                continue
            task = asyncio.create_task(self._process_safely(state), name=f"session-{state.id}")
            self._inflight[state.id] = task
            task.add_done_callback(lambda t, sid=state.id: self._forget(sid, t))
            started.append(task)
        return started

    async def wait_idle(self) -> None:
        """Wait for every in-flight session task to finish."""
        await asyncio.gather(*list(self._inflight.values()))

    def _forget(self, session_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(session_id) is task:
            del self._inflight[session_id]

    async def _process_safely(self, state: SessionState) -> TickOutcome | None:
        state.last_check = time.time()
        try:
            outcome = await self.process_session(state)
        except ExternalSessionUnreachable as exc:
            self._mark_error(state, f"Session server unreachable: {exc}")
            return None
        except NoAdvisorsAvailable as exc:
            self._mark_error(state, f"Debate skipped: {exc}")
            return None
        except Exception as exc:
            logger.exception("Loop error in session %s", state.id)
            self._mark_error(state, f"Loop error: {exc}")
            return None
        if state.status == SessionStatus.ERROR:
            state.status = SessionStatus.RUNNING
        return outcome

    def _mark_error(self, state: SessionState, message: str) -> None:
        self._log(state, message)
        if state.status in _ACTIVE:
            state.status = SessionStatus.ERROR

    def _is_live(self, state: SessionState) -> bool:
        return self._sessions.get(state.id) is state and state.status in _ACTIVE

    async def process_session(self, state: SessionState) -> TickOutcome:
        if state.debate_guard.locked():
            return TickOutcome.BUSY
        async with state.debate_guard:
            return await self._process(state)

    async def _process(self, state: SessionState) -> TickOutcome:
        if self._clock() < state.cooldown_until:
            return TickOutcome.COOLDOWN
        if state.client is None:
            state.client = self._client_factory(state.base_url)
        if state.registry is None:
            state.registry = self._registry_factory()
        client = state.client

        sessions = await client.list_sessions()
        if not sessions:
            return TickOutcome.NO_SESSION
        external = next((s for s in sessions if s.id == state.external_session_id), None)
        if external is None:
            external = sessions[0]
            state.external_session_id = external.id
            self._log(state, f"Watching session: {external.title} ({external.id})")

        history = await client.get_messages(external.id)
        if not history:
            return TickOutcome.EMPTY
        latest = history[-1]
        if latest.role != "assistant":
            return TickOutcome.WAITING
        if latest.id == state.last_processed:
            return TickOutcome.DUPLICATE

        self._log(state, "AI finished turn. Council deliberating...")
        task = task_from_history(history, external.title)
        council_cfg = self._config.council
        decision = await run_debate(
            task,
            state.registry,
            prompts=self._config.prompts,
            num_rounds=council_cfg.debate_rounds,
            threshold=council_cfg.consensus_threshold,
        )
        state.last_processed = latest.id
        self._log(
            state,
            f"Council decision: {'Approved' if decision.approved else 'Rejected'} "
            f"({decision.consensus:.0%} consensus)",
        )

        # a restart mid-debate replaces the client; the old one is closed
        if not self._is_live(state) or state.client is not client:
            self._log(state, "Session stopped or restarted during debate; guidance not sent")
            return TickOutcome.ABORTED

        text = compose_outbound(decision, state.autonomous_guidance, state.fallback_messages, self._rng)
        if text is None:
            self._log(state, "No guidance to send (autonomous guidance off or rejected, fallback pool empty); skipping")
            return TickOutcome.SKIPPED

        await client.post_message(external.id, text)
        state.cooldown_until = self._clock() + self._config.loop.cooldown_sec
        self._log(state, "Guidance sent.")
        return TickOutcome.SENT

    def _log(self, state: SessionState, message: str) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        state.logs.append(f"[{timestamp}] {message}")
        logger.info("[Session %s] %s", state.id, message)
