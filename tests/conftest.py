"""Shared pytest fixtures."""

from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AdvisorConfig,
    AppConfig,
    CouncilConfig,
    LoopConfig,
    PromptsConfig,
)
from council.models import Message, Task
from council.providers.base import Advisor
from council.registry import AdvisorRegistry
from council.session_client import MessagePart, SessionInfo, SessionMessage


def _config(name: str) -> AdvisorConfig:
    return AdvisorConfig(name=name, provider="mock", model="mock-model", api_key="test-key")


class MockAdvisor(Advisor):
    """Test double Advisor."""

    def __init__(self, advisor_name: str = "mock", response_content: str = "Mock response",
                 available: bool = True) -> None:
        super().__init__(_config(advisor_name))
        self._available = available
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because chat is defined in the class body below.
        self.chat = AsyncMock(return_value=response_content)  # type: ignore[method-assign]

    def is_available(self) -> bool:
        return self._available

    async def chat(self, messages: list[Message]) -> str:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._response_content


def sequenced(advisor: MockAdvisor, *replies) -> MockAdvisor:
    """Make the advisor answer each call with the next reply (exceptions are raised)."""
    advisor.chat = AsyncMock(side_effect=list(replies))
    return advisor


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        opinion="Task {task_id}: {description}\nContext: {context}\nFiles: {files}",
        deliberation="{transcript}\n\nRefine your position.",
        final_vote="{transcript}\n\nFINAL VOTE: reply VOTE: APPROVE or VOTE: REJECT.",
    )


@pytest.fixture
def sample_task() -> Task:
    return Task(
        id="task-1",
        description="Add retry logic to the payment client",
        context="def pay(): ...",
        files=("payments/client.py",),
        created_at=0.0,
    )


@pytest.fixture
def two_mock_advisors() -> list[MockAdvisor]:
    return [MockAdvisor("advisor_a", "VOTE: APPROVE"), MockAdvisor("advisor_b", "VOTE: APPROVE")]


@pytest.fixture
def sample_app_config(sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(
        council=CouncilConfig(debate_rounds=1, consensus_threshold=0.5),
        loop=LoopConfig(
            poll_interval_sec=10,
            cooldown_sec=10,
            startup_timeout_sec=0.1,
            autonomous_guidance=True,
            fallback_messages=["Keep going."],
        ),
        advisors=[],
        prompts=sample_prompts_config,
    )


def text_message(message_id: str, role: str, text: str) -> SessionMessage:
    return SessionMessage(id=message_id, role=role, parts=(MessagePart("text", text),))


class FakeSessionClient:
    """In-memory stand-in for the OpenCode server."""

    def __init__(self, history: list[SessionMessage] | None = None,
                 sessions: list[SessionInfo] | None = None) -> None:
        self.sessions = sessions if sessions is not None else [SessionInfo("ses_1", "Build the API")]
        self.history = history if history is not None else []
        self.posted: list[tuple[str, str]] = []
        self.closed = False
        self.check = AsyncMock(return_value=None)

    async def list_sessions(self) -> list[SessionInfo]:
        return list(self.sessions)

    async def get_messages(self, session_id: str) -> list[SessionMessage]:
        return list(self.history)

    async def post_message(self, session_id: str, text: str) -> None:
        self.posted.append((session_id, text))
        self.history.append(text_message(f"posted-{len(self.posted)}", "user", text))

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def approving_registry() -> AdvisorRegistry:
    return AdvisorRegistry([MockAdvisor("A", "VOTE: APPROVE\n- Add tests for the retry path"),
                            MockAdvisor("B", "VOTE: APPROVE")])
