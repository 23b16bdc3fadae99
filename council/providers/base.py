"""Abstract advisor interface plus the message reshaping helpers adapters share."""

from abc import ABC, abstractmethod

from config.config_loader import AdvisorConfig
from council.models import ROLES, Message


class AdvisorError(Exception):
    """Base for advisor failures. Carries the advisor name."""

    def __init__(self, advisor_name: str, message: str) -> None:
        self.advisor_name = advisor_name
        super().__init__(f"[{advisor_name}] {message}")


class AdvisorUnavailable(AdvisorError):
    """Raised when an advisor has no credential to call its backend."""


class AdvisorCallFailed(AdvisorError):
    """Raised when a backend call fails, times out, or returns nothing usable."""


def default_system_prompt(name: str) -> str:
    return (
        f"You are {name}, an expert software development supervisor. "
        "Your role is to review code changes, provide constructive feedback, "
        "and guide the development process. Focus on code quality, best practices, "
        "security, and maintainability."
    )


def validate_messages(advisor_name: str, messages: list[Message]) -> None:
    if not messages:
        raise AdvisorCallFailed(advisor_name, "No messages to send")
    for message in messages:
        if message.role not in ROLES:
            raise AdvisorCallFailed(advisor_name, f"Unsupported message role: {message.role!r}")


def split_system(messages: list[Message]) -> tuple[str, list[Message]]:
    """Pull system messages out of a conversation.

    Returns:
        (joined system text, remaining messages in order)
    """
    system_parts = [m.content for m in messages if m.role == "system" and m.content]
    rest = [m for m in messages if m.role != "system"]
    return "\n\n".join(system_parts), rest


def merge_consecutive(messages: list[Message]) -> list[Message]:
    """Collapse runs of same-role messages for backends that require alternation.

    A leading assistant turn gets a placeholder user turn in front of it;
    these backends require the conversation to open with the user.
    """
    merged: list[Message] = []
    for message in messages:
        if merged and merged[-1].role == message.role:
            merged[-1] = Message(message.role, f"{merged[-1].content}\n\n{message.content}")
        else:
            merged.append(message)
    if merged and merged[0].role == "assistant":
        merged.insert(0, Message("user", "(conversation continues)"))
    return merged


class Advisor(ABC):
    """A participant that turns an ordered message history into advisory text."""

    def __init__(self, config: AdvisorConfig) -> None:
        self._config = config
        self._api_key = config.resolve_api_key()

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def system_prompt(self) -> str:
        return self._config.system_prompt or default_system_prompt(self._config.name)

    def is_available(self) -> bool:
        """Cheap local check (credential present). Never touches the network."""
        return bool(self._api_key)

    def _require_key(self) -> str:
        if not self._api_key:
            raise AdvisorUnavailable(self.name, "No API key configured")
        return self._api_key

    @abstractmethod
    async def chat(self, messages: list[Message]) -> str:
        """Send the conversation and return the reply text.

        Args:
            messages: Ordered role-tagged messages (system/user/assistant).

        Returns:
            The advisor's reply.

        Raises:
            AdvisorUnavailable: No credential.
            AdvisorCallFailed: On API failure, timeout, or empty response.
        """
        ...
