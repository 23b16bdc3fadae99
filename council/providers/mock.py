"""Offline advisor for demos and dry runs. Needs no credential."""

from council.models import Message
from council.providers.base import Advisor, validate_messages


class MockAdvisor(Advisor):
    """Echoes the request back; approves whenever it is asked for a final vote."""

    def is_available(self) -> bool:
        return True

    async def chat(self, messages: list[Message]) -> str:
        validate_messages(self.name, messages)
        last = messages[-1].content
        if "FINAL VOTE" in last:
            return "VOTE: APPROVE\nREASONING: Nothing in the simulation blocks this change."
        return (
            f'[Mock Response] I received: "{last[:50]}...". '
            "Everything looks nominal from my simulation."
        )
