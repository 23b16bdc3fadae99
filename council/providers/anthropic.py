"""Anthropic Claude advisor using anthropic SDK with native async."""

import asyncio
import logging
import time

import anthropic as anthropic_sdk

from config.config_loader import AdvisorConfig
from council.models import Message
from council.providers.base import (
    Advisor,
    AdvisorCallFailed,
    merge_consecutive,
    split_system,
    validate_messages,
)

logger = logging.getLogger(__name__)


class AnthropicAdvisor(Advisor):
    """Anthropic Claude advisor via anthropic SDK.

    System text goes in the top-level ``system`` parameter and turns must
    alternate, so the conversation is reshaped before every call.
    """

    def __init__(self, config: AdvisorConfig) -> None:
        super().__init__(config)
        self._client: anthropic_sdk.AsyncAnthropic | None = None

    def _get_client(self) -> anthropic_sdk.AsyncAnthropic:
        if self._client is None:
            kwargs = {"api_key": self._require_key()}
            if self._config.base_url:
                kwargs["base_url"] = self._config.base_url
            self._client = anthropic_sdk.AsyncAnthropic(**kwargs)
        return self._client

    async def chat(self, messages: list[Message]) -> str:
        validate_messages(self.name, messages)
        client = self._get_client()

        system_text, rest = split_system(messages)
        system = "\n\n".join(p for p in (self.system_prompt, system_text) if p)
        turns = merge_consecutive(rest)
        if not turns:
            raise AdvisorCallFailed(self.name, "No user or assistant messages to send")

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.messages.create(
                    model=self._config.model,
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                    system=system,
                    messages=[{"role": m.role, "content": m.content} for m in turns],
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise AdvisorCallFailed(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise AdvisorCallFailed(self.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise AdvisorCallFailed(self.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise AdvisorCallFailed(self.name, "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info("Anthropic %s: %.2fs, %s tokens", self.name, latency, token_count)
        return "\n".join(text_blocks)
