"""Gemini advisor using google-genai SDK with native async."""

import asyncio
import logging
import time

from google import genai
from google.genai import types as genai_types

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


def _to_contents(messages: list[Message]) -> list[genai_types.Content]:
    return [
        genai_types.Content(
            role="model" if m.role == "assistant" else "user",
            parts=[genai_types.Part(text=m.content)],
        )
        for m in messages
    ]


class GeminiAdvisor(Advisor):
    """Google Gemini advisor via google-genai SDK."""

    def __init__(self, config: AdvisorConfig) -> None:
        super().__init__(config)
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            kwargs = {"api_key": self._require_key()}
            if self._config.base_url:
                kwargs["http_options"] = genai_types.HttpOptions(base_url=self._config.base_url)
            self._client = genai.Client(**kwargs)
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
                client.aio.models.generate_content(
                    model=self._config.model,
                    contents=_to_contents(turns),
                    config=genai_types.GenerateContentConfig(
                        system_instruction=system,
                        temperature=self._config.temperature,
                        max_output_tokens=self._config.max_tokens,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise AdvisorCallFailed(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise AdvisorCallFailed(self.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise AdvisorCallFailed(self.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info("Gemini %s: %.2fs, %s tokens", self.name, latency, token_count)
        return response.text
