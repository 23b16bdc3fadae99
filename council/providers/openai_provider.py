"""OpenAI advisor using openai SDK. Also serves OpenAI-compatible APIs (Grok, DeepSeek, ...)."""

import asyncio
import logging
import time

from openai import AsyncOpenAI

from config.config_loader import AdvisorConfig
from council.models import Message
from council.providers.base import Advisor, AdvisorCallFailed, split_system, validate_messages

logger = logging.getLogger(__name__)

# Default endpoints for providers that speak the OpenAI chat completions API
COMPATIBLE_BASE_URLS: dict[str, str] = {
    "grok": "https://api.x.ai/v1",
    "xai": "https://api.x.ai/v1",
    "deepseek": "https://api.deepseek.com",
    "qwen": "https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
    "kimi": "https://api.moonshot.ai/v1",
}


class OpenAIAdvisor(Advisor):
    """OpenAI (or compatible) advisor via openai SDK."""

    def __init__(self, config: AdvisorConfig) -> None:
        super().__init__(config)
        self._base_url = config.base_url or COMPATIBLE_BASE_URLS.get(config.provider.lower())
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._require_key(), base_url=self._base_url)
        return self._client

    async def chat(self, messages: list[Message]) -> str:
        validate_messages(self.name, messages)
        client = self._get_client()

        system_text, rest = split_system(messages)
        system = "\n\n".join(p for p in (self.system_prompt, system_text) if p)
        payload = [{"role": "system", "content": system}]
        payload += [{"role": m.role, "content": m.content} for m in rest]

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self._config.model,
                    messages=payload,
                    temperature=self._config.temperature,
                    max_tokens=self._config.max_tokens,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise AdvisorCallFailed(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise AdvisorCallFailed(self.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise AdvisorCallFailed(self.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info("OpenAI %s (%s): %.2fs, %s tokens", self.name, self.provider, latency, token_count)
        return choice.message.content
