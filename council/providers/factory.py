"""Pick the advisor adapter for a config entry by provider kind."""

from config.config_loader import AdvisorConfig
from council.providers.anthropic import AnthropicAdvisor
from council.providers.base import Advisor
from council.providers.gemini import GeminiAdvisor
from council.providers.mock import MockAdvisor
from council.providers.openai_provider import OpenAIAdvisor

ADVISOR_CLASSES: dict[str, type[Advisor]] = {
    "openai": OpenAIAdvisor,
    "grok": OpenAIAdvisor,
    "xai": OpenAIAdvisor,
    "deepseek": OpenAIAdvisor,
    "qwen": OpenAIAdvisor,
    "kimi": OpenAIAdvisor,
    "anthropic": AnthropicAdvisor,
    "claude": AnthropicAdvisor,
    "gemini": GeminiAdvisor,
    "google": GeminiAdvisor,
    "mock": MockAdvisor,
    "custom": MockAdvisor,
}


def create_advisor(config: AdvisorConfig) -> Advisor:
    """Build the adapter for ``config.provider``.

    Raises:
        ValueError: Unknown provider kind.
    """
    try:
        advisor_cls = ADVISOR_CLASSES[config.provider.lower()]
    except KeyError:
        raise ValueError(f"Unknown provider: {config.provider}") from None
    return advisor_cls(config)
