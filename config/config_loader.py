"""Load settings.yaml into typed dataclasses. Reports missing API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

# Env var consulted when an advisor entry does not name one
DEFAULT_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "grok": "XAI_API_KEY",
    "xai": "XAI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "qwen": "QWEN_API_KEY",
    "kimi": "KIMI_API_KEY",
}

DEFAULT_OPINION_PROMPT = """# Development Task Review

**Task ID**: {task_id}
**Description**: {description}

**Context**:
{context}

**Files Affected**:
{files}

**Your Role**:
As a supervisor, review this development task and provide your expert opinion on:
1. Code quality and best practices
2. Potential issues or risks
3. Suggestions for improvement
4. Whether this task should be approved to proceed

Be thorough but concise in your analysis."""

DEFAULT_DELIBERATION_PROMPT = """{transcript}

Considering the above opinions, provide your refined assessment."""

DEFAULT_FINAL_VOTE_PROMPT = """{transcript}

Based on all discussions, provide your FINAL VOTE:
1. Vote: APPROVE or REJECT
2. Brief reasoning (2-3 sentences)
Format: VOTE: [APPROVE/REJECT]
REASONING: [your reasoning]"""

DEFAULT_FALLBACK_MESSAGES = [
    "Please continue with the next step.",
    "Review your last change for edge cases, then continue.",
    "Run the tests and fix anything that fails before moving on.",
]


@dataclass(frozen=True)
class AdvisorConfig:
    name: str
    provider: str
    model: str
    api_key: str | None = None
    api_key_env: str | None = None
    base_url: str | None = None
    system_prompt: str | None = None
    temperature: float = 0.7
    timeout_sec: int = 120
    max_tokens: int = 1024

    def resolve_api_key(self) -> str:
        """Explicit key first, then the configured (or provider default) env var."""
        if self.api_key:
            return self.api_key.strip()
        env_name = self.api_key_env or DEFAULT_KEY_ENV.get(self.provider.lower(), "")
        if not env_name:
            return ""
        return os.environ.get(env_name, "").strip()


@dataclass
class PromptsConfig:
    opinion: str = DEFAULT_OPINION_PROMPT
    deliberation: str = DEFAULT_DELIBERATION_PROMPT
    final_vote: str = DEFAULT_FINAL_VOTE_PROMPT


@dataclass
class CouncilConfig:
    debate_rounds: int = 2
    consensus_threshold: float = 0.5


@dataclass
class LoopConfig:
    poll_interval_sec: float = 10.0
    cooldown_sec: float = 10.0
    startup_timeout_sec: float = 5.0
    autonomous_guidance: bool = True
    fallback_messages: list[str] = field(default_factory=lambda: list(DEFAULT_FALLBACK_MESSAGES))
    base_port: int = 4096


@dataclass
class AppConfig:
    council: CouncilConfig
    loop: LoopConfig
    advisors: list[AdvisorConfig]
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    available_advisors: set[str] = field(default_factory=set)


def _parse_advisor(raw: dict) -> AdvisorConfig:
    try:
        name = str(raw["name"])
        provider = str(raw["provider"])
        model = str(raw["model"])
    except KeyError as exc:
        raise ValueError(f"Advisor entry missing required key {exc}: {raw}") from exc
    return AdvisorConfig(
        name=name,
        provider=provider,
        model=model,
        api_key=raw.get("api_key"),
        api_key_env=raw.get("api_key_env"),
        base_url=raw.get("base_url"),
        system_prompt=raw.get("system_prompt"),
        temperature=float(raw.get("temperature", 0.7)),
        timeout_sec=int(raw.get("timeout_sec", 120)),
        max_tokens=int(raw.get("max_tokens", 1024)),
    )


_TEMPLATE_FIELDS: dict[str, tuple[str, ...]] = {
    "opinion": ("task_id", "description", "context", "files"),
    "deliberation": ("transcript",),
    "final_vote": ("transcript",),
}


def _check_templates(prompts: PromptsConfig) -> None:
    """Format every prompt with placeholder values so bad templates fail at load time.

    Literal braces must be doubled (``{{`` / ``}}``).
    """
    for name, fields in _TEMPLATE_FIELDS.items():
        template = getattr(prompts, name)
        try:
            template.format(**{f: "" for f in fields})
        except KeyError as exc:
            raise ValueError(
                f"prompts.{name} uses unknown placeholder {exc}; allowed: {', '.join(fields)}"
            ) from exc
        except (IndexError, ValueError) as exc:
            raise ValueError(f"prompts.{name} is not a valid template: {exc}") from exc


def _validate(config: AppConfig) -> None:
    if config.council.debate_rounds < 1:
        raise ValueError(f"debate_rounds must be >= 1, got {config.council.debate_rounds}")
    if not 0.0 <= config.council.consensus_threshold <= 1.0:
        raise ValueError(
            f"consensus_threshold must be within [0, 1], got {config.council.consensus_threshold}"
        )
    _check_templates(config.prompts)
    seen: set[str] = set()
    for advisor in config.advisors:
        if advisor.name in seen:
            raise ValueError(f"Duplicate advisor name: {advisor.name}")
        seen.add(advisor.name)


def load_config(settings_path: Path | None = None) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    The path defaults to $COUNCIL_SETTINGS, then config/settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError on invalid
    values. Logs missing API keys but does not raise; callers check
    available_advisors.
    """
    if settings_path is None:
        env_path = os.environ.get("COUNCIL_SETTINGS", "").strip()
        settings_path = Path(env_path) if env_path else _SETTINGS_PATH

    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    council_raw = raw.get("council", {}) or {}
    council = CouncilConfig(
        debate_rounds=int(council_raw.get("debate_rounds", 2)),
        consensus_threshold=float(council_raw.get("consensus_threshold", 0.5)),
    )

    loop_raw = raw.get("loop", {}) or {}
    loop = LoopConfig(
        poll_interval_sec=float(loop_raw.get("poll_interval_sec", 10.0)),
        cooldown_sec=float(loop_raw.get("cooldown_sec", 10.0)),
        startup_timeout_sec=float(loop_raw.get("startup_timeout_sec", 5.0)),
        autonomous_guidance=bool(loop_raw.get("autonomous_guidance", True)),
        fallback_messages=[str(m) for m in loop_raw.get("fallback_messages", DEFAULT_FALLBACK_MESSAGES)],
        base_port=int(loop_raw.get("base_port", 4096)),
    )

    prompts_raw = raw.get("prompts", {}) or {}
    prompts = PromptsConfig(
        opinion=prompts_raw.get("opinion", DEFAULT_OPINION_PROMPT),
        deliberation=prompts_raw.get("deliberation", DEFAULT_DELIBERATION_PROMPT),
        final_vote=prompts_raw.get("final_vote", DEFAULT_FINAL_VOTE_PROMPT),
    )

    advisors = [_parse_advisor(a) for a in raw.get("advisors", []) or []]

    available: set[str] = set()
    for advisor in advisors:
        if advisor.provider.lower() in ("mock", "custom") or advisor.resolve_api_key():
            available.add(advisor.name)
            logger.info("Advisor available: %s", advisor.name)
        else:
            logger.info(
                "Advisor skipped (no API key): %s; set %s in .env",
                advisor.name,
                advisor.api_key_env or DEFAULT_KEY_ENV.get(advisor.provider.lower(), "an API key"),
            )

    config = AppConfig(
        council=council,
        loop=loop,
        advisors=advisors,
        prompts=prompts,
        available_advisors=available,
    )
    _validate(config)
    return config


_DEFAULT_SETTINGS = {
    "council": {"debate_rounds": 2, "consensus_threshold": 0.5},
    "loop": {
        "poll_interval_sec": 10,
        "cooldown_sec": 10,
        "startup_timeout_sec": 5,
        "autonomous_guidance": True,
        "fallback_messages": DEFAULT_FALLBACK_MESSAGES,
        "base_port": 4096,
    },
    "advisors": [
        {
            "name": "ChatGPT",
            "provider": "openai",
            "model": "gpt-4o",
            "system_prompt": "You are a senior software engineer reviewing code changes.",
        },
        {
            "name": "Claude",
            "provider": "anthropic",
            "model": "claude-3-5-sonnet-20241022",
            "system_prompt": "You are an expert code reviewer focusing on best practices and security.",
        },
    ],
}


def write_default_config(settings_path: Path) -> Path:
    """Write a starter settings file. Refuses to overwrite an existing one."""
    if settings_path.exists():
        raise FileExistsError(f"Settings file already exists: {settings_path}")
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with settings_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(_DEFAULT_SETTINGS, f, sort_keys=False)
    logger.info("Created default council configuration at %s", settings_path)
    return settings_path
