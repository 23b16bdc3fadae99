"""Plugin-hook surface: explicit council context instead of module-level globals."""

import json
import logging
import time
from dataclasses import dataclass, field

from config.config_loader import AppConfig, PromptsConfig
from council.debate import run_debate
from council.models import Decision, Task
from council.registry import AdvisorRegistry
from council.tasks import new_task_id, task_from_topic

logger = logging.getLogger(__name__)

CODE_CHANGING_TOOLS = frozenset({"edit", "create", "write_file"})


@dataclass
class CouncilContext:
    registry: AdvisorRegistry
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    debate_rounds: int = 2
    consensus_threshold: float = 0.5
    enabled: bool = True

    @classmethod
    def from_config(cls, config: AppConfig) -> "CouncilContext":
        return cls(
            registry=AdvisorRegistry.from_configs(config.advisors),
            prompts=config.prompts,
            debate_rounds=config.council.debate_rounds,
            consensus_threshold=config.council.consensus_threshold,
        )

    async def debate(self, task: Task) -> Decision:
        return await run_debate(
            task,
            self.registry,
            prompts=self.prompts,
            num_rounds=self.debate_rounds,
            threshold=self.consensus_threshold,
        )

    async def on_tool_executed(self, tool: str, args: dict) -> Decision | None:
        """Review a finished tool call. Only code-changing tools are debated."""
        if not self.enabled or tool not in CODE_CHANGING_TOOLS:
            return None
        logger.info("Council reviewing %s operation...", tool)
        task = Task(
            id=new_task_id(),
            description=f"Tool: {tool}",
            context=json.dumps(args, indent=2, default=str),
            files=(str(args.get("path") or "unknown"),),
            created_at=time.time(),
        )
        decision = await self.debate(task)
        if decision.approved:
            logger.info("Council approved this change")
        else:
            logger.warning("Council rejected this change:\n%s", decision.reasoning)
        return decision

    async def on_file_edited(self, path: str, content: str | None = None) -> Decision | None:
        if not self.enabled:
            return None
        logger.info("Council reviewing file edit: %s", path)
        task = Task(
            id=new_task_id(),
            description=f"File edited: {path}",
            context=content or "File content not available",
            files=(path,),
            created_at=time.time(),
        )
        decision = await self.debate(task)
        if not decision.approved:
            logger.warning("Council has concerns about this edit:\n%s", decision.reasoning)
        return decision

    async def debate_topic(self, topic: str) -> dict:
        """Manual debate on a free-form topic, summarised for a tool response."""
        decision = await self.debate(task_from_topic(topic))
        return {
            "decision": "APPROVED" if decision.approved else "REJECTED",
            "consensus": f"{decision.consensus:.0%}",
            "reasoning": decision.reasoning,
            "votes": [
                {"advisor": v.advisor, "approved": v.approved, "comment": v.rationale}
                for v in decision.votes
            ],
        }

    def status(self) -> dict:
        available = self.registry.available()
        return {
            "enabled": self.enabled,
            "total_advisors": len(available),
            "advisors": [{"name": a.name, "provider": a.provider} for a in available],
        }

    def toggle(self, enabled: bool) -> str:
        self.enabled = enabled
        return f"Council {'enabled' if enabled else 'disabled'}"
