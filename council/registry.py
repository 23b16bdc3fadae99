"""Advisor registry: the configured roster and its availability filter."""

import logging
from collections.abc import Iterable

from config.config_loader import AdvisorConfig
from council.providers.base import Advisor
from council.providers.factory import create_advisor

logger = logging.getLogger(__name__)


class AdvisorRegistry:
    """Holds configured advisors in roster order. Names are unique."""

    def __init__(self, advisors: Iterable[Advisor] = ()) -> None:
        self._advisors: list[Advisor] = []
        for advisor in advisors:
            self.register(advisor)

    @classmethod
    def from_configs(cls, configs: Iterable[AdvisorConfig]) -> "AdvisorRegistry":
        """Build adapters for every config entry, skipping ones that cannot be built."""
        registry = cls()
        for config in configs:
            try:
                advisor = create_advisor(config)
            except ValueError as exc:
                logger.warning("Advisor '%s' skipped: %s", config.name, exc)
                continue
            registry.register(advisor)
        return registry

    def register(self, advisor: Advisor) -> None:
        if any(a.name == advisor.name for a in self._advisors):
            raise ValueError(f"Duplicate advisor name: {advisor.name}")
        self._advisors.append(advisor)

    def all(self) -> list[Advisor]:
        return list(self._advisors)

    def available(self) -> list[Advisor]:
        """Snapshot of advisors that can take part right now, in roster order."""
        available: list[Advisor] = []
        for advisor in self._advisors:
            if advisor.is_available():
                available.append(advisor)
            else:
                logger.debug("Advisor %s unavailable (no credential)", advisor.name)
        return available

    def __len__(self) -> int:
        return len(self._advisors)
