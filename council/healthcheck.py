"""Advisor health checks: ping each backend on demand from the CLI."""

import asyncio
import logging

from council.models import Message
from council.providers.base import Advisor

logger = logging.getLogger(__name__)

_PING_MESSAGES = [Message("user", "Reply with the word OK only.")]
_TIMEOUT_SEC = 15.0


async def _check_one(advisor: Advisor) -> tuple[str, bool, str]:
    """Ping a single advisor. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(advisor.chat(_PING_MESSAGES), timeout=_TIMEOUT_SEC)
        return advisor.name, True, ""
    except TimeoutError:
        return advisor.name, False, f"No reply within {_TIMEOUT_SEC:.0f}s"
    except Exception as exc:
        return advisor.name, False, str(exc)


async def run_health_checks(advisors: list[Advisor]) -> dict[str, tuple[bool, str]]:
    """Ping all advisors in parallel.

    Returns:
        Dict mapping advisor name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(a) for a in advisors))
    for name, ok, err in results:
        if not ok:
            logger.debug("Health check failed for %s: %s", name, err)
    return {name: (ok, err) for name, ok, err in results}
