"""Turn a Decision into the text posted back to the development session."""

import logging
import random
import re

from council.models import Decision, Guidance

logger = logging.getLogger(__name__)

MAX_NEXT_STEPS = 5
DEFAULT_NEXT_STEP = "Proceed with the next step of the current goal."

_STEP_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$")
_SKIP_PREFIXES = ("vote", "reasoning")


def extract_next_steps(decision: Decision, limit: int = MAX_NEXT_STEPS) -> list[str]:
    """Bullet and numbered lines from the approving votes, deduplicated, in roster order."""
    steps: list[str] = []
    for vote in decision.votes:
        if not vote.approved:
            continue
        for line in vote.rationale.splitlines():
            match = _STEP_RE.match(line)
            if not match:
                continue
            step = match.group(1)
            if step.lower().startswith(_SKIP_PREFIXES) or step in steps:
                continue
            steps.append(step)
            if len(steps) >= limit:
                return steps
    return steps or [DEFAULT_NEXT_STEP]


def build_guidance(decision: Decision) -> Guidance:
    return Guidance(
        approved=decision.approved,
        feedback=decision.reasoning,
        next_steps=extract_next_steps(decision),
    )


def format_guidance(guidance: Guidance) -> str:
    steps = "\n".join(f"- {s}" for s in guidance.next_steps)
    return (
        "## Council Guidance\n"
        f"**Approved:** {'Yes' if guidance.approved else 'No'}\n\n"
        f"**Feedback:**\n{guidance.feedback}\n\n"
        f"**Suggested Next Steps:**\n{steps}\n\n"
        "*Please proceed with the next step.*"
    )


def compose_outbound(
    decision: Decision,
    autonomous_guidance: bool,
    fallback_messages: list[str],
    rng: random.Random | None = None,
) -> str | None:
    """Pick the text to post, or None when there is nothing to send.

    Structured guidance only when autonomous guidance is on and the council
    approved; otherwise a random entry from the fallback pool.
    """
    if autonomous_guidance and decision.approved:
        return format_guidance(build_guidance(decision))
    if fallback_messages:
        return (rng or random).choice(fallback_messages)
    return None
