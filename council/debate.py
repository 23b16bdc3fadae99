"""Debate orchestration: opinion round, deliberation rounds, final vote, tally."""

import asyncio
import logging
from collections.abc import Callable

from config.config_loader import PromptsConfig
from council.models import Decision, Message, Opinion, Round, Task, Vote
from council.providers.base import Advisor, AdvisorError
from council.registry import AdvisorRegistry
from council.vote import failed_vote, interpret_vote

logger = logging.getLogger(__name__)

UNAVAILABLE_OPINION = "[Unable to provide opinion]"
REASONING_EXCERPT_CHARS = 200


class NoAdvisorsAvailable(Exception):
    """Raised when a debate starts with an empty roster."""


def format_task(task: Task, prompts: PromptsConfig) -> str:
    files = "\n".join(task.files) if task.files else "(none)"
    return prompts.opinion.format(
        task_id=task.id,
        description=task.description,
        context=task.context or "(no additional context)",
        files=files,
    ).strip()


def _format_round(rnd: Round) -> str:
    header = "**Initial Opinions:**" if rnd.kind == "opinion" else f"**Round {rnd.number} Opinions:**"
    entries = [f"**{o.advisor}**: {o.content}" for o in rnd.opinions]
    return header + "\n" + "\n\n".join(entries)


def build_transcript(task_text: str, rounds: list[Round]) -> str:
    """Task text followed by every completed round, labelled by round and advisor."""
    return "\n\n".join([task_text] + [_format_round(r) for r in rounds])


async def _call_advisor(advisor: Advisor, prompt: str, stage: str) -> str | AdvisorError:
    """Call a single advisor with one user message.

    Never raises; returns AdvisorError on failure.
    """
    try:
        return await advisor.chat([Message("user", prompt)])
    except AdvisorError as exc:
        logger.warning("Advisor %s failed during %s: %s", advisor.name, stage, exc)
        return exc
    except Exception as exc:
        err = AdvisorError(advisor.name, f"Unexpected error: {exc}")
        logger.warning("Advisor %s unexpected failure during %s: %s", advisor.name, stage, exc)
        return err


async def _gather(advisors: list[Advisor], prompt: str, stage: str) -> list[str | AdvisorError]:
    # gather keeps roster order regardless of completion order
    return await asyncio.gather(*(_call_advisor(a, prompt, stage) for a in advisors))


def summarize_votes(votes: list[Vote], approved: bool) -> str:
    approvals = sum(1 for v in votes if v.approved)
    rejections = len(votes) - approvals
    verdict = (
        f"the council has reached consensus to APPROVE this task ({approvals} approvals, {rejections} rejections)."
        if approved
        else f"the council has decided to REJECT this task ({approvals} approvals, {rejections} rejections)."
    )
    lines = [f"After {len(votes)} supervisor votes, {verdict}", "", "Key points from the debate:"]
    for vote in votes:
        excerpt = vote.rationale[:REASONING_EXCERPT_CHARS]
        if len(vote.rationale) > REASONING_EXCERPT_CHARS:
            excerpt += "..."
        lines.append(f"- {vote.advisor}: {excerpt}")
    return "\n".join(lines)


async def run_debate(
    task: Task,
    registry: AdvisorRegistry,
    prompts: PromptsConfig | None = None,
    num_rounds: int = 2,
    threshold: float = 0.5,
    on_round_complete: Callable[[Round], None] | None = None,
) -> Decision:
    """Run the full debate over the advisors available right now.

    Args:
        task: The task under review.
        registry: Roster source; availability is snapshotted once at start.
        prompts: Prompt templates (defaults when None).
        num_rounds: Opinion round plus deliberation rounds (>= 1).
        threshold: Consensus ratio needed to approve, in [0, 1].
        on_round_complete: Optional callback invoked after each discussion round.

    Returns:
        Decision with exactly one Vote per advisor in the roster.

    Raises:
        NoAdvisorsAvailable: If no advisor is available at debate start.
        ValueError: On an out-of-range threshold or round count.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")
    if num_rounds < 1:
        raise ValueError(f"num_rounds must be >= 1, got {num_rounds}")
    prompts = prompts or PromptsConfig()

    roster = registry.available()
    if not roster:
        raise NoAdvisorsAvailable("No advisors are available")

    logger.info("Debate %s starting with %d advisors, %d rounds", task.id, len(roster), num_rounds)
    task_text = format_task(task, prompts)
    rounds: list[Round] = []

    # Round 1: independent opinions
    results = await _gather(roster, task_text, "round 1")
    opening = Round(number=1, kind="opinion")
    for advisor, result in zip(roster, results):
        if isinstance(result, str):
            opening.opinions.append(Opinion(advisor.name, result))
        else:
            opening.opinions.append(Opinion(advisor.name, UNAVAILABLE_OPINION, failed=True))
    rounds.append(opening)
    logger.info(
        "Round 1 complete: %d/%d advisors responded",
        sum(1 for o in opening.opinions if not o.failed),
        len(roster),
    )
    if on_round_complete:
        on_round_complete(opening)

    # Rounds 2..R: deliberation over everything said in previous rounds
    for round_num in range(2, num_rounds + 1):
        prompt = prompts.deliberation.format(transcript=build_transcript(task_text, rounds))
        results = await _gather(roster, prompt, f"round {round_num}")
        current = Round(number=round_num, kind="deliberation")
        for advisor, result in zip(roster, results):
            if isinstance(result, str):
                current.opinions.append(Opinion(advisor.name, result))
        rounds.append(current)
        logger.info(
            "Round %d complete: %d/%d advisors responded",
            round_num,
            len(current.opinions),
            len(roster),
        )
        if on_round_complete:
            on_round_complete(current)

    # Final vote
    prompt = prompts.final_vote.format(transcript=build_transcript(task_text, rounds))
    results = await _gather(roster, prompt, "final vote")
    votes: list[Vote] = []
    for advisor, result in zip(roster, results):
        vote = interpret_vote(advisor.name, result) if isinstance(result, str) else failed_vote(advisor.name)
        votes.append(vote)
        logger.info("%s: %s", advisor.name, "APPROVED" if vote.approved else "REJECTED")

    # Tally over cast votes only
    approvals = sum(1 for v in votes if v.approved)
    consensus = approvals / len(votes)
    approved = consensus >= threshold

    logger.info(
        "Voting results: %d/%d approved (%.0f%%), decision: %s",
        approvals,
        len(votes),
        consensus * 100,
        "APPROVED" if approved else "REJECTED",
    )

    return Decision(
        approved=approved,
        consensus=consensus,
        votes=votes,
        reasoning=summarize_votes(votes, approved),
        rounds=rounds,
    )
