"""Rich console output and markdown file save for council decisions."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from council.models import Decision, Opinion, Round, Task

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round_summary(rnd: Round) -> None:
    label = "Initial Opinions" if rnd.kind == "opinion" else "Deliberation"
    console.print(Rule(f"[bold cyan]Round {rnd.number}: {label}[/bold cyan]"))
    for opinion in rnd.opinions:
        console.print(
            Panel(
                _preview(opinion.content),
                title=f"[bold]{opinion.advisor}[/bold]",
                border_style="red" if opinion.failed else "dim",
            )
        )


def print_decision(decision: Decision) -> None:
    """Print the vote table and the reasoning summary."""
    verdict = "[bold green]APPROVED[/bold green]" if decision.approved else "[bold red]REJECTED[/bold red]"
    console.print(Rule(f"Council Decision: {verdict}"))
    console.print(Text(f"Consensus: {decision.consensus:.0%} | Votes: {len(decision.votes)}", style="dim"))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Advisor")
    table.add_column("Vote")
    table.add_column("Rationale")
    for vote in decision.votes:
        table.add_row(
            vote.advisor,
            "[green]APPROVE[/green]" if vote.approved else "[red]REJECT[/red]",
            _preview(vote.rationale, words=30),
        )
    console.print(table)
    console.print(Markdown(decision.reasoning))


def _opinion_block(opinion: Opinion) -> list[str]:
    lines = [f"### {opinion.advisor}", "", opinion.content, ""]
    if opinion.failed:
        lines.insert(1, "*(advisor call failed)*")
    return lines


def save_to_file(task: Task, decision: Decision, output_dir: Path) -> Path:
    """Save the full debate transcript and decision as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(task.description) or _slug(task.id)}.md"

    lines: list[str] = [
        f"# Council Debate: {task.description[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Task ID:** {task.id}",
        f"**Files:** {', '.join(task.files) if task.files else '(none)'}",
        f"**Decision:** {'APPROVED' if decision.approved else 'REJECTED'}",
        f"**Consensus:** {decision.consensus:.0%}",
        "",
        "---",
        "",
    ]

    for rnd in decision.rounds:
        label = "Initial Opinions" if rnd.kind == "opinion" else "Deliberation"
        lines.append(f"## Round {rnd.number}: {label}")
        lines.append("")
        for opinion in rnd.opinions:
            lines += _opinion_block(opinion)

    lines += ["## Final Votes", ""]
    for vote in decision.votes:
        lines.append(f"### {vote.advisor}: {'APPROVE' if vote.approved else 'REJECT'}")
        lines.append("")
        lines.append(vote.rationale)
        lines.append("")

    lines += ["## Summary", "", decision.reasoning, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
