"""Click CLI: config loading, manual debates, roster status, and the session watcher."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config, write_default_config
from council.debate import NoAdvisorsAvailable, run_debate
from council.healthcheck import run_health_checks
from council.models import Round, Task
from council.orchestrator import Orchestrator
from council.output import print_decision, print_round_summary, save_to_file
from council.registry import AdvisorRegistry
from council.tasks import load_task_file, task_from_topic

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load(config_path: str | None) -> AppConfig:
    try:
        return load_config(Path(config_path) if config_path else None)
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        console.print("Run [bold]council init[/bold] to create a default settings file.")
        sys.exit(1)
    except ValueError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _resolve_task(topic: str | None, task_file: str | None) -> Task:
    if task_file:
        return load_task_file(Path(task_file))
    if topic:
        return task_from_topic(topic)
    console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
    sys.exit(1)


async def _run_debate(
    task: Task,
    registry: AdvisorRegistry,
    config: AppConfig,
    rounds: int,
    threshold: float,
    output_dir: Path | None,
) -> bool:
    names = [a.name for a in registry.available()]
    console.print(f"\n[bold cyan]Council[/bold cyan]: {len(names)} advisors, {rounds} rounds, threshold {threshold:.0%}")
    console.print(f"Advisors: {', '.join(names) or 'none'}")
    console.print(f"Task: [italic]{task.description[:80]}{'...' if len(task.description) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_round_complete(rnd: Round) -> None:
            ok = sum(1 for o in rnd.opinions if not o.failed)
            progress.print(f"[green]OK[/green] Round {rnd.number} complete ({ok} responses)")

        progress.add_task("Council is debating...", total=None)
        decision = await run_debate(
            task,
            registry,
            prompts=config.prompts,
            num_rounds=rounds,
            threshold=threshold,
            on_round_complete=on_round_complete,
        )

    for rnd in decision.rounds:
        print_round_summary(rnd)
    print_decision(decision)

    if output_dir is not None:
        saved = save_to_file(task, decision, output_dir)
        console.print(f"\n[dim]Saved to: {saved}[/dim]")
    return decision.approved


async def _watch(config: AppConfig, url: str, path: str, guidance: bool | None) -> None:
    orchestrator = Orchestrator(config)
    state = orchestrator.add_session(path, base_url=url, autonomous_guidance=guidance)
    await orchestrator.start_session(state.id)
    orchestrator.start()
    console.print(f"Council is watching {url} (Press Ctrl+C to stop)")
    try:
        await asyncio.Event().wait()
    finally:
        await orchestrator.shutdown()


@click.group()
@click.option("--config", "config_path", default=None, type=click.Path(), help="Settings file (default: config/settings.yaml)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Autopilot Council -- multi-advisor review and guidance for development sessions.

    \b
    Examples:
      council debate "Should we split the payments module?"
      council debate --file task.md --rounds 3 --output ./debates
      council status --ping
      council watch --url http://localhost:4096
    """
    load_dotenv()
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("topic", required=False)
@click.option("--file", "task_file", type=click.Path(exists=True), help="Read the task from a .md file with optional frontmatter")
@click.option("--rounds", default=None, type=int, help="Debate rounds (default: from config)")
@click.option("--threshold", default=None, type=float, help="Consensus threshold in [0, 1] (default: from config)")
@click.option("--output", "output_path", default=None, help="Save the transcript to this directory")
@click.pass_context
def debate(
    ctx: click.Context,
    topic: str | None,
    task_file: str | None,
    rounds: int | None,
    threshold: float | None,
    output_path: str | None,
) -> None:
    """Run one council debate on TOPIC or a task file."""
    config = _load(ctx.obj["config_path"])
    registry = AdvisorRegistry.from_configs(config.advisors)

    effective_rounds = rounds if rounds is not None else config.council.debate_rounds
    effective_threshold = threshold if threshold is not None else config.council.consensus_threshold

    try:
        task = _resolve_task(topic, task_file)
        approved = asyncio.run(
            _run_debate(
                task,
                registry,
                config,
                effective_rounds,
                effective_threshold,
                Path(output_path) if output_path else None,
            )
        )
    except NoAdvisorsAvailable:
        console.print("[bold red]Error:[/bold red] No advisors available. Check API keys in .env.")
        sys.exit(1)
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    sys.exit(0 if approved else 2)


@main.command()
@click.option("--ping", is_flag=True, default=False, help="Also call every available advisor once")
@click.pass_context
def status(ctx: click.Context, ping: bool) -> None:
    """Show the configured roster and which advisors can take part."""
    config = _load(ctx.obj["config_path"])
    registry = AdvisorRegistry.from_configs(config.advisors)
    available = {a.name for a in registry.available()}

    for advisor in registry.all():
        mark = "[green]READY[/green]" if advisor.name in available else "[yellow]NO KEY[/yellow]"
        console.print(f"  {mark} {advisor.name} ({advisor.provider}: {advisor.model})")

    if ping and available:
        console.print("\n[bold]Checking advisors...[/bold]")
        results = asyncio.run(run_health_checks(registry.available()))
        for name in sorted(results):
            ok, err = results[name]
            if ok:
                console.print(f"  [green]OK  [/green] {name}")
            else:
                short_err = err.splitlines()[0][:120] if err else "unknown error"
                console.print(f"  [red]FAIL[/red] {name}: {short_err}")


@main.command()
@click.option("--url", default="http://localhost:4096", help="OpenCode server URL")
@click.option("--path", "repo_path", default=".", help="Repository the session works on (for logs)")
@click.option("--guidance/--no-guidance", default=None, help="Override autonomous guidance mode")
@click.pass_context
def watch(ctx: click.Context, url: str, repo_path: str, guidance: bool | None) -> None:
    """Watch a development session and post council guidance after each AI turn."""
    config = _load(ctx.obj["config_path"])
    try:
        asyncio.run(_watch(config, url, repo_path, guidance))
    except KeyboardInterrupt:
        console.print("\nStopped.")


@main.command()
@click.argument("path", required=False, default="config/settings.yaml")
def init(path: str) -> None:
    """Write a default settings file to PATH."""
    try:
        created = write_default_config(Path(path))
    except FileExistsError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    console.print(f"Created default council configuration at {created}")
    console.print("Set API keys in .env: OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY, ...")


if __name__ == "__main__":
    main()
