"""Click CLI: loads config and credentials, runs the pipeline, renders and saves the report."""

import asyncio
import logging
import sys
from collections.abc import Mapping
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from consensus.errors import ConfigurationError, PipelineError
from consensus.events import ProgressEvent, StepProgress
from consensus.healthcheck import run_health_checks
from consensus.inbox import archive_file, ensure_dirs, parse_file, scan_inbox
from consensus.output import describe_event, print_report, print_swarm_summary, save_to_file
from consensus.pipeline import STAGES, mode_config_for, required_provider_names, run_pipeline
from consensus.providers.base import ChatProvider
from consensus.providers.openai_compat import build_providers
from consensus.roster import get_roster, resolve_mode

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # openai/httpx log every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _build_mode_providers(config: AppConfig, mode: str) -> dict[str, ChatProvider]:
    """Build the providers a mode needs. Exits with a message on missing keys."""
    try:
        return build_providers(config, required_provider_names(mode, mode_config_for(config, mode)))
    except ConfigurationError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _check_agents(mode: str, providers: Mapping[str, ChatProvider]) -> None:
    """Ping the mode's roster, print results, and ask whether to go on after failures."""
    console.print(f"\n[bold]Checking {mode} agents...[/bold]")
    results = asyncio.run(run_health_checks(get_roster(mode), providers))

    failed: list[str] = []
    for agent_id in sorted(results):
        ok, err = results[agent_id]
        if ok:
            console.print(f"  [green]OK  [/green] {agent_id}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {agent_id}: {short_err}")
            failed.append(agent_id)

    if not failed:
        console.print()
        return

    if len(failed) == len(results):
        console.print("\n[bold red]Error:[/bold red] No agent passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed)} agent(s) failed:[/yellow] {', '.join(failed)}")
    console.print("Failed agents will walk their fallback models during the run.")
    if not click.confirm("Continue?", default=True):
        sys.exit(0)
    console.print()


async def _run_single(
    query: str,
    mode: str,
    config: AppConfig,
    providers: Mapping[str, ChatProvider],
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Run one query through the pipeline and return the saved report path."""
    console.print(f"\n[bold cyan]Consensus[/bold cyan] [{mode}] {len(get_roster(mode))} agents, {len(STAGES)} stages")
    console.print(f"Query: [italic]{query[:80]}{'...' if len(query) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=None)
        labels = {step: label for step, label, _ in STAGES}

        def on_event(event: ProgressEvent) -> None:
            if isinstance(event, StepProgress) and event.percent == 0:
                progress.update(task, description=f"Step {event.step}/{len(STAGES)}: {labels[event.step]}...")
            line = describe_event(event)
            if line:
                progress.print(line)

        result = await run_pipeline(query, mode, on_event, config=config, providers=providers)

    if result.context.swarm is not None:
        print_swarm_summary(result.context.swarm)
    print_report(result)

    saved_path = save_to_file(result, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    config: AppConfig,
    mode_cli: str | None,
    inbox_dir: Path,
    archive_dir: Path,
    output_dir: Path,
) -> None:
    """Process all .md files in the inbox folder.

    Precedence for the mode: CLI flag > frontmatter > config default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        query, mode_meta = parse_file(file_path)
        try:
            mode = resolve_mode(mode_cli or mode_meta or config.defaults.mode)
            providers = build_providers(config, required_provider_names(mode, mode_config_for(config, mode)))
            saved = await _run_single(
                query=query,
                mode=mode,
                config=config,
                providers=providers,
                output_dir=output_dir,
                slug_override=file_path.stem,
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except PipelineError as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command()
@click.argument("query", required=False)
@click.option("--file", "query_file", type=click.Path(exists=True), help="Read the query from a .md file")
@click.option("--mode", default=None, help="standard, deep (alias: thinking) or coder (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the agent connectivity check at startup")
def main(
    query: str | None,
    query_file: str | None,
    mode: str | None,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
) -> None:
    """Consensus -- multi-agent swarm that reconciles model answers into one report.

    \b
    Examples:
      consensus "How do I rotate API keys without downtime?"
      consensus "Compare REST and GraphQL in a table" --mode deep
      consensus --file query.md --mode coder
      consensus --inbox
      consensus --inbox --inbox-dir ./my_queue
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        asyncio.run(
            _run_inbox(
                config=config,
                mode_cli=mode,
                inbox_dir=inbox_dir,
                archive_dir=config.inbox.archive_dir,
                output_dir=effective_output,
            )
        )
        return

    if query_file:
        query_text = Path(query_file).read_text(encoding="utf-8").strip()
    elif query:
        query_text = query
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUERY argument, --file, or --inbox.")
        sys.exit(1)

    try:
        effective_mode = resolve_mode(mode or config.defaults.mode)
    except ConfigurationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    providers = _build_mode_providers(config, effective_mode)

    if not skip_health_check:
        _check_agents(effective_mode, providers)

    try:
        asyncio.run(
            _run_single(
                query=query_text,
                mode=effective_mode,
                config=config,
                providers=providers,
                output_dir=effective_output,
            )
        )
    except PipelineError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
