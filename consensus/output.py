"""Rich console output and markdown file save for pipeline results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from consensus.events import AgentFinish, AgentStart, LogEvent, ProgressEvent, StepProgress
from consensus.models import PipelineResult, SwarmResult
from consensus.pipeline import STAGES

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STAGE_LABELS = {step: label for step, label, _ in STAGES}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def describe_event(event: ProgressEvent) -> str | None:
    """One console line per event, or None for events not worth printing."""
    label = _STAGE_LABELS.get(event.step, f"Step {event.step}")
    if isinstance(event, AgentStart):
        return f"[dim]{label}[/dim] {event.agent_name} -> {event.model}"
    if isinstance(event, AgentFinish):
        if event.error:
            return f"[red]FAIL[/red] {event.agent_name} ({event.duration}): {event.error}"
        return f"[green]OK  [/green] {event.agent_name} ({event.model}, {event.duration})"
    if isinstance(event, StepProgress):
        return f"[green]OK[/green] {label} complete" if event.percent == 100 and event.step != 1 else None
    if isinstance(event, LogEvent):
        return f"[dim]{label}: {event.message}[/dim]"
    return None


def print_swarm_summary(swarm: SwarmResult) -> None:
    """Print one row per agent with the model used, status and duration."""
    console.print(Rule(f"[bold cyan]Swarm ({swarm.mode})[/bold cyan]"))
    table = Table(show_header=True, header_style="bold")
    table.add_column("Agent")
    table.add_column("Model")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    for execution in swarm.executions:
        status = "[green]completed[/green]" if execution.ok else f"[red]failed[/red] {execution.error or ''}"
        table.add_row(execution.agent_name, execution.model_used, status, f"{execution.duration_ms / 1000:.1f}s")
    console.print(table)


def print_report(result: PipelineResult) -> None:
    """Print the final answer to the console using Rich markdown."""
    console.print(Rule("[bold green]Consensus Report[/bold green]"))
    report = result.context.report
    writer = report.model if report and report.model else "guarded draft (writer unavailable)"
    console.print(
        Text(
            f"Mode: {result.mode} | Duration: {result.duration_sec:.1f}s | Written by: {writer}",
            style="dim",
        )
    )
    console.print(Markdown(result.answer))


def save_to_file(result: PipelineResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the report plus a run summary as a markdown file.

    Args:
        result: The completed PipelineResult.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the query text. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.query)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    ctx = result.context
    swarm = ctx.swarm
    executions = swarm.executions if swarm else ()
    successful = [e for e in executions if e.ok]
    guard = ctx.guard

    lines: list[str] = [
        f"# Consensus Report: {result.query[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {result.mode}",
        f"**Agents:** {len(successful)}/{len(executions)} usable",
        f"**Facts:** {len(ctx.facts or ())} extracted, {len(ctx.logic.accepted) if ctx.logic else 0} accepted",
        f"**Duration:** {result.duration_sec:.1f}s",
    ]
    if guard is not None:
        flags = ", ".join(f.kind for f in guard.flags) or "none"
        lines.append(f"**Guard:** risk {guard.risk:.2f}, flags: {flags}")
    lines += ["", "---", "", result.answer, "", "---", "", "## Swarm", ""]

    for execution in executions:
        line = f"- **{execution.agent_name}** ({execution.model_used}): {execution.status}, {execution.duration_ms / 1000:.1f}s"
        if execution.error:
            line += f" ({execution.error})"
        lines.append(line)
    lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
