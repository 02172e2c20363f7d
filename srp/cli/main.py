"""
srp - self-paced chemistry practice in the terminal.

Usage:
    srp run -s 12345678 -w 6        # Practice week 6
    srp run -s 12345678 -w 12 --reattempt
    srp status -s 12345678 -w 6     # Has week 6 already been submitted?
    srp submit                      # Retry uploads that did not go through
    srp items                       # Check the item file
    srp weeks                       # Show configured weeks and topics
    srp serve                       # Run the results ingest service
"""

from __future__ import annotations

import asyncio
import platform
import sys
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import Settings, get_settings
from srp import __version__
from srp.cli.runner import ConsoleRunner, summary_table
from srp.practice.errors import LoadError, SubmissionError, ValidationError
from srp.practice.items import load_pool_from_source
from srp.practice.session import SessionController
from srp.results.pending import PendingResults
from srp.results.schemas import (
    ALREADY_EXISTS,
    DeviceInfo,
    ResultDocument,
    StatusProbe,
    SubmitOutcome,
)
from srp.results.sink import ResultSink, build_sink

app = typer.Typer(
    name="srp",
    help="Self-paced chemistry retrieval practice",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Debug logging")
    ] = False,
) -> None:
    """Self-paced chemistry retrieval practice."""
    _configure_logging("DEBUG" if verbose else get_settings().log_level)


async def _close(sink: ResultSink) -> None:
    close = getattr(sink, "close", None)
    if close is not None:
        await close()


async def _probe(settings: Settings, student: str, week: int) -> StatusProbe:
    sink = build_sink(settings)
    try:
        return await sink.exists(student, week)
    finally:
        await _close(sink)


def _device_info() -> DeviceInfo:
    return DeviceInfo(
        w=console.size.width,
        h=console.size.height,
        ua=f"srp-cli/{__version__} ({platform.system()}; Python {platform.python_version()})",
    )


# =============================================================================
# Practice
# =============================================================================


@app.command()
def run(
    student: Annotated[
        str, typer.Option("--student", "-s", prompt="Student number", help="8-digit student number")
    ],
    week: Annotated[
        int, typer.Option("--week", "-w", prompt="Week", help="Course week")
    ],
    items: Annotated[
        str | None, typer.Option("--items", "-i", help="Item CSV path or URL")
    ] = None,
    reattempt: Annotated[
        bool, typer.Option("--reattempt", help="Store as a separate reattempt")
    ] = False,
    estimate: Annotated[
        bool, typer.Option("--estimate", help="Ask for a predicted score before each topic")
    ] = False,
    seed: Annotated[
        int | None, typer.Option("--seed", help="Fix the presentation order")
    ] = None,
) -> None:
    """
    Run a practice session for one week.

    Items are presented once in random order, then missed items come back
    until every item has been answered correctly.
    """
    settings = get_settings()
    source = items or settings.item_source

    try:
        pool = asyncio.run(load_pool_from_source(source, timeout=settings.request_timeout_seconds))
    except LoadError as e:
        console.print(f"[red]Could not load items: {e}[/]")
        raise typer.Exit(1)

    controller = SessionController(pool, settings, seed=seed)
    try:
        controller.start(student, week, reattempt=reattempt, device=_device_info())
    except ValidationError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(2)

    probe = asyncio.run(_probe(settings, student.strip(), week))
    if probe.exists and not reattempt:
        console.print(
            f"[yellow]A week {week} submission already exists"
            f"{f' (completed {probe.completed_at})' if probe.completed_at else ''}. "
            "Use --reattempt to store this run separately.[/]"
        )

    console.print(Panel(
        f"[bold cyan]WEEK {week} PRACTICE[/]\n"
        f"Student: {student.strip()}\n"
        f"Topics: {', '.join(settings.topic_label(t) for t in settings.topics_for_week(week))}",
        border_style="cyan",
    ))

    runner = ConsoleRunner(controller, console, settings.feedback_ms, ask_estimate=estimate)
    try:
        summary = runner.run()
    except (KeyboardInterrupt, EOFError):
        controller.reset()
        console.print("\n\n[yellow]Session reset. Nothing was saved.[/yellow]")
        raise typer.Exit(130)

    console.print(summary_table(summary))
    if summary.skipped_topics:
        console.print(f"[dim]Skipped (no items): {', '.join(summary.skipped_topics)}[/dim]")
    if summary.total_trials == 0:
        console.print(f"[yellow]No items are available for week {week}; nothing to submit.[/yellow]")
        return

    document = controller.build_document()
    pending = PendingResults(settings.pending_dir)
    try:
        outcome = asyncio.run(_deliver(pending, document, build_sink(settings)))
    except SubmissionError as e:
        console.print(f"[red]{e}[/]")
        console.print("[yellow]Results kept locally. Run 'srp submit' to retry.[/yellow]")
        raise typer.Exit(1)

    _print_outcome(outcome)


async def _deliver(pending: PendingResults, document: ResultDocument, sink: ResultSink) -> SubmitOutcome:
    try:
        return await pending.deliver(document, sink)
    finally:
        await _close(sink)


def _print_outcome(outcome: SubmitOutcome) -> None:
    if outcome.accepted:
        console.print(f"[green]✓ Results uploaded ({outcome.key})[/green]")
    elif outcome.reason == ALREADY_EXISTS:
        console.print(
            "[yellow]Results for this week were already submitted; the first submission was kept.[/yellow]"
        )
    else:
        console.print(f"[red]Upload rejected: {outcome.reason}[/red]")


# =============================================================================
# Results
# =============================================================================


@app.command()
def status(
    student: Annotated[str, typer.Option("--student", "-s", help="8-digit student number")],
    week: Annotated[int, typer.Option("--week", "-w", help="Course week")],
) -> None:
    """Check whether results for a week have already been stored."""
    probe = asyncio.run(_probe(get_settings(), student.strip(), week))
    if not probe.known:
        console.print("[yellow]Result store unreachable; status unknown.[/yellow]")
    elif probe.exists:
        console.print(f"[green]Submitted[/green] (completed {probe.completed_at or 'unknown'})")
    else:
        console.print("[dim]No submission yet.[/dim]")


@app.command()
def submit() -> None:
    """Resubmit results that were kept locally after a failed upload."""
    settings = get_settings()
    pending = PendingResults(settings.pending_dir)
    if not pending.list_pending():
        console.print("[dim]Nothing to submit.[/dim]")
        return

    sink = build_sink(settings)

    async def _flush():
        try:
            return await pending.flush(sink)
        finally:
            await _close(sink)

    results = asyncio.run(_flush())
    table = Table(title="Resubmission")
    table.add_column("Student", style="cyan")
    table.add_column("Week", justify="right")
    table.add_column("Result")
    for result in results:
        if result.error:
            outcome = f"[red]failed: {result.error}[/red]"
        elif result.outcome and result.outcome.accepted:
            outcome = "[green]uploaded[/green]"
        else:
            outcome = "[yellow]already stored[/yellow]"
        table.add_row(result.document.student_number, str(result.document.week), outcome)
    console.print(table)

    if any(result.error for result in results):
        raise typer.Exit(1)


# =============================================================================
# Content & configuration
# =============================================================================


@app.command("items")
def check_items(
    items: Annotated[
        str | None, typer.Option("--items", "-i", help="Item CSV path or URL")
    ] = None,
) -> None:
    """Load the item file and show item counts per topic and week."""
    settings = get_settings()
    try:
        pool = asyncio.run(load_pool_from_source(items or settings.item_source,
                                                 timeout=settings.request_timeout_seconds))
    except LoadError as e:
        console.print(f"[red]Could not load items: {e}[/]")
        raise typer.Exit(1)

    table = Table(title="Item Pool")
    table.add_column("Topic", style="cyan")
    table.add_column("Week", justify="right")
    table.add_column("Items", style="green", justify="right")
    for (topic, week), count in pool.counts().items():
        table.add_row(topic, str(week), str(count))
    console.print(table)


@app.command()
def weeks() -> None:
    """Show configured weeks, their topics and mastery goals."""
    settings = get_settings()
    table = Table(title="Weeks")
    table.add_column("Week", justify="right", style="cyan")
    table.add_column("Topics")
    table.add_column("Mastery goal")
    for week in sorted(settings.week_topics):
        topics = settings.topics_for_week(week)
        table.add_row(
            str(week),
            ", ".join(settings.topic_label(t) for t in topics),
            ", ".join(str(settings.mastery_goal(t, week)) for t in topics),
        )
    console.print(table)


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port")] = None,
) -> None:
    """Run the results ingest service."""
    import uvicorn

    settings: Settings = get_settings()
    uvicorn.run(
        "srp.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


def run_cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run_cli()
