"""
Terminal presentation for a practice session.

Renders topic intros, items and feedback with Rich, reads answers, and
feeds them to the SessionController. All grading and sequencing
decisions stay in the controller.
"""

from __future__ import annotations

import time

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from srp.practice.errors import ValidationError
from srp.practice.items import Item, QuestionType
from srp.practice.scheduler import Effect, RunState, TopicRun, run_progress
from srp.practice.session import SessionController, SessionSummary


class ConsoleRunner:
    """Runs a started session to completion in the terminal."""

    def __init__(
        self,
        controller: SessionController,
        console: Console,
        feedback_ms: int = 0,
        ask_estimate: bool = False,
    ):
        self.controller = controller
        self.console = console
        self.feedback_ms = feedback_ms
        self.ask_estimate = ask_estimate

    def run(self) -> SessionSummary:
        """Work through every topic; returns the final summary."""
        while True:
            step = self.controller.advance()
            if isinstance(step, SessionSummary):
                return step
            self._run_topic(step)

    def _run_topic(self, run: TopicRun) -> None:
        settings = self.controller.settings
        self.console.print(Panel(
            self.controller.topic_intro(run.topic),
            title=f"[bold cyan]{settings.topic_label(run.topic)}[/]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))
        Prompt.ask("[dim]Press Enter to begin[/dim]", default="", show_default=False)

        if self.ask_estimate:
            self._ask_estimate(len(run.items))

        while True:
            item = self.controller.current_item()
            if item is None:
                break
            self._present(item)
            started = time.monotonic()
            raw = Prompt.ask("[bold]Answer[/bold]", default="", show_default=False)
            effect = self.controller.submit(raw, _elapsed_ms(started), item_id=item.id)
            self._feedback(effect)

    def _ask_estimate(self, item_count: int) -> None:
        started = time.monotonic()
        while True:
            predicted = IntPrompt.ask(
                f"How many of the {item_count} items do you expect to get right first time?"
            )
            try:
                self.controller.record_estimate(predicted, _elapsed_ms(started))
                return
            except ValidationError as e:
                self.console.print(f"[yellow]{e}[/yellow]")

    def _present(self, item: Item) -> None:
        run = self.controller.session.run
        progress = run_progress(run)
        phase = "First pass" if run.state is RunState.FIRST_PASS else f"Mastery round {run.attempt_number - 1}"
        body = escape(item.prompt or item.id)
        if item.question_type is QuestionType.FILL_BLANK and item.template:
            body = f"{body}\n\n[yellow]{escape(item.template)}[/yellow]"
        self.console.print(Panel(
            body,
            title=f"[bold cyan]{phase}[/] [dim]{progress['retired']}/{progress['total']} mastered[/]",
            border_style="blue",
        ))

    def _feedback(self, effect: Effect) -> None:
        if effect.correct:
            self.console.print("[bold green]Correct![/bold green]")
        else:
            self.console.print(
                f"[bold red]Incorrect.[/bold red] Correct answer: [green]{escape(effect.canonical_answer)}[/green]"
            )
        if effect.new_sweep:
            self.console.print("[dim]Starting another round with the items still to master...[/dim]")
        if self.feedback_ms:
            time.sleep(self.feedback_ms / 1000.0)


def _elapsed_ms(started: float) -> int:
    return max(0, round((time.monotonic() - started) * 1000))


def summary_table(summary: SessionSummary) -> Table:
    table = Table(title="Session Summary")
    table.add_column("Topic", style="cyan")
    table.add_column("Trials", justify="right")
    table.add_column("Correct", style="green", justify="right")
    for topic, stats in summary.per_topic.items():
        table.add_row(topic, str(stats["trials"]), str(stats["correct"]))
    table.add_row("[bold]Total[/bold]", str(summary.graded_trials), str(summary.correct))
    return table
