# display.py
# All terminal output for the OODA harness.
#
# This module owns presentation entirely. harness.py and session.py never
# format strings; they call named functions here. Swap this file to change
# the entire UI.
#
# Colour language:
#   cyan    : scaffolding / round boundaries
#   blue    : model calls and responses
#   magenta : actions and their results
#   yellow  : recoverable problems (parse failures)
#   green   : conclusion
#   red     : failures, halts, internal inconsistencies

import json
from typing import Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ooda_harness.errors import ActionError
from ooda_harness.models import Action, ToolResult, TurnRecord

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ⏎ ")
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Session entry
# ---------------------------------------------------------------------------


def banner(model: str, max_rounds: int, tools: Sequence[str]) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]OODA Harness[/bold cyan]\n"
            "[dim]Observe · Orient · Decide · Act, one Action per round[/dim]\n\n"
            f"[dim]Model      :[/dim] [white]{escape(model)}[/white]\n"
            f"[dim]Max rounds :[/dim] [white]{max_rounds}[/white]\n"
            f"[dim]Tools      :[/dim] [white]{escape(', '.join(tools))}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def question_received(question: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW TASK[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(question)}[/white]",
            title=_label("QUESTION", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Round
# ---------------------------------------------------------------------------


def round_start(round_no: int, max_rounds: int) -> None:
    console.print()
    console.print(Rule(f"[cyan]ROUND {round_no}/{max_rounds}[/cyan]", style="cyan"))


def calling_model() -> None:
    console.print(_label("HARNESS", "cyan"), "[cyan] → Requesting completion…[/cyan]")


def model_response(text: str) -> None:
    console.print(
        Panel(
            f"[white]{escape(text)}[/white]",
            title=_label("MODEL", "blue"),
            border_style="blue",
            padding=(0, 2),
        )
    )


def parse_failed(error: ActionError) -> None:
    console.print(
        Panel(
            f"[bold yellow]{error.reason}[/bold yellow]\n[white]{escape(error.message)}[/white]\n"
            "[dim]Reported back to the model for correction.[/dim]",
            title=_label("ACTION REJECTED", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def action_dispatched(action: Action) -> None:
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{escape(action.command)}[/bold white]"
        f"  [dim]{escape(_mono(json.dumps(action.input, default=str), 160))}[/dim]"
    )


def tool_result(result: ToolResult) -> None:
    if result.ok:
        console.print(
            f"  [magenta]Observe[/magenta]  [white]{escape(_mono(json.dumps(result.payload, default=str), 160))}[/white]"
        )
    else:
        console.print(
            f"  [red]Failed[/red]   [bold]{escape(result.reason or '')}[/bold]"
            f"  [white]{escape(_mono(result.message or '', 140))}[/white]"
        )


def internal_inconsistency(message: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]{escape(message)}[/bold red]\n"
            "[dim]The action passed validation but the registry cannot resolve it. "
            "This is a harness defect, not a model error. Halting.[/dim]",
            title=_label("INTERNAL INCONSISTENCY ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


def budget_exhausted(max_rounds: int) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]No conclusion after {max_rounds} round(s).[/bold red]",
            title=_label("BUDGET EXHAUSTED", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def history_summary(history: Sequence[TurnRecord]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Round", justify="center", width=6)
    table.add_column("Tool", width=18)
    table.add_column("OK", justify="center", width=4)
    table.add_column("Outcome", style="dim white")

    for record in history:
        ok = "[bold green]✓[/bold green]" if record.result.ok else "[bold red]✗[/bold red]"
        outcome = (
            json.dumps(record.result.payload, default=str)
            if record.result.ok
            else f"{record.result.reason}: {record.result.message}"
        )
        table.add_row(str(record.round), escape(record.result.tool), ok, escape(_mono(outcome, 60)))

    console.print(
        Panel(
            table,
            title="[dim]HISTORY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("CONCLUSION", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()
