"""fixladder CLI - inspect how errors would move through the escalation ladder.

All commands call core modules directly; nothing is persisted.

Examples:
    fixladder triage errors.json
    fixladder simulate error.json --task-id task-7 --fail 5
    fixladder simulate error.json --fail 2 --resolve --format json
    fixladder config
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from fixladder.core.config import EscalationConfig, LadderSettings, load_environment
from fixladder.core.escalation import (
    EscalationState,
    create_escalation,
    get_initial_level,
    record_attempt,
    should_immediately_escalate,
)
from fixladder.core.ids import EscalationIdGenerator
from fixladder.core.models import DetectedError
from fixladder.core.reporting import get_escalation_report

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="fixladder",
    help="fixladder: escalation ladder for errors automation could not fix",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def _load_settings() -> LadderSettings:
    try:
        return LadderSettings()
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)


def _build_config(
    max_retries: Optional[int] = None,
    max_total_attempts: Optional[int] = None,
) -> EscalationConfig:
    """Effective config: environment defaults plus command-line overrides."""
    config = _load_settings().to_escalation_config()
    overrides: dict[str, Any] = {}
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if max_total_attempts is not None:
        overrides["max_total_attempts"] = max_total_attempts
    try:
        return config.merged(overrides)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)


def _read_errors(path: Path) -> list[DetectedError]:
    """Read detector output: a list, a single error, or ``{"errors": [...]}``."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] Could not read {path}: {e}")
        raise typer.Exit(1)

    if isinstance(data, dict):
        data = data.get("errors", [data])

    try:
        return [DetectedError.from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError) as e:
        console.print(f"[red]Error:[/red] Invalid error record in {path}: {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure environment and logging for every command."""
    load_environment()
    settings = _load_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def triage(
    errors_file: Path = typer.Argument(..., help="JSON file of detected errors"),
):
    """Show where each error would start on the ladder.

    Example:

        fixladder triage errors.json
    """
    errors = _read_errors(errors_file)
    config = _build_config()

    if not errors:
        console.print("[yellow]No errors found.[/yellow]")
        return

    table = Table(title=f"Triage ({len(errors)} error(s))")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", max_width=40)
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Fixability")
    table.add_column("Start Level", style="magenta")
    table.add_column("Straight to Human")

    for error in errors:
        immediate = should_immediately_escalate(error, config)
        table.add_row(
            escape(error.id),
            escape(error.title),
            error.category.value,
            error.severity.value,
            error.fixability.value,
            get_initial_level(error, config).value,
            "[red]yes[/red]" if immediate else "no",
        )

    console.print(table)


@app.command()
def simulate(
    error_file: Path = typer.Argument(..., help="JSON file with one detected error"),
    task_id: str = typer.Option("task-1", "--task-id", "-t", help="Task the error belongs to"),
    fail: int = typer.Option(5, "--fail", "-n", min=0, help="Number of failing attempts to record"),
    resolve: bool = typer.Option(False, "--resolve", help="Finish with a resolving attempt"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Override max retries"),
    max_total_attempts: Optional[int] = typer.Option(
        None, "--max-total-attempts", help="Override max total attempts"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Walk one error through the ladder with failing attempts.

    Stops early once the escalation is handed to a human.

    Examples:

        fixladder simulate error.json --fail 5

        fixladder simulate error.json --fail 1 --resolve --format json
    """
    errors = _read_errors(error_file)
    if len(errors) != 1:
        console.print(f"[red]Error:[/red] Expected exactly one error, found {len(errors)}")
        raise typer.Exit(1)

    config = _build_config(max_retries, max_total_attempts)
    ids = EscalationIdGenerator()
    state: EscalationState = create_escalation(errors[0], task_id, config, ids=ids)

    for n in range(1, fail + 1):
        if state.is_terminal:
            break
        state = record_attempt(
            state,
            action=f"Attempt {n} at {state.current_level.value}",
            resolved=False,
            result="Error still present",
            duration_ms=0,
            config=config,
            ids=ids,
        )

    if resolve and not state.is_terminal:
        state = record_attempt(
            state,
            action=f"Attempt {state.total_attempts + 1} at {state.current_level.value}",
            resolved=True,
            result="Error fixed",
            duration_ms=0,
            config=config,
            ids=ids,
        )

    if format == "json":
        typer.echo(json.dumps(state.to_dict(), indent=2))
        return

    table = Table(title=f"{escape(state.id)} ({state.status.value})")
    table.add_column("#", style="cyan", no_wrap=True)
    table.add_column("Level", style="magenta")
    table.add_column("Action")
    table.add_column("Outcome")
    for attempt in state.attempts:
        outcome = "[green]RESOLVED[/green]" if attempt.resolved else "[red]FAILED[/red]"
        table.add_row(str(attempt.attempt_number), attempt.level.value, escape(attempt.action), outcome)
    console.print(table)

    console.print(get_escalation_report([state]), markup=False, highlight=False)

    if state.human_ticket:
        ticket = state.human_ticket
        body = "\n\n".join(
            [
                f"[bold]What was tried[/bold]\n{escape(ticket.what_was_tried)}",
                f"[bold]Why automation failed[/bold]\n{escape(ticket.why_auto_failed)}",
                f"[bold]Suggested approach[/bold]\n{escape(ticket.suggested_approach)}",
            ]
        )
        title = f"Human ticket {escape(ticket.id)} ({ticket.urgency.value})"
        console.print(Panel(body, title=title, expand=False))


@app.command("config")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show the effective escalation configuration.

    Values come from FIXLADDER_* environment variables (or .env).
    """
    config = _build_config()

    if format == "json":
        typer.echo(json.dumps(config.model_dump(), indent=2))
        return

    table = Table(title="Escalation Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in config.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)
