"""Typer-based CLI for backupwarden."""

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import WardenConfig
from .errors import EventStoreError
from .events import JsonlEventStore
from .ledger import load_run, read_ledger_tail
from .models.events import Verdict
from .models.steps import StepStatus
from .paths import StatePaths
from .workflows import run_backup, run_health_check

app = typer.Typer(
    name="backupwarden",
    help="backupwarden - offline-volume backups and backup health reports",
    add_completion=False,
)

console = Console()

CONFIG_OPTION_HELP = "Path to config.toml (default: BACKUPWARDEN_CONFIG or .backupwarden/config.toml)"


@app.callback()
def main_callback(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_path: str | None) -> WardenConfig:
    try:
        return WardenConfig.from_env(config_path)
    except ValueError as e:
        console.print(f"[red]Error: Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)


_STATUS_STYLE = {
    StepStatus.COMPLETE: "green",
    StepStatus.FAILED: "red",
    StepStatus.PENDING: "yellow",
}


def _print_steps(title: str, records) -> None:
    table = Table(title=title)
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Timestamp (UTC)", no_wrap=True)
    table.add_column("Detail", style="dim")

    for record in records:
        style = _STATUS_STYLE.get(record.status, "white")
        table.add_row(
            record.name,
            f"[{style}]{record.status.value}[/{style}]",
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.detail or "-",
        )

    console.print(table)


@app.command()
def backup(
    config_path: str = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
):
    """Mount the offline volume, run the image backup, unmount, and notify.

    Exit codes: 0 success, 1 backup failed, 2 backup succeeded but the
    notification was not delivered.
    """
    config = _load_config(config_path)

    try:
        summary = run_backup(config)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    except OSError as e:
        console.print(f"[red]Error: State directory unusable: {e}[/red]")
        raise typer.Exit(code=1)

    result = summary.result
    _print_steps(f"Backup run {result.run_id}", result.ledger)

    if summary.delivered:
        console.print("[dim]Notification sent[/dim]")
    else:
        console.print(f"[yellow]Notification not delivered: {summary.notification_error}[/yellow]")
        console.print(f"[dim]Run log: {StatePaths.from_config(config).ledger_file}[/dim]")

    if not result.succeeded:
        failing = result.failing_step
        console.print(f"[bold red]Backup failed[/bold red] at {failing.name if failing else '?'}")
        raise typer.Exit(code=1)

    console.print("[bold green]Backup complete[/bold green]")
    if not summary.delivered:
        raise typer.Exit(code=2)


@app.command()
def health(
    config_path: str = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    events_file: str = typer.Option(
        None,
        "--events-file",
        help="Read exported event records (JSONL) instead of the local event log",
    ),
):
    """Audit recent backup events and email the health report.

    Exits 1 when the report is degraded or the event log cannot be read.
    """
    config = _load_config(config_path)
    store = JsonlEventStore(Path(events_file)) if events_file else None

    try:
        report, delivered = run_health_check(config, store=store)
    except EventStoreError as e:
        console.print(f"[red]Error: Could not read backup events: {e}[/red]")
        raise typer.Exit(code=1)
    except OSError as e:
        console.print(f"[red]Error: State directory unusable: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"{report.provider_name} - last {config.health.window_hours}h")
    table.add_column("TimeCreated (UTC)", style="cyan", no_wrap=True)
    table.add_column("Id", style="yellow")
    table.add_column("Level", style="magenta")
    table.add_column("Message", style="dim")
    for record in (*report.error_records, *report.informational_records):
        message = record.message
        if len(message) > 80:
            message = message[:77] + "..."
        table.add_row(
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(record.id),
            record.severity.value,
            message,
        )
    console.print(table)

    if not delivered:
        console.print("[yellow]Health report not delivered[/yellow]")

    if report.verdict is Verdict.DEGRADED:
        console.print(f"[bold red]Degraded:[/bold red] {len(report.error_records)} problem event(s)")
        raise typer.Exit(code=1)
    console.print("[bold green]Healthy[/bold green]")


ledger_app = typer.Typer(help="Run log commands")
app.add_typer(ledger_app, name="ledger")


@ledger_app.command("tail")
def ledger_tail(
    n: int = typer.Option(20, "--n", help="Number of recent events to display"),
    full: bool = typer.Option(False, "--full", help="Show full payloads with JSON pretty-print"),
    config_path: str = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
):
    """Display the last N events from the run log."""
    config = _load_config(config_path)
    paths = StatePaths.from_config(config)

    events = read_ledger_tail(paths.ledger_file, n=n)
    if not events:
        console.print("[dim]No events in run log[/dim]")
        return

    if full:
        console.print(f"[bold]Last {len(events)} Run Log Event(s)[/bold]\n")
        for i, event in enumerate(events, 1):
            console.print(f"[cyan]Event {i}/{len(events)}[/cyan]")
            console.print(f"  [dim]Run ID:[/dim]      {event.run_id}")
            console.print(f"  [dim]Timestamp:[/dim]   {event.ts.strftime('%Y-%m-%d %H:%M:%S')} UTC")
            console.print(f"  [dim]Event Type:[/dim]  [magenta]{event.event_type}[/magenta]")
            console.print("  [dim]Payload:[/dim]")
            for line in json.dumps(event.payload, indent=2).split("\n"):
                console.print(f"    {line}")
            console.print()
        return

    table = Table(title=f"Last {len(events)} Run Log Event(s)")
    table.add_column("Timestamp (UTC)", style="cyan", no_wrap=True)
    table.add_column("Run", style="yellow")
    table.add_column("Event Type", style="magenta")
    table.add_column("Payload", style="dim")

    for event in events:
        payload_str = str(event.payload)
        if len(payload_str) > 60:
            payload_str = payload_str[:57] + "..."
        table.add_row(
            event.ts.strftime("%Y-%m-%d %H:%M:%S"),
            event.run_id[:8] + "...",
            event.event_type,
            payload_str,
        )

    console.print(table)


@ledger_app.command("show")
def ledger_show(
    run_id: str = typer.Argument(..., help="Run ID from the notification or ledger tail"),
    config_path: str = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
):
    """Show the step ledger of one backup run."""
    config = _load_config(config_path)
    records = load_run(StatePaths.from_config(config).ledger_file, run_id)
    if not records:
        console.print(f"[yellow]No steps recorded for run {run_id}[/yellow]")
        raise typer.Exit(code=1)
    _print_steps(f"Backup run {run_id}", records)


@app.command("config")
def show_config(
    config_path: str = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
):
    """Print the effective configuration as TOML."""
    config = _load_config(config_path)
    console.print(config.to_toml_str(), markup=False, highlight=False)


@app.command()
def version():
    """Show backupwarden version."""
    from . import __version__
    console.print(f"backupwarden v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
