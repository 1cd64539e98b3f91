"""``loadweave run`` — execute a simulation file with live terminal output."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from loadweave._internal.config import load_config
from loadweave._internal.errors import LoadWeaveError
from loadweave.dsl.loader import load_simulation
from loadweave.engine.runner import run_simulation
from loadweave.injection.ramp import RampUsers

if TYPE_CHECKING:
    from loadweave.dsl.scenario import Simulation
    from loadweave.metrics.models import IntervalSnapshot, RunResult

console = Console(stderr=True)


def _apply_overrides(
    simulation: Simulation,
    users: int | None,
    ramp_duration: float | None,
    max_duration: float | None,
    base_url: str | None,
    seed: int | None,
) -> Simulation:
    """Return *simulation* with the command-line overrides applied.

    ``--users`` or ``--ramp-duration`` replace the injection profile with a
    linear ramp; a missing half is read from the environment configuration.
    """
    changes: dict[str, object] = {}
    if users is not None or ramp_duration is not None:
        config = load_config()
        changes["profile"] = RampUsers(
            users=users if users is not None else config.users,
            during=ramp_duration if ramp_duration is not None else config.ramp_duration,
        )
    if max_duration is not None:
        changes["max_duration"] = max_duration
    if base_url is not None:
        changes["base_url"] = base_url
    if seed is not None:
        changes["seed"] = seed
    if not changes:
        return simulation
    return dataclasses.replace(simulation, **changes)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Rich display
# ---------------------------------------------------------------------------


def _make_live_table(snapshot: IntervalSnapshot | None) -> Table:
    """Build a Rich table summarising the latest interval."""
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if snapshot is None:
        table.add_row("Status", "Starting...")
        return table

    table.add_row("Elapsed", f"{snapshot.elapsed_seconds:.0f}s")
    table.add_row("Active Users", str(snapshot.active_users))
    table.add_row("Started Users", str(snapshot.started_users))
    table.add_row("Requests/sec", f"{snapshot.requests_per_second:.1f}")
    table.add_row("p50 Latency", f"{snapshot.latency_p50:.1f}ms")
    table.add_row("p95 Latency", f"{snapshot.latency_p95:.1f}ms")
    table.add_row("Errors", str(snapshot.total_errors))
    table.add_row("Error Rate", f"{snapshot.error_rate * 100:.2f}%")
    return table


def _print_summary(result: RunResult) -> None:
    """Print the per-step breakdown and the overall summary."""
    summary = result.summary

    if summary.steps:
        step_table = Table(
            title="Per-Step Breakdown",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        step_table.add_column("Step")
        step_table.add_column("OK", justify="right")
        step_table.add_column("KO", justify="right")
        step_table.add_column("Cancelled", justify="right")
        step_table.add_column("KO %", justify="right")
        step_table.add_column("p50", justify="right")
        step_table.add_column("p95", justify="right")
        step_table.add_column("p99", justify="right")
        step_table.add_column("First Error")

        for step in summary.steps.values():
            step_table.add_row(
                step.name,
                str(step.ok),
                str(step.ko),
                str(step.cancelled),
                f"{step.failure_rate * 100:.2f}%",
                f"{step.latency_p50:.1f}ms",
                f"{step.latency_p95:.1f}ms",
                f"{step.latency_p99:.1f}ms",
                step.first_error or "",
            )
        console.print(step_table)

    table = Table(
        title="Run Complete" if not result.cancelled else "Run Cancelled",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Simulation", result.simulation_name)
    table.add_row("Injection", result.profile_description)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    table.add_row(
        "Users",
        f"{summary.users_started} started, {summary.users_completed} completed, "
        f"{summary.users_failed} failed, {summary.users_cancelled} cancelled",
    )
    table.add_row("OK", str(summary.total_ok))
    table.add_row("KO", str(summary.total_ko))
    table.add_row("Cancelled", str(summary.total_cancelled))
    table.add_row("p50 Latency", f"{summary.latency_p50:.1f}ms")
    table.add_row("p95 Latency", f"{summary.latency_p95:.1f}ms")
    table.add_row("p99 Latency", f"{summary.latency_p99:.1f}ms")
    table.add_row("Failure Rate", f"{summary.failure_rate * 100:.2f}%")
    console.print(table)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    simulation_file: Path = typer.Argument(
        ...,
        help="Path to the simulation .py file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    users: int | None = typer.Option(
        None,
        "--users",
        "-u",
        help="Inject this many users with a linear ramp (overrides the file's profile).",
        min=1,
    ),
    ramp_duration: float | None = typer.Option(
        None,
        "--ramp-duration",
        "-r",
        help="Seconds over which the ramp injects its users.",
        min=0.001,
    ),
    max_duration: float | None = typer.Option(
        None,
        "--max-duration",
        "-d",
        help="Hard cap on the whole run in seconds.",
        min=0.001,
    ),
    base_url: str | None = typer.Option(
        None,
        "--base-url",
        help="Override the simulation's target base URL.",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        help="Seed per-user randomness for reproducible runs.",
    ),
    fail_on_error_rate: float | None = typer.Option(
        None,
        "--fail-on-error-rate",
        help="Exit non-zero if the failure rate exceeds this threshold (e.g., 0.05).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit structured JSON logs.",
    ),
) -> None:
    """Execute a simulation with live terminal output."""
    log_level = logging.DEBUG if verbose else logging.INFO

    try:
        simulation = load_simulation(simulation_file)
        simulation = _apply_overrides(simulation, users, ramp_duration, max_duration, base_url, seed)
        config = load_config()
    except LoadWeaveError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            f"[bold]Simulation:[/bold] {simulation.name} ({simulation_file.name})\n"
            f"[bold]Scenarios:[/bold]  {', '.join(s.name for s in simulation.dispatcher.scenarios)}\n"
            f"[bold]Injection:[/bold]  {simulation.profile.describe()}\n"
            f"[bold]Base URL:[/bold]   {simulation.base_url or '-'}",
            title="LoadWeave",
            border_style="cyan",
        )
    )

    try:
        with Live(
            _make_live_table(None),
            console=console,
            refresh_per_second=2,
            transient=True,
        ) as live:

            def _on_snapshot(snapshot: IntervalSnapshot) -> None:
                live.update(_make_live_table(snapshot))

            result = run_simulation(
                simulation,
                request_timeout=config.request_timeout,
                pool_size=config.connection_pool_size,
                on_snapshot=_on_snapshot,
                log_level=log_level,
                json_logs=json_logs,
            )
    except LoadWeaveError as exc:
        console.print(f"[red]Run failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    failure_rate = result.summary.failure_rate
    if fail_on_error_rate is not None and failure_rate > fail_on_error_rate:
        console.print(
            f"[red]FAIL:[/red] Failure rate {failure_rate * 100:.2f}% "
            f"exceeds threshold {fail_on_error_rate * 100:.2f}%"
        )
        raise typer.Exit(code=1)

    console.print("[green]Run completed.[/green]")
