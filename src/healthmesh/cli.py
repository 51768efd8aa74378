# src/healthmesh/cli.py
import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from healthmesh.core.alerts import STATE_STYLES
from healthmesh.core.config import MeshSettings, build_alert_sink, load_settings
from healthmesh.core.exceptions import ConfigurationError
from healthmesh.core.health import HealthTracker
from healthmesh.core.history import ResultHistory
from healthmesh.core.scheduler import Scheduler
from healthmesh.core.types import HealthState, ToolHealth
from healthmesh.tools.base import build_argv

app = typer.Typer(
    name="healthmesh",
    help="Periodically run external diagnostic tools and track their health.",
    add_completion=False,
    no_args_is_help=True,
)

cli_console = Console()  # For messages directly from the CLI framework

module_logger = logging.getLogger("healthmesh.cli")

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to the YAML tool configuration (default: $HEALTHMESH_CONFIG or ./healthmesh.yaml).",
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        os.getenv("HEALTHMESH_LOG_LEVEL", "INFO"),
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    ),
):
    """
    healthmesh: health correlation for external diagnostic tools.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    module_logger.debug("Main CLI callback invoked.")


def _load(config: Optional[Path]) -> MeshSettings:
    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        cli_console.print(f"[bold red]Configuration error: {escape(str(e))}[/bold red]")
        module_logger.error(f"Configuration error: {e}")
        raise typer.Exit(code=2)

    if not settings.tools:
        cli_console.print("[bold red]No tools configured.[/bold red]")
        raise typer.Exit(code=2)
    return settings


def build_scheduler(settings: MeshSettings, output_console: Optional[Console] = None) -> Scheduler:
    tracker = HealthTracker(
        alert_sink=build_alert_sink(settings.alerts, output_console or cli_console),
        failure_threshold=settings.failure_threshold,
    )
    scheduler = Scheduler(
        tracker,
        history=ResultHistory(settings.history_size),
        output_cap=settings.output_cap,
        drain_grace=settings.drain_grace,
    )
    for spec in settings.tools:
        scheduler.register(spec)
    return scheduler


def render_health_table(snapshot: dict[str, ToolHealth]) -> Table:
    table = Table(title="Tool Health", show_header=True)
    table.add_column("Tool", style="cyan")
    table.add_column("State", style="bold")
    table.add_column("Failures", justify="right")
    table.add_column("Cycles", justify="right")
    table.add_column("Last outcome", style="dim")
    table.add_column("Findings", justify="right")

    for name, health in snapshot.items():
        style = STATE_STYLES.get(health.state, "white")
        table.add_row(
            name,
            f"[{style}]{health.state.value}[/{style}]",
            str(health.consecutive_failure_count),
            str(health.cycles),
            health.last_outcome.value if health.last_outcome else "-",
            str(len(health.last_findings)),
        )
    return table


async def _run_until_signal(scheduler: Scheduler) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except (NotImplementedError, RuntimeError):
            module_logger.debug(f"Signal handler for {sig.name} not supported here")
    await scheduler.run()


@app.command()
def run(config: Optional[Path] = CONFIG_OPTION):
    """Run every configured tool on its interval until interrupted."""
    settings = _load(config)
    scheduler = build_scheduler(settings)
    cli_console.print(
        f"[green]Monitoring {len(settings.tools)} tool(s). Press Ctrl+C to stop.[/green]"
    )
    try:
        asyncio.run(_run_until_signal(scheduler))
    except KeyboardInterrupt:
        module_logger.info("Interrupted before the scheduler could drain")
    cli_console.print(render_health_table(scheduler.tracker.snapshot()))


@app.command()
def once(config: Optional[Path] = CONFIG_OPTION):
    """Run one cycle of every configured tool and print their health."""
    settings = _load(config)
    scheduler = build_scheduler(settings)
    snapshot = asyncio.run(scheduler.run_once())
    cli_console.print(render_health_table(snapshot))

    unhealthy = [
        name
        for name, health in snapshot.items()
        if health.state in (HealthState.FAILING, HealthState.UNKNOWN)
    ]
    if unhealthy:
        module_logger.warning(f"Tools without a healthy result: {', '.join(unhealthy)}")
        raise typer.Exit(code=1)


@app.command()
def validate(config: Optional[Path] = CONFIG_OPTION):
    """Validate the configuration and list the configured tools."""
    settings = _load(config)

    table = Table(title="Configured Tools", show_header=True)
    table.add_column("Tool", style="cyan")
    table.add_column("Command")
    table.add_column("Interval", justify="right")
    table.add_column("Timeout", justify="right")
    table.add_column("Parser", style="dim")
    for spec in settings.tools:
        table.add_row(
            spec.name,
            escape(" ".join(build_argv(spec))),
            f"{spec.interval:g}s",
            f"{spec.timeout:g}s",
            spec.parser or spec.output_format.value,
        )
    cli_console.print(table)
    cli_console.print(
        f"[green]Configuration OK: {len(settings.tools)} tool(s), "
        f"failure threshold {settings.failure_threshold}.[/green]"
    )


if __name__ == "__main__":
    app()
