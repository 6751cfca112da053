"""
MarketSim Engine - CLI Application
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from marketsim.cli.commands import admin, clock, scenario
from marketsim.cli.formatting import bars_table, format_datetime_with_tz
from marketsim.config import settings
from marketsim.logger import logger
from marketsim.managers import get_system_manager, reset_system_manager
from marketsim.models.bars import bars_to_dataframe

# Create Typer app
app = typer.Typer(
    name="marketsim",
    help="Synthetic market data and simulated clock",
    add_completion=False,
)

# Rich console for beautiful output
console = Console()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit")
):
    """
    MarketSim Engine CLI

    Deterministic OHLCV bars driven by market regimes and chart patterns,
    on a real or simulated clock.
    """
    if version:
        console.print(f"[cyan]{settings.APP_NAME}[/cyan] v{settings.APP_VERSION}")
        raise typer.Exit()

    # Flush clock/scenario writes before the process exits
    ctx.call_on_close(reset_system_manager)

    if ctx.invoked_subcommand is None:
        console.print(Panel.fit(
            f"[bold cyan]{settings.APP_NAME}[/bold cyan]\n"
            f"[dim]Version {settings.APP_VERSION}[/dim]\n\n"
            f"[yellow]Use --help to see available commands[/yellow]",
            box=box.ROUNDED,
            border_style="cyan"
        ))


@app.command()
def status():
    """
    Show clock, scenario and configuration status
    """
    info = get_system_manager().system_info()

    table = Table(title="System Status", box=box.ROUNDED)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Application", info["app"])
    table.add_row("Version", info["version"])
    table.add_row("Now", info["now"])
    table.add_row("Mode", info["mode"].upper())
    table.add_row("Speed", f"{info['clock']['speed']:g}x")
    table.add_row("Clock Running", str(info["clock"]["running"]))
    table.add_row("Scenario", f"{info['scenario']['preset']} ({'enabled' if info['scenario']['enabled'] else 'disabled'})")
    table.add_row("Scenario Anchor", info["scenario"]["anchor_time"] or "-")
    table.add_row("Max Return / Bar", f"{settings.SIMULATION.max_return_per_bar:.2%}")
    db_url = settings.DATABASE.url
    table.add_row("Database", db_url.split("///")[-1] if ":///" in db_url else db_url)

    console.print(table)
    logger.debug("Status command executed")


@app.command()
def bars(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    timeframe: int = typer.Option(5, "--timeframe", "-t", help="Bar size in minutes"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of bars"),
    period: str = typer.Option("1d", "--period", "-p", help="Lookback when --count is not given (1d, 5d, 7d, 1mo, 60d)"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="ISO timestamp (capped at the clock's now)"),
    csv: Optional[Path] = typer.Option(None, "--csv", help="Write bars to a CSV file instead of printing"),
):
    """
    Generate bars for a symbol under the active scenario
    """
    reveal = None
    if as_of:
        try:
            reveal = datetime.fromisoformat(as_of)
        except ValueError:
            console.print(f"[red]✗[/red] Invalid timestamp '{as_of}'")
            raise typer.Exit(code=1)
        if reveal.tzinfo is None:
            reveal = reveal.replace(tzinfo=timezone.utc)

    system_mgr = get_system_manager()
    result = system_mgr.generate_bars(symbol, timeframe_minutes=timeframe, count=count, as_of=reveal, period=period)

    if csv is not None:
        bars_to_dataframe(result).to_csv(csv, index=False)
        console.print(f"[green]✓[/green] Wrote {len(result)} bars to {csv}")
        return

    now, mode = system_mgr.get_current_time()
    console.print(bars_table(result, title=f"{symbol.upper()} {timeframe}m ({len(result)} bars)"))
    console.print(f"[dim]{mode.value} time {format_datetime_with_tz(now)} - last bar is live[/dim]")


app.add_typer(clock.app, name="clock", help="Simulated clock")
app.add_typer(scenario.app, name="scenario", help="Market scenarios")
app.add_typer(admin.app, name="admin", help="Admin commands")


@app.command("log-level")
def log_level(level: str = typer.Argument(..., help="New log level")):
    """
    Change application log level at runtime
    """
    admin.set_log_level(level)


if __name__ == "__main__":
    app()
