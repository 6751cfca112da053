"""
CLI commands for the simulated clock
"""
import time
from datetime import datetime, timezone

import typer
from rich.console import Console
from rich.live import Live

from marketsim.cli.formatting import clock_table, format_datetime_with_tz
from marketsim.core.exceptions import ClockError
from marketsim.logger import logger
from marketsim.managers import get_system_manager

app = typer.Typer()
console = Console()


def _parse_time(value: str) -> datetime:
    try:
        ts = datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]✗[/red] Invalid timestamp '{value}' (expected ISO format)")
        raise typer.Exit(code=1)
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


@app.command("now")
def now():
    """
    Show the current time and clock state
    """
    system_mgr = get_system_manager()
    current, mode = system_mgr.get_current_time()
    console.print(clock_table(system_mgr.get_clock_state(), current, title=f"Clock ({mode.value.upper()} mode)"))


@app.command("mode")
def set_mode(mode: str = typer.Argument(..., help="real or simulated")):
    """
    Switch the time source
    """
    try:
        new_mode = get_system_manager().set_mode(mode)
    except ClockError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Clock mode: [cyan]{new_mode.value}[/cyan]")


@app.command("speed")
def set_speed(multiplier: float = typer.Argument(..., help="Simulated seconds per real second")):
    """
    Set the simulation speed multiplier
    """
    try:
        value = get_system_manager().set_speed(multiplier)
    except ClockError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Speed: [cyan]{value:g}x[/cyan]")


@app.command("start")
def start():
    """
    Start advancing simulated time
    """
    get_system_manager().start()
    console.print("[green]✓[/green] Clock running")


@app.command("pause")
def pause():
    """
    Freeze simulated time
    """
    system_mgr = get_system_manager()
    system_mgr.pause()
    frozen = system_mgr.get_clock_state().current_time
    console.print(f"[green]✓[/green] Clock paused at {format_datetime_with_tz(frozen)}")


@app.command("reset")
def reset():
    """
    Stop the clock and rewind to the simulation start
    """
    start_time = get_system_manager().reset()
    console.print(f"[green]✓[/green] Clock reset to {format_datetime_with_tz(start_time)}")


@app.command("set-start")
def set_start(timestamp: str = typer.Argument(..., help="ISO timestamp (UTC if no offset)")):
    """
    Set the simulation start time (pauses the clock)
    """
    ts = _parse_time(timestamp)
    try:
        get_system_manager().set_start_time(ts)
    except ClockError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Simulation start: {format_datetime_with_tz(ts)}")


@app.command("run")
def run(
    seconds: float = typer.Option(10.0, "--seconds", "-s", help="Real seconds to run"),
    speed: float = typer.Option(None, "--speed", help="Speed multiplier to use"),
):
    """
    Run the simulated clock in the foreground and watch it advance
    """
    system_mgr = get_system_manager()
    if speed is not None:
        system_mgr.set_speed(speed)
    system_mgr.set_mode("simulated")
    system_mgr.start()
    logger.info(f"Running clock in foreground for {seconds}s")

    deadline = time.monotonic() + seconds
    try:
        with Live(console=console, refresh_per_second=4) as live:
            while time.monotonic() < deadline:
                current, _ = system_mgr.get_current_time()
                live.update(clock_table(system_mgr.get_clock_state(), current, title="Clock (running)"))
                time.sleep(0.25)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
    finally:
        system_mgr.pause()

    console.print(
        f"[green]✓[/green] Paused at {format_datetime_with_tz(system_mgr.get_clock_state().current_time)}"
    )
