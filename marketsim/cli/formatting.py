"""
Shared rich formatting helpers for CLI output
"""
from datetime import datetime
from typing import Iterable

from rich import box
from rich.table import Table

from marketsim.managers.clock_manager import ClockState
from marketsim.models.bars import Bar


def format_datetime_with_tz(dt: datetime) -> str:
    """Format datetime with timezone information"""
    if dt.tzinfo is None:
        return dt.strftime("%Y-%m-%d %H:%M:%S")

    tz_name = dt.tzinfo.tzname(dt)
    offset = dt.strftime("%z")
    offset_formatted = f"{offset[:3]}:{offset[3:]}" if offset else ""
    return dt.strftime(f"%Y-%m-%d %H:%M:%S {tz_name} ({offset_formatted})")


def clock_table(state: ClockState, now: datetime, title: str = "Clock") -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    running = "[green]RUNNING[/green]" if state.running else "[yellow]PAUSED[/yellow]"
    table.add_row("Now", format_datetime_with_tz(now))
    table.add_row("Mode", state.mode.value.upper())
    table.add_row("Simulated Time", format_datetime_with_tz(state.current_time))
    table.add_row("Simulation Start", format_datetime_with_tz(state.sim_start))
    table.add_row("Speed", f"{state.speed:g}x")
    table.add_row("Driver", running)
    return table


def bars_table(bars: Iterable[Bar], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Time (UTC)", style="cyan")
    table.add_column("Open", justify="right")
    table.add_column("High", justify="right", style="green")
    table.add_column("Low", justify="right", style="red")
    table.add_column("Close", justify="right", style="bold")
    table.add_column("Volume", justify="right", style="dim")

    for bar in bars:
        table.add_row(
            bar.timestamp.strftime("%Y-%m-%d %H:%M"),
            f"{bar.open:.2f}",
            f"{bar.high:.2f}",
            f"{bar.low:.2f}",
            f"{bar.close:.2f}",
            f"{bar.volume:,}",
        )
    return table
