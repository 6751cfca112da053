"""
CLI commands for admin operations: logging, configuration, database
"""
import typer
from rich import box
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from marketsim.config import settings
from marketsim.logger import logger, logger_manager

app = typer.Typer()
console = Console()

_SECTIONS = ("CLOCK", "SESSION", "SIMULATION", "LOGGER", "DATABASE")


@app.command("log-level")
def set_log_level(
    level: str = typer.Argument(..., help="TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR or CRITICAL")
):
    """
    Change the log file level at runtime
    """
    try:
        new_level = logger_manager.set_level(level)
    except ValueError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Log level: [cyan]{new_level}[/cyan]")


@app.command("log-level-get")
def get_log_level():
    """
    Show log levels and the log file location
    """
    table = Table(title="Logging", box=box.ROUNDED)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("File Level", logger_manager.get_level())
    table.add_row("Console Level", logger_manager.console_level)
    table.add_row("Log File", str(logger_manager.log_file_path))
    table.add_row("Available Levels", ", ".join(logger_manager.get_available_levels()))
    console.print(table)


@app.command("config")
def show_config(
    section: str = typer.Argument(None, help="One of CLOCK, SESSION, SIMULATION, LOGGER, DATABASE"),
):
    """
    Show effective settings (environment and .env applied)
    """
    names = _SECTIONS
    if section is not None:
        if section.upper() not in _SECTIONS:
            console.print(f"[red]✗[/red] Unknown section '{section}'. Choose from: {', '.join(_SECTIONS)}")
            raise typer.Exit(code=1)
        names = (section.upper(),)

    table = Table(title="Settings", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name in names:
        for key, value in getattr(settings, name).model_dump().items():
            table.add_row(f"{name}__{key.upper()}", str(value))
    console.print(table)


@app.command("init-db")
def init_database():
    """
    Create the clock/scenario tables if missing
    """
    from marketsim.models.database import init_db

    try:
        tables = init_db()
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Tables: {', '.join(tables)}")
