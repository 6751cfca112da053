"""
CLI commands for scenario management
"""
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from marketsim.core.exceptions import ConfigurationError
from marketsim.managers import get_system_manager
from marketsim.managers.scenario_manager import ScenarioManager
from marketsim.managers.simulation_settings_manager import SimulationSettingsManager

app = typer.Typer()
console = Console()


@app.command("list")
def list_presets():
    """
    List built-in scenario presets
    """
    table = Table(title="Scenario Presets", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Bars", justify="right")
    table.add_column("Regimes", style="green")
    table.add_column("Patterns", style="magenta")
    table.add_column("Description", style="dim")

    for preset in ScenarioManager.list_presets():
        table.add_row(
            preset["name"],
            str(preset["total_bars"]),
            " → ".join(preset["regimes"]),
            ", ".join(preset["patterns"]) or "-",
            preset["description"],
        )
    console.print(table)


@app.command("show")
def show(as_json: bool = typer.Option(False, "--json", help="Print the full configuration as JSON")):
    """
    Show the active scenario
    """
    state = get_system_manager().get_scenario_state()
    if as_json:
        console.print_json(json.dumps(state.to_dict()))
        return

    scenario = state.scenario
    table = Table(title="Active Scenario", box=box.ROUNDED)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Preset", state.preset_name)
    table.add_row("Enabled", "[green]YES[/green]" if state.enabled else "[yellow]NO[/yellow]")
    table.add_row("Seed", str(scenario.seed) if scenario.seed is not None else "-")
    table.add_row("Symbol", scenario.symbol or "ALL")
    table.add_row("Anchor", scenario.anchor_time.isoformat() if scenario.anchor_time else "-")
    table.add_row("Base Volatility", f"{scenario.base_volatility:.4f}")
    table.add_row("Gap Probability", f"{scenario.gap_probability:.2f} (max {scenario.max_gap_percent:.1%})")
    for i, phase in enumerate(scenario.regimes):
        table.add_row(f"Regime {i + 1}", f"{phase.regime.name} × {phase.bars}")
    for overlay in scenario.overlays:
        table.add_row(
            "Overlay",
            f"{overlay.pattern.name} {overlay.direction.name} @ {overlay.at_bar} (±{overlay.noise_bars})",
        )
    console.print(table)


@app.command("apply")
def apply(
    preset: str = typer.Argument(None, help="Preset name (see 'scenario list')"),
    file: Path = typer.Option(None, "--file", "-f", help="JSON file with a custom scenario"),
):
    """
    Activate a preset or a custom scenario file
    """
    system_mgr = get_system_manager()
    try:
        if file is not None:
            config = system_mgr.set_scenario(json.loads(file.read_text()))
        elif preset:
            config = system_mgr.set_scenario(preset)
        else:
            console.print("[red]✗[/red] Give a preset name or --file")
            raise typer.Exit(code=1)
    except (ConfigurationError, json.JSONDecodeError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Scenario '{config.name}' active ({config.total_bars} bars)")


@app.command("enable")
def enable():
    """
    Enable scenario-driven generation
    """
    get_system_manager().enable_scenario(True)
    console.print("[green]✓[/green] Scenario enabled")


@app.command("disable")
def disable():
    """
    Disable scenario-driven generation (default path for all symbols)
    """
    get_system_manager().enable_scenario(False)
    console.print("[green]✓[/green] Scenario disabled")


@app.command("reset")
def reset():
    """
    Back to the Default preset, disabled
    """
    get_system_manager().reset_scenario()
    console.print("[green]✓[/green] Scenario reset to Default")


@app.command("settings")
def simulation_settings(
    assignments: Optional[List[str]] = typer.Option(
        None, "--set", "-s", help="knob=value (repeatable), clamped into the allowed range"
    ),
    reset: bool = typer.Option(False, "--reset", help="Restore the SIMULATION__* defaults"),
):
    """
    Show or change the runtime calibration knobs of the simulation engine
    """
    system_mgr = get_system_manager()

    changes = {}
    for assignment in assignments or []:
        name, sep, value = assignment.partition("=")
        if not sep:
            console.print(f"[red]✗[/red] Expected knob=value, got '{assignment}'")
            raise typer.Exit(code=1)
        changes[name.strip().lower()] = value.strip()

    try:
        if reset:
            system_mgr.reset_simulation_settings()
            console.print("[green]✓[/green] Simulation settings reset to defaults")
        if changes:
            system_mgr.update_simulation_settings(changes)
            console.print(f"[green]✓[/green] Updated {', '.join(changes)}")
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)

    current = system_mgr.get_simulation_settings()
    defaults = system_mgr.get_settings_manager().get_defaults()
    table = Table(title="Simulation Settings", box=box.ROUNDED)
    table.add_column("Knob", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_column("Default", style="dim", justify="right")
    table.add_column("Range", style="dim")
    for name, (lo, hi) in SimulationSettingsManager.tunable_ranges().items():
        value = getattr(current, name)
        marker = "" if value == getattr(defaults, name) else " *"
        table.add_row(name, f"{value:g}{marker}", f"{getattr(defaults, name):g}", f"{lo:g} - {hi:g}")
    console.print(table)
