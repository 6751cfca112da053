"""
Top-Level Module APIs

This package contains the core management modules:
- SystemManager: Central coordinator (singleton registry)
- Clock / ClockDriver: Dual real/simulated time source
- ScenarioManager: Active scenario and presets
- MarketSimulationEngine: Deterministic bar generation
- SimulationSettingsManager: Runtime calibration knobs

All CLI interactions should use SystemManager to access other managers.
"""

from marketsim.managers.system_manager.api import (
    SystemManager,
    get_system_manager,
    reset_system_manager,
)
from marketsim.managers.clock_manager import Clock, ClockDriver
from marketsim.managers.scenario_manager import ScenarioManager
from marketsim.managers.simulation_engine import MarketSimulationEngine
from marketsim.managers.simulation_settings_manager import SimulationSettingsManager

__all__ = [
    "SystemManager",
    "get_system_manager",
    "reset_system_manager",
    "Clock",
    "ClockDriver",
    "ScenarioManager",
    "MarketSimulationEngine",
    "SimulationSettingsManager",
]
