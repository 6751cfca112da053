"""
Simulation Settings Manager
Runtime calibration knobs (clamped, persisted) for the simulation engine
"""
from marketsim.managers.simulation_settings_manager.api import (
    SimulationSettingsManager,
    clamp_runtime_values,
    runtime_values,
)
from marketsim.managers.simulation_settings_manager.repositories import SimulationSettingsRepository

__all__ = [
    "SimulationSettingsManager",
    "SimulationSettingsRepository",
    "clamp_runtime_values",
    "runtime_values",
]
