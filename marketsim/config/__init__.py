"""
Configuration module
"""
from marketsim.config.settings import (
    settings,
    Settings,
    ClockConfig,
    SessionConfig,
    SimulationSettings,
    RUNTIME_TUNABLE_RANGES,
)
from marketsim.config.scenario_presets import (
    PRESET_CONFIGS,
    DEFAULT_PRESET,
    default_scenario,
    load_preset,
    preset_names,
)

__all__ = [
    "settings",
    "Settings",
    "ClockConfig",
    "SessionConfig",
    "SimulationSettings",
    "RUNTIME_TUNABLE_RANGES",
    "PRESET_CONFIGS",
    "DEFAULT_PRESET",
    "default_scenario",
    "load_preset",
    "preset_names",
]
