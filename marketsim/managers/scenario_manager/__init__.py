"""
Scenario Manager
Active scenario, presets and scenario persistence
"""
from marketsim.managers.scenario_manager.api import (
    CUSTOM_PRESET,
    ScenarioManager,
    ScenarioState,
    anchor_for,
)
from marketsim.managers.scenario_manager.repositories import ScenarioRepository

__all__ = [
    "CUSTOM_PRESET",
    "ScenarioManager",
    "ScenarioState",
    "ScenarioRepository",
    "anchor_for",
]
