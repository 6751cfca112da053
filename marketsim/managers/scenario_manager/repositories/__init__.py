"""Scenario persistence repositories"""
from marketsim.managers.scenario_manager.repositories.scenario_repo import (
    PersistedScenario,
    ScenarioRepository,
)

__all__ = ["PersistedScenario", "ScenarioRepository"]
