"""Simulation settings persistence repositories"""
from marketsim.managers.simulation_settings_manager.repositories.simulation_settings_repo import (
    SimulationSettingsRepository,
)

__all__ = ["SimulationSettingsRepository"]
