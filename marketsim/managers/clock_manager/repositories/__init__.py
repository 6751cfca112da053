"""Clock persistence repositories"""
from marketsim.managers.clock_manager.repositories.clock_state_repo import ClockStateRepository

__all__ = ["ClockStateRepository"]
