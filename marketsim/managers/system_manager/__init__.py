"""
SystemManager - Central orchestrator and service locator

Usage:
    from marketsim.managers.system_manager import get_system_manager

    system_mgr = get_system_manager()
    now, mode = system_mgr.get_current_time()
    bars = system_mgr.generate_bars("AAPL", timeframe_minutes=5, count=50)
"""

from marketsim.managers.system_manager.api import (
    SystemManager,
    get_system_manager,
    reset_system_manager,
)

__all__ = [
    "SystemManager",
    "get_system_manager",
    "reset_system_manager",
]
