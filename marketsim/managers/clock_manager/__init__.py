"""
Clock Manager
Dual time source (real / simulated) and the driver that advances it
"""
from marketsim.managers.clock_manager.api import Clock, ClockDriver, default_clock_state, parse_mode
from marketsim.managers.clock_manager.models import ClockState
from marketsim.managers.clock_manager.persister import ClockStatePersister
from marketsim.managers.clock_manager.repositories import ClockStateRepository

__all__ = [
    "Clock",
    "ClockDriver",
    "ClockState",
    "ClockStatePersister",
    "ClockStateRepository",
    "default_clock_state",
    "parse_mode",
]
