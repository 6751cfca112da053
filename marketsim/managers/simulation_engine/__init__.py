"""
📈 Simulation Engine Module

Deterministic synthetic OHLCV generation.

Responsibilities:
- Per-bar seed derivation (symbol, time, scenario seed)
- Regime timeline resolution
- Stochastic returns (noise, drift, mean reversion, fat tails, gaps)
- Pattern overlays on configured bar windows
- Candle assembly, including the live open bar

Bars are computed on demand and never persisted.
"""

from marketsim.managers.simulation_engine.api import (
    MarketSimulationEngine,
    bar_start_for,
    bars_for_period,
)
from marketsim.managers.simulation_engine.base_prices import get_base_price
from marketsim.managers.simulation_engine.regime_scheduler import RegimeScheduler

__all__ = [
    "MarketSimulationEngine",
    "bar_start_for",
    "bars_for_period",
    "get_base_price",
    "RegimeScheduler",
]
