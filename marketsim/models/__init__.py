"""
Data models: bars, scenario configuration and persisted state
"""
from marketsim.models.bars import Bar, bars_to_dataframe
from marketsim.models.scenario import (
    PatternOverlayConfig,
    RegimeParameters,
    RegimePhase,
    ScenarioConfig,
)

__all__ = [
    "Bar",
    "bars_to_dataframe",
    "PatternOverlayConfig",
    "RegimeParameters",
    "RegimePhase",
    "ScenarioConfig",
]
