"""
Built-in scenario presets

Each preset is an immutable ScenarioConfig. Presets carry no anchor time;
the scenario manager stamps one when a preset is applied.
"""
from typing import Dict, List

from marketsim.core.enums import Direction, MarketRegime, PatternOverlayType
from marketsim.core.exceptions import ConfigurationError
from marketsim.models.scenario import PatternOverlayConfig, RegimePhase, ScenarioConfig


DEFAULT_PRESET = "Default"


PRESET_CONFIGS: Dict[str, ScenarioConfig] = {
    "Default": ScenarioConfig(
        name="Default",
        description="Default random market behavior with moderate volatility",
        base_volatility=0.02,
        regimes=(RegimePhase(MarketRegime.RANGE, 500),),
    ),

    "VWAP Long Test": ScenarioConfig(
        name="VWAP Long Test",
        description="200 bars range -> breakout up -> 300 bars uptrend with pullback. Tests LONG signals.",
        seed=42,
        base_volatility=0.015,
        regimes=(
            RegimePhase(MarketRegime.RANGE, 200, volume_multiplier=0.9),
            RegimePhase(MarketRegime.TREND_UP, 300, volume_multiplier=1.3),
        ),
        overlays=(
            PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=180, direction=Direction.UP,
                                 volume_boost=2.5, noise_bars=3),
            PatternOverlayConfig(PatternOverlayType.PULLBACK, at_bar=200, to_bar=240, direction=Direction.UP,
                                 depth=0.8, volume_boost=1.2),
        ),
    ),

    "VWAP Short Test": ScenarioConfig(
        name="VWAP Short Test",
        description="200 bars range -> breakout down -> 300 bars downtrend. Tests SHORT signals.",
        seed=43,
        base_volatility=0.018,
        regimes=(
            RegimePhase(MarketRegime.RANGE, 200, volume_multiplier=0.9),
            RegimePhase(MarketRegime.TREND_DOWN, 300, volume_multiplier=1.4),
        ),
        overlays=(
            PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=180, direction=Direction.DOWN,
                                 volume_boost=2.5, noise_bars=3),
        ),
    ),

    "High Volume Breakout": ScenarioConfig(
        name="High Volume Breakout",
        description="Consolidation followed by a 3x volume breakout. Tests volume filter thresholds.",
        seed=100,
        base_volatility=0.012,
        regimes=(
            RegimePhase(MarketRegime.LOW_VOL, 150, volume_multiplier=0.7),
            RegimePhase(MarketRegime.RANGE, 100, volume_multiplier=0.8),
            RegimePhase(MarketRegime.TREND_UP, 200, volume_multiplier=1.5),
        ),
        overlays=(
            PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=250, direction=Direction.UP,
                                 volume_boost=3.0, noise_bars=2),
        ),
    ),

    "Low Confidence Range": ScenarioConfig(
        name="Low Confidence Range",
        description="High volatility, low volume range. Should not trigger strong signals.",
        seed=200,
        base_volatility=0.035,
        regimes=(
            RegimePhase(MarketRegime.HIGH_VOL, 300, volume_multiplier=0.7),
            RegimePhase(MarketRegime.RANGE, 200, volatility=0.04, volume_multiplier=0.6),
        ),
    ),

    "ATR Test High Vol": ScenarioConfig(
        name="ATR Test High Vol",
        description="High volatility phase for ATR-based stop/target tests. Wide stops expected.",
        seed=300,
        base_volatility=0.025,
        regimes=(
            RegimePhase(MarketRegime.RANGE, 100),
            RegimePhase(MarketRegime.HIGH_VOL, 200, volatility=0.04),
            RegimePhase(MarketRegime.TREND_UP, 200, volatility=0.03),
        ),
        overlays=(
            PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=300, direction=Direction.UP,
                                 volume_boost=2.0),
        ),
    ),

    "Trend Reversal": ScenarioConfig(
        name="Trend Reversal",
        description="Uptrend -> double top -> downtrend. Tests reversal pattern detection.",
        seed=400,
        base_volatility=0.02,
        regimes=(
            RegimePhase(MarketRegime.TREND_UP, 200),
            RegimePhase(MarketRegime.RANGE, 100),
            RegimePhase(MarketRegime.TREND_DOWN, 200),
        ),
        overlays=(
            PatternOverlayConfig(PatternOverlayType.DOUBLE_TOP, at_bar=180, to_bar=280, direction=Direction.DOWN,
                                 volume_boost=1.5),
        ),
    ),

    "Crash Scenario": ScenarioConfig(
        name="Crash Scenario",
        description="Sudden crash with extreme volatility and volume. Tests risk management.",
        seed=999,
        base_volatility=0.02,
        gap_probability=0.3,
        max_gap_percent=0.05,
        regimes=(
            RegimePhase(MarketRegime.TREND_UP, 150, volume_multiplier=1.0),
            RegimePhase(MarketRegime.CRASH, 50, volume_multiplier=3.0),
            RegimePhase(MarketRegime.HIGH_VOL, 100, volume_multiplier=2.0),
            RegimePhase(MarketRegime.RANGE, 200, volume_multiplier=1.2),
        ),
        overlays=(
            PatternOverlayConfig(PatternOverlayType.GAP_AND_GO, at_bar=150, direction=Direction.DOWN,
                                 volume_boost=4.0),
        ),
    ),
}


def load_preset(name: str) -> ScenarioConfig:
    """
    Load a preset scenario

    Args:
        name: Preset name (exact match)

    Returns:
        ScenarioConfig instance

    Raises:
        ConfigurationError: If the preset is unknown
    """
    if name not in PRESET_CONFIGS:
        raise ConfigurationError(f"Unknown preset: {name}. Available: {list(PRESET_CONFIGS.keys())}")
    return PRESET_CONFIGS[name]


def default_scenario() -> ScenarioConfig:
    return PRESET_CONFIGS[DEFAULT_PRESET]


def preset_names() -> List[str]:
    return list(PRESET_CONFIGS.keys())
