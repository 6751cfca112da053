"""Scenario Configuration Model

Immutable value types describing a simulated market:

- RegimePhase: a regime type held for a number of bars, with optional
  volatility/drift overrides
- PatternOverlayConfig: a chart pattern imprinted on a bar window
- ScenarioConfig: ordered regime phases + overlays + gap/volatility settings
- RegimeParameters: stochastic parameters derived from a regime type

All types are frozen dataclasses that validate on construction, so an
invalid scenario can never exist. Per-symbol variants are produced with
ScenarioConfig.with_overrides(), never by mutation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from marketsim.core.enums import Direction, MarketRegime, PatternOverlayType, TriangleType
from marketsim.core.exceptions import ConfigurationError


E = TypeVar("E")


def parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Parse an enum from an instance or a (case-insensitive) name."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.strip().upper()]
        except KeyError:
            pass
    valid = ", ".join(m.name for m in enum_cls)
    raise ConfigurationError(f"Invalid {field_name} '{value}'. Choose from: {valid}")


def _parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ConfigurationError(f"Invalid {field_name} '{value}': {e}") from e


# =============================================================================
# Regime Parameters
# =============================================================================

@dataclass(frozen=True)
class RegimeParameters:
    """Parameters that control market behavior for one regime.

    Attributes:
        volatility_multiplier: Multiplier on base volatility (1.0 = base)
        drift: Drift per bar (positive = up, negative = down)
        mean_reversion: Pull toward the rolling reference (0 = none, 1 = strong)
        gap_probability_modifier: Multiplier on the scenario gap probability
        fat_tail_probability: Probability of an outsized move per bar
        volume_multiplier: Multiplier on session volume
    """
    volatility_multiplier: float = 1.0
    drift: float = 0.0
    mean_reversion: float = 0.0
    gap_probability_modifier: float = 1.0
    fat_tail_probability: float = 0.05
    volume_multiplier: float = 1.0

    @classmethod
    def defaults(cls, regime: MarketRegime) -> RegimeParameters:
        """Documented defaults for a regime type."""
        return _REGIME_DEFAULTS.get(regime, cls())


_REGIME_DEFAULTS: Dict[MarketRegime, RegimeParameters] = {
    MarketRegime.TREND_UP: RegimeParameters(
        volatility_multiplier=1.0, drift=0.001, mean_reversion=0.1, volume_multiplier=1.2
    ),
    # Downtrends are usually more volatile than uptrends
    MarketRegime.TREND_DOWN: RegimeParameters(
        volatility_multiplier=1.2, drift=-0.001, mean_reversion=0.1, volume_multiplier=1.3
    ),
    MarketRegime.RANGE: RegimeParameters(
        volatility_multiplier=0.8, drift=0.0, mean_reversion=0.5, volume_multiplier=0.9
    ),
    MarketRegime.HIGH_VOL: RegimeParameters(
        volatility_multiplier=2.0, mean_reversion=0.2, fat_tail_probability=0.15,
        volume_multiplier=1.8
    ),
    MarketRegime.LOW_VOL: RegimeParameters(
        volatility_multiplier=0.5, mean_reversion=0.3, fat_tail_probability=0.02,
        volume_multiplier=0.6
    ),
    MarketRegime.CRASH: RegimeParameters(
        volatility_multiplier=3.0, drift=-0.005, mean_reversion=0.05,
        gap_probability_modifier=2.0, fat_tail_probability=0.3, volume_multiplier=3.0
    ),
    # Direction of a spike comes from overlays; quick reversion afterwards
    MarketRegime.NEWS_SPIKE: RegimeParameters(
        volatility_multiplier=2.5, mean_reversion=0.4, gap_probability_modifier=1.5,
        fat_tail_probability=0.2, volume_multiplier=2.5
    ),
}


# =============================================================================
# Regime Phase
# =============================================================================

@dataclass(frozen=True)
class RegimePhase:
    """A regime held for a fixed number of bars.

    Attributes:
        regime: Regime type
        bars: Number of bars this phase lasts (> 0)
        volatility: Absolute volatility override (None = regime default)
        drift: Drift override per bar (None = regime default)
        volume_multiplier: Extra volume multiplier for this phase
    """
    regime: MarketRegime = MarketRegime.RANGE
    bars: int = 100
    volatility: Optional[float] = None
    drift: Optional[float] = None
    volume_multiplier: float = 1.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.regime, MarketRegime):
            raise ConfigurationError(f"Invalid regime type: {self.regime!r}")
        if self.bars <= 0:
            raise ConfigurationError(f"Regime phase {self.regime.name} must have bars > 0 (got {self.bars})")
        if self.volatility is not None and self.volatility <= 0:
            raise ConfigurationError(f"Volatility override must be > 0 (got {self.volatility})")
        if self.volume_multiplier < 0:
            raise ConfigurationError(f"volume_multiplier must be >= 0 (got {self.volume_multiplier})")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RegimePhase:
        return cls(
            regime=parse_enum(MarketRegime, data.get("type", "RANGE"), "regime type"),
            bars=int(data.get("bars", 100)),
            volatility=data.get("volatility"),
            drift=data.get("drift"),
            volume_multiplier=float(data.get("volume_multiplier", 1.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.regime.name,
            "bars": self.bars,
            "volume_multiplier": self.volume_multiplier,
        }
        if self.volatility is not None:
            result["volatility"] = self.volatility
        if self.drift is not None:
            result["drift"] = self.drift
        return result


# =============================================================================
# Pattern Overlay
# =============================================================================

# Window length used when an overlay gives no to_bar
DEFAULT_PATTERN_BARS: Dict[PatternOverlayType, int] = {
    PatternOverlayType.BREAKOUT: 3,
    PatternOverlayType.PULLBACK: 10,
    PatternOverlayType.DOUBLE_TOP: 40,
    PatternOverlayType.DOUBLE_BOTTOM: 40,
    PatternOverlayType.HEAD_SHOULDERS: 60,
    PatternOverlayType.TRIANGLE: 30,
    PatternOverlayType.FLAG: 12,
    PatternOverlayType.GAP_AND_GO: 5,
    PatternOverlayType.MEAN_REVERSION: 10,
}


@dataclass(frozen=True)
class PatternOverlayConfig:
    """A chart pattern imprinted on a bar window.

    Attributes:
        pattern: Pattern type
        at_bar: Bar index where the pattern starts (trigger bar)
        to_bar: Bar index where the pattern ends (None = pattern default length)
        direction: Direction of the pattern move
        volume_boost: Volume multiplier while the pattern is active
        depth: Pullback depth in volatility units (PULLBACK only)
        triangle_subtype: Converging side (TRIANGLE only)
        noise_bars: Tolerance (+/- bars) for the actual trigger bar
    """
    pattern: PatternOverlayType
    at_bar: int
    to_bar: Optional[int] = None
    direction: Direction = Direction.UP
    volume_boost: float = 2.0
    depth: Optional[float] = None
    triangle_subtype: Optional[TriangleType] = None
    noise_bars: int = 2

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.pattern, PatternOverlayType):
            raise ConfigurationError(f"Invalid pattern type: {self.pattern!r}")
        if self.at_bar < 0:
            raise ConfigurationError(f"{self.pattern.name}: at_bar must be >= 0 (got {self.at_bar})")
        if self.to_bar is not None and self.to_bar < self.at_bar:
            raise ConfigurationError(
                f"{self.pattern.name}: at_bar ({self.at_bar}) must be <= to_bar ({self.to_bar})"
            )
        if self.noise_bars < 0:
            raise ConfigurationError(f"{self.pattern.name}: noise_bars must be >= 0")
        if self.volume_boost <= 0:
            raise ConfigurationError(f"{self.pattern.name}: volume_boost must be > 0")

        # Each pattern only accepts its own payload
        if self.depth is not None:
            if self.pattern is not PatternOverlayType.PULLBACK:
                raise ConfigurationError(f"depth is only valid for PULLBACK (got {self.pattern.name})")
            if self.depth <= 0:
                raise ConfigurationError(f"PULLBACK depth must be > 0 (got {self.depth})")
        if self.triangle_subtype is not None and self.pattern is not PatternOverlayType.TRIANGLE:
            raise ConfigurationError(
                f"triangle_subtype is only valid for TRIANGLE (got {self.pattern.name})"
            )

    @property
    def nominal_end(self) -> int:
        if self.to_bar is not None:
            return self.to_bar
        return self.at_bar + DEFAULT_PATTERN_BARS[self.pattern] - 1

    def extent(self) -> Tuple[int, int]:
        """Widest bar range this overlay may occupy once timing noise is applied."""
        return self.at_bar - self.noise_bars, self.nominal_end + self.noise_bars

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PatternOverlayConfig:
        subtype = data.get("triangle_subtype")
        to_bar = data.get("to_bar")
        return cls(
            pattern=parse_enum(PatternOverlayType, data.get("type"), "pattern type"),
            at_bar=int(data.get("at_bar", 0)),
            to_bar=int(to_bar) if to_bar is not None else None,
            direction=parse_enum(Direction, data.get("direction", "UP"), "direction"),
            volume_boost=float(data.get("volume_boost", 2.0)),
            depth=data.get("depth"),
            triangle_subtype=parse_enum(TriangleType, subtype, "triangle subtype") if subtype else None,
            noise_bars=int(data.get("noise_bars", 2)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.pattern.name,
            "at_bar": self.at_bar,
            "direction": self.direction.name,
            "volume_boost": self.volume_boost,
            "noise_bars": self.noise_bars,
        }
        if self.to_bar is not None:
            result["to_bar"] = self.to_bar
        if self.depth is not None:
            result["depth"] = self.depth
        if self.triangle_subtype is not None:
            result["triangle_subtype"] = self.triangle_subtype.name
        return result


# =============================================================================
# Scenario Configuration
# =============================================================================

@dataclass(frozen=True)
class ScenarioConfig:
    """Complete scenario configuration for market simulation.

    Attributes:
        name: Scenario name (preset name or "Custom")
        regimes: Ordered regime phases (non-empty)
        overlays: Pattern overlays (extents must not overlap)
        description: Optional description
        seed: Scenario seed (None = seeded by symbol only)
        symbol: Symbol scope (None = applies to all symbols)
        start_price: Price at the anchor bar (None = symbol base price)
        anchor_time: Timestamp of bar index 0 (None = engine default)
        base_volatility: Base per-bar volatility
        gap_probability: Gap probability at session boundaries (0-1)
        max_gap_percent: Maximum gap size as a fraction of price
        is_active: Whether the scenario is active
    """
    name: str = "Default"
    regimes: Tuple[RegimePhase, ...] = field(default_factory=lambda: (RegimePhase(MarketRegime.RANGE, 500),))
    overlays: Tuple[PatternOverlayConfig, ...] = ()
    description: Optional[str] = None
    seed: Optional[int] = None
    symbol: Optional[str] = None
    start_price: Optional[float] = None
    anchor_time: Optional[datetime] = None
    base_volatility: float = 0.02
    gap_probability: float = 0.1
    max_gap_percent: float = 0.03
    is_active: bool = True

    def __post_init__(self):
        # Accept lists from callers but store tuples so the value stays hashable
        object.__setattr__(self, "regimes", tuple(self.regimes))
        object.__setattr__(self, "overlays", tuple(self.overlays))
        if self.anchor_time is not None and self.anchor_time.tzinfo is None:
            object.__setattr__(self, "anchor_time", self.anchor_time.replace(tzinfo=timezone.utc))
        self.validate()

    def validate(self) -> None:
        """Validate scenario configuration.

        Raises:
            ConfigurationError: If any field or combination is invalid
        """
        if not self.name:
            raise ConfigurationError("Scenario name is required")
        if not self.regimes:
            raise ConfigurationError(f"Scenario '{self.name}' has an empty regime list")
        if self.base_volatility <= 0:
            raise ConfigurationError(f"base_volatility must be > 0 (got {self.base_volatility})")
        if not 0 <= self.gap_probability <= 1:
            raise ConfigurationError(f"gap_probability must be within [0, 1] (got {self.gap_probability})")
        if not 0 <= self.max_gap_percent < 1:
            raise ConfigurationError(f"max_gap_percent must be within [0, 1) (got {self.max_gap_percent})")
        if self.start_price is not None and self.start_price <= 0:
            raise ConfigurationError(f"start_price must be > 0 (got {self.start_price})")

        extents = sorted((o.extent(), o.pattern.name) for o in self.overlays)
        for (first, first_name), (second, second_name) in zip(extents, extents[1:]):
            if second[0] <= first[1]:
                raise ConfigurationError(
                    f"Overlay ranges overlap: {first_name} {first} and {second_name} {second}"
                )

    @property
    def total_bars(self) -> int:
        return sum(phase.bars for phase in self.regimes)

    def applies_to(self, symbol: str) -> bool:
        """True if this scenario is unscoped or scoped to symbol."""
        return self.symbol is None or self.symbol.upper() == symbol.upper()

    def with_overrides(self, **changes: Any) -> ScenarioConfig:
        """Return a copy with the given fields replaced (validated again)."""
        return replace(self, **changes)

    def fingerprint(self) -> str:
        """Stable JSON form, used to compare scenarios for equality."""
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScenarioConfig:
        """Create ScenarioConfig from dictionary (e.g. persisted JSON).

        Raises:
            ConfigurationError: If the structure or any value is invalid
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Scenario configuration must be a mapping")

        regimes = data.get("regimes")
        if not regimes:
            raise ConfigurationError("Missing required field: regimes")

        seed = data.get("seed")
        start_price = data.get("start_price")
        return cls(
            name=data.get("name", "Default"),
            description=data.get("description"),
            seed=int(seed) if seed is not None else None,
            symbol=data.get("symbol"),
            start_price=float(start_price) if start_price is not None else None,
            anchor_time=_parse_datetime(data.get("anchor_time"), "anchor_time"),
            regimes=tuple(RegimePhase.from_dict(r) for r in regimes),
            overlays=tuple(PatternOverlayConfig.from_dict(o) for o in data.get("overlays", [])),
            base_volatility=float(data.get("base_volatility", 0.02)),
            gap_probability=float(data.get("gap_probability", 0.1)),
            max_gap_percent=float(data.get("max_gap_percent", 0.03)),
            is_active=bool(data.get("is_active", True)),
        )

    @classmethod
    def from_json(cls, text: str) -> ScenarioConfig:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid scenario JSON: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "seed": self.seed,
            "symbol": self.symbol,
            "start_price": self.start_price,
            "anchor_time": self.anchor_time.isoformat() if self.anchor_time else None,
            "regimes": [r.to_dict() for r in self.regimes],
            "overlays": [o.to_dict() for o in self.overlays],
            "base_volatility": self.base_volatility,
            "gap_probability": self.gap_probability,
            "max_gap_percent": self.max_gap_percent,
            "is_active": self.is_active,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
