"""
Core enumerations used throughout the system.

These fundamental enums are used by multiple components and should be
imported from here (single source of truth).
"""

from enum import Enum


class ClockMode(Enum):
    """
    Time source enumeration.

    Values:
        REAL: Wall-clock time (UTC now)
        SIMULATED: Accelerated/pausable simulated time
    """
    REAL = "real"
    SIMULATED = "simulated"


class MarketRegime(Enum):
    """Market regime types that control stochastic parameters."""
    TREND_UP = "TREND_UP"
    TREND_DOWN = "TREND_DOWN"
    RANGE = "RANGE"
    HIGH_VOL = "HIGH_VOL"
    LOW_VOL = "LOW_VOL"
    CRASH = "CRASH"
    NEWS_SPIKE = "NEWS_SPIKE"


class PatternOverlayType(Enum):
    """Chart patterns that can be imprinted on a bar window."""
    BREAKOUT = "BREAKOUT"
    PULLBACK = "PULLBACK"
    DOUBLE_TOP = "DOUBLE_TOP"
    DOUBLE_BOTTOM = "DOUBLE_BOTTOM"
    HEAD_SHOULDERS = "HEAD_SHOULDERS"
    TRIANGLE = "TRIANGLE"
    FLAG = "FLAG"
    GAP_AND_GO = "GAP_AND_GO"
    MEAN_REVERSION = "MEAN_REVERSION"


class TriangleType(Enum):
    """Triangle subtypes (which side of the envelope converges)."""
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"
    SYMMETRIC = "SYMMETRIC"


class Direction(Enum):
    """Direction of a pattern move."""
    UP = "UP"
    DOWN = "DOWN"

    @property
    def sign(self) -> float:
        return 1.0 if self is Direction.UP else -1.0
