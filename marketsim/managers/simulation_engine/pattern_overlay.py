"""Pattern Overlay Injector

Reshapes base returns inside configured bar windows so the price path
resembles a named chart pattern.

Composition rule for a bar inside a window:

    adjusted = base_return * damping + offset

then clamped to +/- max_return_per_bar by the caller. `damping` compresses
the stochastic texture (consolidations), `offset` carries the scripted
shape. Each overlay may also boost volume, narrow the intrabar range or
force a gap on the bar's open.

The trigger bar of every overlay is shifted by a seeded integer in
[-noise_bars, +noise_bars], fixed per (symbol, scenario seed, overlay),
and never moved before bar 0.
"""
from dataclasses import dataclass
from math import ceil, sqrt
from typing import Dict, List, Optional, Sequence, Tuple

from marketsim.config import settings
from marketsim.config.settings import SimulationSettings
from marketsim.core.enums import PatternOverlayType, TriangleType
from marketsim.logger import logger
from marketsim.managers.simulation_engine.seeds import derive_overlay_seed, make_rng
from marketsim.models.scenario import PatternOverlayConfig


# Bars of range compression before a breakout trigger
BREAKOUT_SETUP_BARS = 20
BREAKOUT_IMPULSE = 0.003
GAP_CONTINUATION = 0.004

# Scripted shapes as (progress, level) keypoints, level in amplitude units
_DOUBLE_PEAK_SHAPE: Tuple[Tuple[float, float], ...] = (
    (0.0, 0.0), (0.2, 1.0), (0.4, 0.5), (0.6, 1.0),
)
_HEAD_SHOULDERS_SHAPE: Tuple[Tuple[float, float], ...] = (
    (0.0, 0.0), (0.15, 0.7), (0.3, 0.35), (0.5, 1.0), (0.7, 0.35), (0.85, 0.7), (1.0, 0.1),
)


@dataclass(frozen=True)
class OverlayEffect:
    """Adjustment applied to one bar.

    Attributes:
        damping: Multiplier on the base return
        offset: Return added after damping
        volume_multiplier: Multiplier on bar volume
        range_factor: Multiplier on the intrabar high/low range
        forced_gap: Gap fraction forced onto the open (None = no forced gap)
        phase: Label of the pattern phase (for diagnostics)
    """
    damping: float = 1.0
    offset: float = 0.0
    volume_multiplier: float = 1.0
    range_factor: float = 1.0
    forced_gap: Optional[float] = None
    phase: str = ""

    @property
    def is_neutral(self) -> bool:
        return self == NEUTRAL_EFFECT

    def compose(self, base_return: float) -> float:
        return base_return * self.damping + self.offset


NEUTRAL_EFFECT = OverlayEffect()


@dataclass(frozen=True)
class OverlayWindow:
    """An overlay placed on the bar axis after timing noise."""
    index: int
    config: PatternOverlayConfig
    shift: int

    @property
    def start(self) -> int:
        return self.config.at_bar + self.shift

    @property
    def end(self) -> int:
        return self.config.nominal_end + self.shift

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def trigger_bar(self) -> int:
        return self.start

    def contains(self, bar_index: int) -> bool:
        return self.start <= bar_index <= self.end

    def progress(self, bar_index: int) -> float:
        """Position of bar_index inside the window, in [0, 1)."""
        return (bar_index - self.start) / self.length


def _shape_level(shape: Sequence[Tuple[float, float]], p: float) -> float:
    """Piecewise-linear interpolation of a keypoint shape."""
    if p <= shape[0][0]:
        return shape[0][1]
    for (p0, v0), (p1, v1) in zip(shape, shape[1:]):
        if p <= p1:
            return v0 + (v1 - v0) * (p - p0) / (p1 - p0)
    return shape[-1][1]


class PatternOverlayInjector:
    """Overlay windows for one (symbol, scenario) pair."""

    def __init__(
        self,
        overlays: Sequence[PatternOverlayConfig],
        symbol: str,
        scenario_seed: Optional[int],
        max_gap_percent: float = 0.03,
        config: Optional[SimulationSettings] = None,
    ):
        self.config = config or settings.SIMULATION
        self.max_gap_percent = max_gap_percent
        self.windows: List[OverlayWindow] = []
        for index, overlay in enumerate(overlays):
            shift = 0
            if overlay.noise_bars > 0:
                rng = make_rng(derive_overlay_seed(symbol, scenario_seed, index))
                shift = int(rng.integers(-overlay.noise_bars, overlay.noise_bars + 1))
                # Never move the trigger before bar 0 (the backfill has no overlays)
                shift = max(shift, -overlay.at_bar)
            self.windows.append(OverlayWindow(index=index, config=overlay, shift=shift))
            logger.debug(
                f"{symbol}: {overlay.pattern.name} overlay #{index} at bar {overlay.at_bar} "
                f"shifted by {shift:+d}"
            )

        # Pre-trigger compression for breakouts, only on bars no other window owns
        self._setup: Dict[int, OverlayWindow] = {}
        for window in self.windows:
            if window.config.pattern is not PatternOverlayType.BREAKOUT:
                continue
            for bar in range(max(0, window.start - BREAKOUT_SETUP_BARS), window.start):
                if self.window_at(bar) is None:
                    self._setup.setdefault(bar, window)

    def window_at(self, bar_index: int) -> Optional[OverlayWindow]:
        for window in self.windows:
            if window.contains(bar_index):
                return window
        return None

    def trigger_bars(self) -> List[int]:
        return [w.trigger_bar for w in self.windows]

    def effect(self, bar_index: int, sigma: float, u: float) -> OverlayEffect:
        """Adjustment for a bar.

        Args:
            bar_index: Bar index relative to the scenario anchor
            sigma: Noise standard deviation of the bar
            u: The bar's overlay uniform draw in [0, 1)

        Returns:
            OverlayEffect (NEUTRAL_EFFECT outside every window)
        """
        if bar_index < 0:
            return NEUTRAL_EFFECT

        window = self.window_at(bar_index)
        if window is None:
            setup = self._setup.get(bar_index)
            if setup is None:
                return NEUTRAL_EFFECT
            return OverlayEffect(damping=0.35, volume_multiplier=0.7, range_factor=0.6, phase="setup")

        handler = _HANDLERS[window.config.pattern]
        return handler(self, window, bar_index, sigma, u)

    # ------------------------------------------------------------------
    # Per-pattern shapes
    # ------------------------------------------------------------------

    @property
    def _strength(self) -> float:
        return self.config.pattern_overlay_strength

    def _breakout(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        sign = window.config.direction.sign
        step = bar - window.start
        # Full impulse on the trigger bar, fading follow-through afterwards
        decay = 0.6 ** step
        return OverlayEffect(
            damping=0.5,
            offset=sign * BREAKOUT_IMPULSE * self._strength * decay,
            volume_multiplier=window.config.volume_boost,
            range_factor=1.3,
            phase="trigger" if step == 0 else "follow-through",
        )

    def _pullback(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        sign = window.config.direction.sign
        depth = window.config.depth if window.config.depth is not None else 0.8
        if window.progress(bar) < 0.6:
            return OverlayEffect(
                damping=0.7,
                offset=-sign * depth * sigma * 0.5 * self._strength,
                volume_multiplier=window.config.volume_boost * 0.8,
                phase="retrace",
            )
        return OverlayEffect(
            damping=0.8,
            offset=sign * depth * sigma * 0.25 * self._strength,
            volume_multiplier=window.config.volume_boost,
            phase="resume",
        )

    def _scripted(
        self,
        window: OverlayWindow,
        bar: int,
        sigma: float,
        shape: Sequence[Tuple[float, float]],
        orientation: float,
    ) -> OverlayEffect:
        amplitude = 2.0 * sigma * sqrt(window.length) * self._strength
        p0 = window.progress(bar)
        p1 = p0 + 1.0 / window.length
        delta = _shape_level(shape, p1) - _shape_level(shape, p0)
        return OverlayEffect(
            damping=0.5,
            offset=orientation * amplitude * delta,
            volume_multiplier=window.config.volume_boost if delta * orientation < 0 else 1.0,
            phase="scripted",
        )

    def _double_extreme(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        orientation = 1.0 if window.config.pattern is PatternOverlayType.DOUBLE_TOP else -1.0
        # Final leg breaks the neckline in the configured direction
        final = 1.0 + 0.6 * window.config.direction.sign * orientation
        shape = _DOUBLE_PEAK_SHAPE + ((1.0, final),)
        return self._scripted(window, bar, sigma, shape, orientation)

    def _head_shoulders(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        # DOWN is the classic top, UP the inverse formation
        orientation = -window.config.direction.sign
        return self._scripted(window, bar, sigma, _HEAD_SHOULDERS_SHAPE, orientation)

    def _triangle(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        sign = window.config.direction.sign
        if bar == window.end:
            return OverlayEffect(
                damping=0.5,
                offset=sign * BREAKOUT_IMPULSE * self._strength,
                volume_multiplier=window.config.volume_boost,
                range_factor=1.2,
                phase="breakout",
            )
        p = window.progress(bar)
        subtype = window.config.triangle_subtype or TriangleType.SYMMETRIC
        bias = {
            TriangleType.ASCENDING: 0.15,
            TriangleType.DESCENDING: -0.15,
            TriangleType.SYMMETRIC: 0.0,
        }[subtype]
        return OverlayEffect(
            damping=1.0 - 0.75 * p,
            offset=bias * sigma * self._strength,
            volume_multiplier=1.0 - 0.4 * p,
            range_factor=1.0 - 0.7 * p,
            phase="converging",
        )

    def _flag(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        sign = window.config.direction.sign
        impulse_bars = max(1, ceil(window.length / 4))
        if bar - window.start < impulse_bars:
            return OverlayEffect(
                damping=0.6,
                offset=sign * BREAKOUT_IMPULSE * self._strength,
                volume_multiplier=window.config.volume_boost,
                phase="pole",
            )
        return OverlayEffect(
            damping=0.4,
            offset=-sign * sigma * 0.1 * self._strength,
            volume_multiplier=0.7,
            range_factor=0.7,
            phase="flag",
        )

    def _gap_and_go(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        sign = window.config.direction.sign
        step = bar - window.start
        decay = 1.0 - step / window.length
        forced_gap = None
        if step == 0:
            forced_gap = sign * self.max_gap_percent * (0.5 + 0.5 * u)
        return OverlayEffect(
            damping=0.6,
            offset=sign * GAP_CONTINUATION * self._strength * decay,
            volume_multiplier=window.config.volume_boost * (0.5 + 0.5 * decay),
            range_factor=1.2,
            forced_gap=forced_gap,
            phase="gap" if step == 0 else "continuation",
        )

    def _mean_reversion(self, window: OverlayWindow, bar: int, sigma: float, u: float) -> OverlayEffect:
        # Direction is the bounce direction off the band
        sign = window.config.direction.sign
        if window.progress(bar) < 0.5:
            return OverlayEffect(
                damping=0.7,
                offset=-sign * 2.0 * sigma * 0.4 * self._strength,
                phase="approach",
            )
        return OverlayEffect(
            damping=0.6,
            offset=sign * 2.0 * sigma * 0.6 * self._strength,
            volume_multiplier=window.config.volume_boost,
            phase="bounce",
        )


_HANDLERS = {
    PatternOverlayType.BREAKOUT: PatternOverlayInjector._breakout,
    PatternOverlayType.PULLBACK: PatternOverlayInjector._pullback,
    PatternOverlayType.DOUBLE_TOP: PatternOverlayInjector._double_extreme,
    PatternOverlayType.DOUBLE_BOTTOM: PatternOverlayInjector._double_extreme,
    PatternOverlayType.HEAD_SHOULDERS: PatternOverlayInjector._head_shoulders,
    PatternOverlayType.TRIANGLE: PatternOverlayInjector._triangle,
    PatternOverlayType.FLAG: PatternOverlayInjector._flag,
    PatternOverlayType.GAP_AND_GO: PatternOverlayInjector._gap_and_go,
    PatternOverlayType.MEAN_REVERSION: PatternOverlayInjector._mean_reversion,
}
