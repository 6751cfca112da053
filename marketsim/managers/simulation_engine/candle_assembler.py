"""Candle Assembler

Builds OHLCV bars from an open/close pair plus the bar's random draws, and
recomputes the currently open bar from the time elapsed inside it.

Closed bars:
    high/low extend beyond open/close by an intrabar range proportional to
    the EWMA volatility measure and the configured range multiplier;
    volume = timeframe base volume x time-of-day x regime x pattern x jitter.

Live bar:
    every elapsed second inside the bar gets its own derived seed. The
    price at second s moves linearly from the open towards the bar's
    closing target, plus jitter that fades as the bar completes. High and
    low are running extremes over all revealed seconds, so they only ever
    extend as time advances.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from marketsim.config import settings
from marketsim.config.settings import SimulationSettings
from marketsim.managers.simulation_engine.bar_generator import (
    BarDraws,
    U_HIGH,
    U_JITTER,
    U_LOW,
    U_RANGE,
    U_SESSION,
)
from marketsim.managers.simulation_engine.pattern_overlay import NEUTRAL_EFFECT, OverlayEffect
from marketsim.managers.simulation_engine.seeds import derive_tick_seed, make_rng
from marketsim.managers.simulation_engine.session_hours import SessionHours
from marketsim.models.bars import Bar
from marketsim.models.scenario import RegimeParameters


MIN_PRICE = 0.01

BASE_VOLUME: Dict[int, int] = {
    1: 50_000,
    5: 200_000,
    15: 500_000,
}
DEFAULT_BASE_VOLUME = 100_000

# Upper bound on live-path samples per bar (long timeframes use a stride)
MAX_LIVE_SAMPLES = 900


def base_volume(timeframe_minutes: int) -> int:
    return BASE_VOLUME.get(timeframe_minutes, DEFAULT_BASE_VOLUME)


def round_price(value: float) -> float:
    return round(max(value, MIN_PRICE), 2)


@dataclass(frozen=True)
class BarPlan:
    """A fully computed bar plus what the live path needs to re-reveal it."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int
    seed: int
    range_vol: float
    timeframe_minutes: int

    def to_bar(self) -> Bar:
        return Bar(
            timestamp=self.timestamp,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )


class CandleAssembler:
    """Turns open/close pairs into OHLCV bars."""

    def __init__(
        self,
        config: Optional[SimulationSettings] = None,
        session_hours: Optional[SessionHours] = None,
    ):
        self.config = config or settings.SIMULATION
        self.session_hours = session_hours or SessionHours.from_config()

    def assemble(
        self,
        bar_time: datetime,
        open_price: float,
        close_price: float,
        draws: BarDraws,
        params: RegimeParameters,
        range_vol: float,
        timeframe_minutes: int,
        seed: int,
        effect: OverlayEffect = NEUTRAL_EFFECT,
    ) -> BarPlan:
        """Complete OHLCV for a closed bar.

        Args:
            bar_time: Bar open timestamp
            open_price: Open (already gapped if a gap occurred)
            close_price: Close
            draws: The bar's random draws
            params: Effective regime parameters
            range_vol: Volatility measure for the intrabar range
            timeframe_minutes: Bar timeframe
            seed: Bar seed (kept for the live path)
            effect: Active overlay adjustment

        Returns:
            BarPlan satisfying low <= min(open, close) <= max(open, close) <= high
        """
        mult = self.config.high_low_range_multiplier
        o = round_price(open_price)
        c = round_price(close_price)
        top, bottom = max(o, c), min(o, c)

        intrabar = abs(o - c) * mult + range_vol * top * (0.1 + draws.u(U_RANGE) * 0.2)
        intrabar *= effect.range_factor
        high = top + intrabar * draws.u(U_HIGH) * mult
        low = bottom - intrabar * draws.u(U_LOW) * mult

        high = max(round(high, 2), top)
        low = min(round_price(low), bottom)

        return BarPlan(
            timestamp=bar_time,
            open=o,
            high=high,
            low=low,
            close=c,
            volume=self.volume(bar_time, draws, params, effect, timeframe_minutes),
            seed=seed,
            range_vol=range_vol,
            timeframe_minutes=timeframe_minutes,
        )

    def volume(
        self,
        bar_time: datetime,
        draws: BarDraws,
        params: RegimeParameters,
        effect: OverlayEffect,
        timeframe_minutes: int,
    ) -> int:
        session = self.session_hours.volume_multiplier(bar_time, draws.u(U_SESSION))
        jitter = 0.85 + draws.u(U_JITTER) * 0.3
        total = base_volume(timeframe_minutes) * session * params.volume_multiplier
        total *= effect.volume_multiplier * jitter
        return max(0, int(total))

    def live_bar(self, plan: BarPlan, elapsed_seconds: float) -> Bar:
        """The open bar as revealed after elapsed_seconds inside it.

        Deterministic in (plan, whole elapsed seconds): two reads within
        the same second return the same bar.
        """
        total = plan.timeframe_minutes * 60
        stride = max(1, total // MAX_LIVE_SAMPLES)
        elapsed = int(max(0, min(total, elapsed_seconds)))
        elapsed -= elapsed % stride

        limit = self.config.max_return_per_bar
        amplitude = plan.open * plan.range_vol * (0.25 + self.config.live_tick_noise)
        ceiling = plan.open * (1 + limit)
        floor = plan.open * (1 - limit)

        high = low = price = plan.open
        for second in range(stride, elapsed + 1, stride):
            progress = second / total
            rng = make_rng(derive_tick_seed(plan.seed, second))
            jitter = (rng.random() - 0.5) * 2.0 * amplitude * (1.0 - progress)
            price = plan.open + (plan.close - plan.open) * progress + jitter
            price = max(floor, min(ceiling, price))
            high = max(high, price)
            low = min(low, price)

        close = round_price(price)
        return Bar(
            timestamp=plan.timestamp,
            open=plan.open,
            high=max(round(high, 2), plan.open, close),
            low=min(round_price(low), plan.open, close),
            close=close,
            volume=int(plan.volume * elapsed / total),
        )
