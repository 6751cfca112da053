"""
Market Simulation Engine - Public API

Deterministic bar generation pipeline:

    RegimeScheduler -> SeedDerivation -> StochasticBarGenerator
        -> PatternOverlayInjector -> CandleAssembler

Bar timelines
-------------
Bars sit on an epoch-aligned grid of `timeframe_minutes`. Bar index 0 is
the first grid bar at or after the scenario's anchor time; bars before it
are backfilled by walking backwards from the start price (first-phase
parameters, no gaps, no overlays).

Scenarios without an anchor (the unscoped default path) are split into
UTC-day segments. Each day starts from its own deterministic price level,
so a bar only ever depends on bars of the same day and history never
moves as time advances.

The last returned bar is the open bar: it is re-revealed from the time
elapsed inside it on every call. All other bars are final.
"""
import math
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from marketsim.config import settings
from marketsim.config.scenario_presets import default_scenario
from marketsim.config.settings import SimulationSettings
from marketsim.core.exceptions import DeterminismViolation
from marketsim.logger import logger
from marketsim.managers.simulation_engine.bar_generator import (
    BarDraws,
    PathState,
    StochasticBarGenerator,
    U_OVERLAY,
)
from marketsim.managers.simulation_engine.base_prices import get_base_price
from marketsim.managers.simulation_engine.candle_assembler import BarPlan, CandleAssembler, round_price
from marketsim.managers.simulation_engine.pattern_overlay import NEUTRAL_EFFECT, PatternOverlayInjector
from marketsim.managers.simulation_engine.regime_scheduler import RegimeScheduler
from marketsim.managers.simulation_engine.seeds import derive_bar_seed, make_rng
from marketsim.managers.simulation_engine.session_hours import SessionHours
from marketsim.models.bars import Bar
from marketsim.models.scenario import ScenarioConfig


# Minutes of trading per lookback period
PERIOD_MINUTES: Dict[str, int] = {
    "1d": 390,
    "5d": 1950,
    "7d": 2730,
    "1mo": 8190,
    "60d": 23400,
}

# Spread of daily price levels on the unanchored path
DAILY_LEVEL_VOLATILITY = 0.02

CHECKPOINT_INTERVAL = 250
MAX_CACHED_PATHS = 64

_DAY_SECONDS = 86400


def bars_for_period(period: str, timeframe_minutes: int) -> int:
    """Bar count covering a lookback period ("1d", "5d", "7d", "1mo", "60d").

    Unknown periods count as one trading day.
    """
    minutes = PERIOD_MINUTES.get(period.lower(), PERIOD_MINUTES["1d"])
    return max(1, minutes // max(1, timeframe_minutes))


def _to_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass(frozen=True)
class _Segment:
    """A run of bars sharing one anchor and starting price."""
    anchor_sec: int
    start_price: float


class _PathCheckpoints:
    """Path states saved every CHECKPOINT_INTERVAL bars of a forward path.

    Closed bars are deterministic, so a saved state is valid for any later
    request on the same path.
    """

    def __init__(self, max_paths: int = MAX_CACHED_PATHS):
        self._paths: "OrderedDict[Tuple, Dict[int, PathState]]" = OrderedDict()
        self._max_paths = max_paths
        self._lock = threading.Lock()

    def nearest(self, key: Tuple, index: int) -> Tuple[int, Optional[PathState]]:
        with self._lock:
            states = self._paths.get(key)
            if not states:
                return 0, None
            self._paths.move_to_end(key)
            best = max((i for i in states if i <= index), default=None)
            if best is None:
                return 0, None
            return best, states[best]

    def save(self, key: Tuple, index: int, state: PathState) -> None:
        with self._lock:
            states = self._paths.setdefault(key, {})
            states[index] = state
            self._paths.move_to_end(key)
            while len(self._paths) > self._max_paths:
                self._paths.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._paths.clear()


class MarketSimulationEngine:
    """Deterministic OHLCV generator driven by regimes and pattern overlays."""

    def __init__(
        self,
        config: Optional[SimulationSettings] = None,
        session_hours: Optional[SessionHours] = None,
    ):
        self.config = config or settings.SIMULATION
        self.session_hours = session_hours or SessionHours.from_config()
        self.generator = StochasticBarGenerator(self.config)
        self.assembler = CandleAssembler(self.config, self.session_hours)
        self._checkpoints = _PathCheckpoints()
        # Part of every checkpoint key, bumped when settings change
        self._settings_version = 0

    # =========================================================================
    # Public API
    # =========================================================================

    def generate_bars(
        self,
        symbol: str,
        timeframe_minutes: int,
        count: int,
        as_of: datetime,
        scenario: Optional[ScenarioConfig] = None,
        start_price: Optional[float] = None,
    ) -> List[Bar]:
        """Generate the `count` most recent bars as of a point in time.

        Args:
            symbol: Ticker symbol (case-insensitive)
            timeframe_minutes: Bar size in minutes (clamped to >= 1)
            count: Number of bars (clamped to [1, max_bars])
            as_of: Reveal time; no returned bar starts after it
            scenario: Scenario to generate under. None, an inactive scenario
                or one scoped to another symbol falls back to the default path.
            start_price: Price at the scenario anchor (default: scenario
                start price, then the symbol's base price)

        Returns:
            Bars in ascending time order; the last one is the open bar
        """
        symbol = symbol.strip().upper()
        timeframe_minutes = max(1, int(timeframe_minutes))
        count = max(1, min(int(count), self.config.max_bars))
        as_of = _to_utc(as_of)
        scenario = self._resolve_scenario(symbol, scenario)
        if start_price is not None and start_price > 0:
            scenario = scenario.with_overrides(start_price=float(start_price))

        bars = self._generate(symbol, timeframe_minutes, count, as_of, scenario, use_cache=True)

        if self.config.verify_determinism:
            again = self._generate(symbol, timeframe_minutes, count, as_of, scenario, use_cache=False)
            if again != bars:
                raise DeterminismViolation(
                    f"Regenerating {symbol} {timeframe_minutes}m bars under '{scenario.name}' "
                    f"as of {as_of.isoformat()} produced different output"
                )
        return bars

    def clear_cache(self) -> None:
        self._checkpoints.clear()

    def apply_settings(self, config: SimulationSettings) -> None:
        """Switch to new calibration settings.

        Cached path checkpoints were computed with the old settings and
        are dropped.
        """
        self.config = config
        self.generator = StochasticBarGenerator(config)
        self.assembler = CandleAssembler(config, self.session_hours)
        self._settings_version += 1
        self._checkpoints.clear()
        logger.info(
            f"Simulation engine recalibrated: vol={config.volatility_scale} drift={config.drift_scale} "
            f"max_return={config.max_return_per_bar}"
        )

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _resolve_scenario(self, symbol: str, scenario: Optional[ScenarioConfig]) -> ScenarioConfig:
        if scenario is None or not scenario.is_active:
            return default_scenario()
        if not scenario.applies_to(symbol):
            logger.debug(
                f"Scenario '{scenario.name}' is scoped to {scenario.symbol}; "
                f"using default path for {symbol}"
            )
            return default_scenario()
        return scenario

    def _generate(
        self,
        symbol: str,
        timeframe_minutes: int,
        count: int,
        as_of: datetime,
        scenario: ScenarioConfig,
        use_cache: bool,
    ) -> List[Bar]:
        tf_sec = timeframe_minutes * 60
        as_of_sec = as_of.timestamp()
        last_start = int(math.floor(as_of_sec / tf_sec)) * tf_sec
        first_start = last_start - (count - 1) * tf_sec

        base_price = scenario.start_price or get_base_price(symbol)
        scheduler = RegimeScheduler(scenario.regimes, scenario.base_volatility)
        injector = PatternOverlayInjector(
            scenario.overlays, symbol, scenario.seed, scenario.max_gap_percent, self.config
        )

        # Group requested bar starts by segment
        requested: Dict[int, List[int]] = OrderedDict()
        segments: Dict[int, _Segment] = {}
        for bar_start in range(first_start, last_start + 1, tf_sec):
            anchor_sec = self._anchor_for(scenario, bar_start, tf_sec)
            if anchor_sec not in segments:
                price = self._segment_price(symbol, scenario, base_price, anchor_sec)
                segments[anchor_sec] = _Segment(anchor_sec, price)
            requested.setdefault(anchor_sec, []).append(bar_start)

        plans: List[BarPlan] = []
        for anchor_sec, starts in requested.items():
            segment = segments[anchor_sec]
            lo = (starts[0] - anchor_sec) // tf_sec
            hi = (starts[-1] - anchor_sec) // tf_sec
            plans.extend(
                self._segment_plans(
                    symbol, timeframe_minutes, scenario, scheduler, injector, segment, lo, hi, use_cache
                )
            )

        bars = [plan.to_bar() for plan in plans[:-1]]
        bars.append(self.assembler.live_bar(plans[-1], as_of_sec - last_start))
        return bars

    @staticmethod
    def _anchor_for(scenario: ScenarioConfig, bar_start: int, tf_sec: int) -> int:
        """Start of bar index 0 for the segment containing bar_start."""
        if scenario.anchor_time is not None:
            origin = scenario.anchor_time.timestamp()
        else:
            origin = (bar_start // _DAY_SECONDS) * _DAY_SECONDS
        return int(math.ceil(origin / tf_sec)) * tf_sec

    @staticmethod
    def _segment_price(symbol: str, scenario: ScenarioConfig, base_price: float, anchor_sec: int) -> float:
        if scenario.anchor_time is not None:
            return round_price(base_price)

        day_start = (anchor_sec // _DAY_SECONDS) * _DAY_SECONDS
        # Timeframe 0 keeps the level shared across all bar sizes
        seed = derive_bar_seed(symbol, _from_epoch(day_start), scenario.seed, timeframe_minutes=0)
        z = float(make_rng(seed).standard_normal())
        z = max(-2.5, min(2.5, z))
        return round_price(base_price * math.exp(z * DAILY_LEVEL_VOLATILITY))

    def _segment_plans(
        self,
        symbol: str,
        timeframe_minutes: int,
        scenario: ScenarioConfig,
        scheduler: RegimeScheduler,
        injector: PatternOverlayInjector,
        segment: _Segment,
        lo: int,
        hi: int,
        use_cache: bool,
    ) -> List[BarPlan]:
        plans: List[BarPlan] = []
        if lo < 0:
            plans.extend(
                self._backfill(symbol, timeframe_minutes, scenario, scheduler, segment, lo, min(hi, -1))
            )
        if hi >= 0:
            plans.extend(
                self._forward(
                    symbol, timeframe_minutes, scenario, scheduler, injector, segment,
                    max(lo, 0), hi, use_cache,
                )
            )
        return plans

    def _bar_inputs(self, symbol: str, scenario: ScenarioConfig, bar_time: datetime, timeframe_minutes: int):
        seed = derive_bar_seed(symbol, bar_time, scenario.seed, timeframe_minutes)
        return seed, BarDraws.from_rng(make_rng(seed))

    def _forward(
        self,
        symbol: str,
        timeframe_minutes: int,
        scenario: ScenarioConfig,
        scheduler: RegimeScheduler,
        injector: PatternOverlayInjector,
        segment: _Segment,
        lo: int,
        hi: int,
        use_cache: bool,
    ) -> List[BarPlan]:
        """Bars [lo, hi] of the forward path, walking from bar 0 (or a checkpoint)."""
        tf_sec = timeframe_minutes * 60
        base_vol = scenario.base_volatility
        key = (
            self._settings_version, symbol, timeframe_minutes, scenario.fingerprint(),
            segment.anchor_sec, segment.start_price,
        )

        index, state = (0, None)
        if use_cache:
            index, state = self._checkpoints.nearest(key, lo)
        if state is None:
            index, state = 0, PathState.initial(segment.start_price, base_vol)

        plans: List[BarPlan] = []
        while index <= hi:
            if use_cache and index % CHECKPOINT_INTERVAL == 0:
                self._checkpoints.save(key, index, state)

            bar_time = _from_epoch(segment.anchor_sec + index * tf_sec)
            seed, draws = self._bar_inputs(symbol, scenario, bar_time, timeframe_minutes)
            params = scheduler.resolve(index).params
            sigma = self.generator.noise_sigma(params, base_vol)
            effect = injector.effect(index, sigma, draws.u(U_OVERLAY))

            base_return = self.generator.compute_return(params, base_vol, state, draws)
            bar_return = self.generator.clamp(effect.compose(base_return))

            gap = 0.0
            if effect.forced_gap is not None:
                gap = effect.forced_gap
            elif self.session_hours.is_session_open_bar(bar_time, timeframe_minutes):
                gap = self.generator.session_gap(
                    params, scenario.gap_probability, scenario.max_gap_percent, draws
                ).fraction

            open_price = round_price(state.prev_close * (1.0 + gap))
            plan = self.assembler.assemble(
                bar_time, open_price, open_price * (1.0 + bar_return), draws, params,
                state.ewma_vol, timeframe_minutes, seed, effect,
            )
            if index >= lo:
                plans.append(plan)
            state = self.generator.advance(state, plan.close, bar_return, base_vol)
            index += 1
        return plans

    def _backfill(
        self,
        symbol: str,
        timeframe_minutes: int,
        scenario: ScenarioConfig,
        scheduler: RegimeScheduler,
        segment: _Segment,
        lo: int,
        hi: int,
    ) -> List[BarPlan]:
        """Bars [lo, hi] (all negative) walking backwards from the anchor price."""
        tf_sec = timeframe_minutes * 60
        base_vol = scenario.base_volatility
        params = scheduler.resolve(-1).params

        # Walking backwards, prev_close holds the close of the bar being built
        state = PathState.initial(segment.start_price, base_vol)
        plans: List[BarPlan] = []
        for index in range(-1, lo - 1, -1):
            bar_time = _from_epoch(segment.anchor_sec + index * tf_sec)
            seed, draws = self._bar_inputs(symbol, scenario, bar_time, timeframe_minutes)
            bar_return = self.generator.compute_return(params, base_vol, state, draws)

            close_price = state.prev_close
            open_price = round_price(close_price / (1.0 + bar_return))
            plan = self.assembler.assemble(
                bar_time, open_price, close_price, draws, params,
                state.ewma_vol, timeframe_minutes, seed, NEUTRAL_EFFECT,
            )
            if index <= hi:
                plans.append(plan)
            state = self.generator.advance(state, plan.open, bar_return, base_vol)

        plans.reverse()
        return plans


def bar_start_for(as_of: datetime, timeframe_minutes: int) -> datetime:
    """Start of the bar containing as_of."""
    tf_sec = max(1, timeframe_minutes) * 60
    seconds = int(math.floor(_to_utc(as_of).timestamp() / tf_sec)) * tf_sec
    return _from_epoch(seconds)
