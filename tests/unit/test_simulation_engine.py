"""
Unit tests for MarketSimulationEngine.

Tests verify:
- Determinism across calls and engine instances
- Historical stability (closed bars never change as time advances)
- No bar beyond the reveal time
- Scenario scoping, bounded returns, gaps and overlays
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from marketsim.config.settings import SimulationSettings
from marketsim.core.enums import Direction, MarketRegime, PatternOverlayType
from marketsim.core.exceptions import DeterminismViolation
from marketsim.managers.simulation_engine import (
    MarketSimulationEngine,
    bar_start_for,
    bars_for_period,
    get_base_price,
)
from marketsim.managers.simulation_engine.pattern_overlay import PatternOverlayInjector
from marketsim.models.bars import Bar
from marketsim.models.scenario import PatternOverlayConfig, RegimePhase, ScenarioConfig
from tests.fixtures.scenarios import ANCHOR


FIVE_MIN = timedelta(minutes=5)


def _after_bars(n: int, extra: timedelta = timedelta(minutes=1)) -> datetime:
    """Reveal time inside bar n (5-minute bars from ANCHOR)."""
    return ANCHOR + n * FIVE_MIN + extra


def _by_time(bars):
    return {bar.timestamp: bar for bar in bars}


class TestHelpers:

    def test_bars_for_period(self):
        assert bars_for_period("1d", 1) == 390
        assert bars_for_period("5d", 5) == 390
        assert bars_for_period("1D", 15) == 26
        assert bars_for_period("bogus", 5) == 78

    def test_bar_start_for(self):
        assert bar_start_for(ANCHOR + timedelta(minutes=7, seconds=30), 5) == ANCHOR + FIVE_MIN
        assert bar_start_for(ANCHOR, 5) == ANCHOR


class TestDeterminism:

    def test_same_inputs_same_bars(self, engine, range_scenario):
        as_of = _after_bars(19)
        first = engine.generate_bars("AAPL", 5, 20, as_of, range_scenario)
        second = engine.generate_bars("AAPL", 5, 20, as_of, range_scenario)
        assert first == second

    def test_independent_engines_agree(self, sim_config, session_hours, breakout_scenario):
        as_of = _after_bars(250)
        a = MarketSimulationEngine(sim_config, session_hours).generate_bars("TSLA", 5, 300, as_of, breakout_scenario)
        b = MarketSimulationEngine(sim_config, session_hours).generate_bars("TSLA", 5, 300, as_of, breakout_scenario)
        assert a == b

    def test_symbol_case_and_naive_time(self, engine):
        as_of = datetime(2024, 3, 5, 16, 2, 30, tzinfo=timezone.utc)
        expected = engine.generate_bars("AAPL", 5, 30, as_of)
        assert engine.generate_bars("aapl", 5, 30, as_of.replace(tzinfo=None)) == expected

    def test_cached_checkpoints_match_fresh_generation(self, sim_config, session_hours, breakout_scenario):
        warmed = MarketSimulationEngine(sim_config, session_hours)
        warmed.generate_bars("NVDA", 5, 800, _after_bars(700), breakout_scenario)

        fresh = MarketSimulationEngine(sim_config, session_hours)
        as_of = _after_bars(640, timedelta(minutes=3))
        assert warmed.generate_bars("NVDA", 5, 50, as_of, breakout_scenario) == \
            fresh.generate_bars("NVDA", 5, 50, as_of, breakout_scenario)

        warmed.clear_cache()
        assert warmed.generate_bars("NVDA", 5, 50, as_of, breakout_scenario) == \
            fresh.generate_bars("NVDA", 5, 50, as_of, breakout_scenario)

    def test_verify_determinism_passes(self, sim_config, session_hours, range_scenario):
        checked = MarketSimulationEngine(sim_config.model_copy(update={"verify_determinism": True}), session_hours)
        assert len(checked.generate_bars("AAPL", 5, 20, _after_bars(19), range_scenario)) == 20

    def test_verify_determinism_detects_mismatch(self, sim_config, session_hours):
        checked = MarketSimulationEngine(sim_config.model_copy(update={"verify_determinism": True}), session_hours)
        a = [Bar(timestamp=ANCHOR, open=10, high=11, low=9, close=10.5, volume=100)]
        b = [Bar(timestamp=ANCHOR, open=10, high=11, low=9, close=10.4, volume=100)]
        with patch.object(checked, "_generate", side_effect=[a, b]):
            with pytest.raises(DeterminismViolation):
                checked.generate_bars("AAPL", 5, 1, ANCHOR)


class TestRevealRule:

    @pytest.mark.parametrize("offset_seconds", [0, 1, 59, 299, 300, 4321])
    def test_no_bar_after_as_of(self, engine, range_scenario, offset_seconds):
        as_of = ANCHOR + timedelta(hours=2, seconds=offset_seconds)
        bars = engine.generate_bars("AAPL", 5, 40, as_of, range_scenario)
        assert len(bars) == 40
        assert all(bar.timestamp <= as_of for bar in bars)
        assert bars[-1].timestamp == bar_start_for(as_of, 5)

    def test_ascending_grid(self, engine):
        bars = engine.generate_bars("MSFT", 15, 60, datetime(2024, 3, 5, 18, 40, tzinfo=timezone.utc))
        steps = {b.timestamp - a.timestamp for a, b in zip(bars, bars[1:])}
        assert steps == {timedelta(minutes=15)}

    def test_count_is_clamped(self, session_hours):
        small = MarketSimulationEngine(SimulationSettings(max_bars=50), session_hours)
        assert len(small.generate_bars("AAPL", 5, 1000, ANCHOR)) == 50
        assert len(small.generate_bars("AAPL", 5, 0, ANCHOR)) == 1

    def test_live_bar_at_its_first_second(self, engine, range_scenario):
        bars = engine.generate_bars("AAPL", 5, 5, ANCHOR, range_scenario)
        live = bars[-1]
        assert live.timestamp == ANCHOR
        assert live.open == live.high == live.low == live.close == 100.0
        assert live.volume == 0

    def test_live_bar_keeps_its_open(self, engine, range_scenario):
        early = engine.generate_bars("AAPL", 5, 3, ANCHOR + timedelta(minutes=10, seconds=20), range_scenario)[-1]
        late = engine.generate_bars("AAPL", 5, 3, ANCHOR + timedelta(minutes=14, seconds=50), range_scenario)[-1]
        assert early.timestamp == late.timestamp
        assert early.open == late.open
        assert late.high >= early.high
        assert late.low <= early.low
        assert late.volume >= early.volume


class TestHistoricalStability:

    @pytest.mark.parametrize("as_of", [
        ANCHOR + timedelta(hours=3, minutes=2),
        datetime(2024, 1, 3, 0, 20, tzinfo=timezone.utc),   # straddles UTC midnight
        ANCHOR - timedelta(hours=5),                          # before the anchor (backfill)
    ])
    @pytest.mark.parametrize("use_scenario", [True, False])
    def test_closed_bars_never_change(self, engine, breakout_scenario, as_of, use_scenario):
        scenario = breakout_scenario if use_scenario else None
        before = engine.generate_bars("AAPL", 5, 30, as_of, scenario)
        after = _by_time(engine.generate_bars("AAPL", 5, 45, as_of + timedelta(hours=1), scenario))

        for bar in before[:-1]:
            assert after[bar.timestamp] == bar

    def test_stable_across_cache_state(self, sim_config, session_hours):
        as_of = datetime(2024, 3, 5, 20, 0, tzinfo=timezone.utc)
        engine = MarketSimulationEngine(sim_config, session_hours)
        long_view = _by_time(engine.generate_bars("SPY", 1, 300, as_of))
        short_view = MarketSimulationEngine(sim_config, session_hours).generate_bars("SPY", 1, 20, as_of)
        for bar in short_view[:-1]:
            assert long_view[bar.timestamp] == bar


class TestScenarioBehavior:

    def test_bounded_returns(self, engine, range_scenario):
        bars = engine.generate_bars("AAPL", 5, 20, _after_bars(19), range_scenario)
        assert bars[0].timestamp == ANCHOR
        assert bars[0].open == 100.0
        for bar in bars:
            assert abs(bar.close / bar.open - 1.0) <= 0.02 + 1e-3
            assert 95.0 <= bar.close <= 105.0
            assert bar.low <= min(bar.open, bar.close) <= max(bar.open, bar.close) <= bar.high

    def test_start_price_override(self, engine, range_scenario):
        bars = engine.generate_bars("AAPL", 5, 20, _after_bars(19), range_scenario, start_price=250.0)
        assert bars[0].open == 250.0

    def test_gapless_path_is_continuous(self, engine, gapless_scenario):
        # 10 backfilled bars, then the forward path across the phase change
        bars = engine.generate_bars("IBM", 5, 160, _after_bars(149), gapless_scenario)
        assert bars[10].timestamp == ANCHOR
        assert bars[10].open == 50.0
        for prev, bar in zip(bars, bars[1:]):
            assert bar.open == prev.close

    def test_scenario_seed_changes_path(self, engine, range_scenario):
        as_of = _after_bars(19)
        a = engine.generate_bars("AAPL", 5, 20, as_of, range_scenario)
        b = engine.generate_bars("AAPL", 5, 20, as_of, range_scenario.with_overrides(seed=43))
        assert a != b

    def test_timeframes_are_independent_paths(self, engine):
        as_of = datetime(2024, 3, 5, 18, 0, tzinfo=timezone.utc)
        one = engine.generate_bars("AAPL", 1, 10, as_of)
        five = engine.generate_bars("AAPL", 5, 10, as_of)
        assert [b.close for b in one] != [b.close for b in five]

    def test_symbol_scoped_scenario(self, engine, breakout_scenario):
        scoped = breakout_scenario.with_overrides(symbol="AAPL")
        as_of = _after_bars(190)
        assert engine.generate_bars("MSFT", 5, 50, as_of, scoped) == engine.generate_bars("MSFT", 5, 50, as_of)
        assert engine.generate_bars("AAPL", 5, 50, as_of, scoped) != engine.generate_bars("AAPL", 5, 50, as_of)

    def test_inactive_scenario_uses_default_path(self, engine, breakout_scenario):
        as_of = _after_bars(50)
        inactive = breakout_scenario.with_overrides(is_active=False)
        assert engine.generate_bars("AAPL", 5, 20, as_of, inactive) == engine.generate_bars("AAPL", 5, 20, as_of)

    def test_default_path_stays_near_base_price(self, engine):
        bars = engine.generate_bars("AAPL", 5, 78, datetime(2024, 3, 5, 21, 0, tzinfo=timezone.utc))
        base = get_base_price("AAPL")
        assert all(0.8 * base <= bar.close <= 1.25 * base for bar in bars)

    def test_gap_and_go_gaps_the_open(self, engine):
        scenario = ScenarioConfig(
            name="Gap Down",
            seed=5,
            start_price=100.0,
            anchor_time=ANCHOR,
            gap_probability=0.0,
            max_gap_percent=0.03,
            regimes=(RegimePhase(MarketRegime.RANGE, 100),),
            overlays=(PatternOverlayConfig(PatternOverlayType.GAP_AND_GO, at_bar=50,
                                           direction=Direction.DOWN, noise_bars=0),),
        )
        bars = engine.generate_bars("AAPL", 5, 61, _after_bars(60), scenario)
        gap = bars[50].open / bars[49].close - 1.0
        assert -0.031 <= gap <= -0.014
        assert bars[49].open == bars[48].close

    @pytest.mark.parametrize("symbol", ["AAPL", "AMD", "QQQ", "MSFT"])
    def test_gap_and_go_on_first_bar_is_kept(self, engine, symbol):
        overlay = PatternOverlayConfig(PatternOverlayType.GAP_AND_GO, at_bar=0, direction=Direction.DOWN, noise_bars=2)
        scenario = ScenarioConfig(
            name="Gap At Open",
            seed=7,
            start_price=100.0,
            anchor_time=ANCHOR,
            gap_probability=0.0,
            max_gap_percent=0.03,
            regimes=(RegimePhase(MarketRegime.RANGE, 50),),
            overlays=(overlay,),
        )
        trigger = PatternOverlayInjector(scenario.overlays, symbol, scenario.seed).trigger_bars()[0]

        # bars[10] is bar 0
        bars = engine.generate_bars(symbol, 5, 30, _after_bars(19), scenario)
        gap = bars[10 + trigger].open / bars[9 + trigger].close - 1.0
        assert -0.031 <= gap <= -0.014

    def test_breakout_volume_spike(self, engine, breakout_scenario):
        trigger = PatternOverlayInjector(breakout_scenario.overlays, "AAPL", breakout_scenario.seed).trigger_bars()[0]
        assert 178 <= trigger <= 182

        bars = engine.generate_bars("AAPL", 5, 201, _after_bars(200), breakout_scenario)
        setup_volumes = [bar.volume for bar in bars[trigger - 20:trigger]]
        assert bars[trigger].volume > max(setup_volumes)

    def test_history_before_anchor(self, engine, range_scenario):
        bars = engine.generate_bars("AAPL", 5, 50, ANCHOR - timedelta(days=1), range_scenario)
        assert len(bars) == 50
        assert all(bar.timestamp < ANCHOR for bar in bars)


class TestApplySettings:

    def test_tighter_return_cap_applies(self, engine, sim_config, range_scenario):
        as_of = _after_bars(59)
        before = engine.generate_bars("AAPL", 5, 60, as_of, range_scenario)

        engine.apply_settings(sim_config.model_copy(update={"max_return_per_bar": 0.005, "volatility_scale": 0.9}))
        after = engine.generate_bars("AAPL", 5, 60, as_of, range_scenario)

        assert engine.config.max_return_per_bar == 0.005
        assert engine.generator.config is engine.config
        assert engine.assembler.config is engine.config
        assert after != before
        for bar in after:
            assert abs(bar.close / bar.open - 1.0) <= 0.005 + 1e-3

    def test_cached_paths_are_dropped(self, sim_config, session_hours, breakout_scenario):
        as_of = _after_bars(400)
        calmer = sim_config.model_copy(update={"volatility_scale": 0.05})

        warmed = MarketSimulationEngine(sim_config, session_hours)
        warmed.generate_bars("NVDA", 5, 400, as_of, breakout_scenario)
        warmed.apply_settings(calmer)

        fresh = MarketSimulationEngine(calmer, session_hours)
        assert warmed.generate_bars("NVDA", 5, 50, as_of, breakout_scenario) == \
            fresh.generate_bars("NVDA", 5, 50, as_of, breakout_scenario)

    def test_back_to_original_settings_restores_bars(self, engine, sim_config, range_scenario):
        as_of = _after_bars(30)
        original = engine.generate_bars("MSFT", 5, 30, as_of, range_scenario)

        engine.apply_settings(sim_config.model_copy(update={"drift_scale": 0.9}))
        engine.apply_settings(sim_config)
        assert engine.generate_bars("MSFT", 5, 30, as_of, range_scenario) == original
