"""
Unit tests for PatternOverlayInjector.
"""
import pytest

from marketsim.core.enums import Direction, PatternOverlayType, TriangleType
from marketsim.managers.simulation_engine.pattern_overlay import (
    BREAKOUT_SETUP_BARS,
    NEUTRAL_EFFECT,
    OverlayEffect,
    PatternOverlayInjector,
)
from marketsim.models.scenario import PatternOverlayConfig


SIGMA = 0.003


def _injector(*overlays, symbol="AAPL", seed=42, config=None):
    return PatternOverlayInjector(overlays, symbol, seed, max_gap_percent=0.03, config=config)


class TestComposition:

    def test_compose(self):
        effect = OverlayEffect(damping=0.5, offset=0.01)
        assert effect.compose(0.02) == pytest.approx(0.02)

    def test_neutral_leaves_return_unchanged(self):
        assert NEUTRAL_EFFECT.compose(0.0123) == 0.0123
        assert NEUTRAL_EFFECT.is_neutral


class TestTriggerTiming:

    @pytest.mark.parametrize("symbol", ["AAPL", "MSFT", "TSLA", "NVDA", "SPY", "SAP.DE", "ZZZZ"])
    def test_trigger_within_noise_window(self, symbol):
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=180, noise_bars=2)
        trigger = _injector(overlay, symbol=symbol).trigger_bars()[0]
        assert 178 <= trigger <= 182

    def test_trigger_is_stable_per_symbol_and_seed(self):
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=180, noise_bars=2)
        assert _injector(overlay).trigger_bars() == _injector(overlay).trigger_bars()

    def test_zero_noise_triggers_exactly(self):
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=180, noise_bars=0)
        assert _injector(overlay).trigger_bars() == [180]

    @pytest.mark.parametrize("symbol", ["AAPL", "AMD", "QQQ", "MSFT", "TSLA", "NVDA", "SPY", "META"])
    def test_trigger_never_before_first_bar(self, symbol):
        overlay = PatternOverlayConfig(PatternOverlayType.GAP_AND_GO, at_bar=0, direction=Direction.DOWN, noise_bars=2)
        injector = _injector(overlay, symbol=symbol, seed=7)
        trigger = injector.trigger_bars()[0]
        assert 0 <= trigger <= 2

        effect = injector.effect(trigger, SIGMA, 0.5)
        assert effect.phase == "gap"
        assert effect.forced_gap < 0

    def test_shift_moves_whole_window(self):
        overlay = PatternOverlayConfig(PatternOverlayType.PULLBACK, at_bar=50, to_bar=59, noise_bars=3)
        window = _injector(overlay).windows[0]
        assert window.end - window.start == 9
        assert window.start - 50 == window.shift


class TestEffects:

    def test_outside_windows_is_neutral(self):
        overlay = PatternOverlayConfig(PatternOverlayType.PULLBACK, at_bar=100, noise_bars=0)
        injector = _injector(overlay)
        assert injector.effect(50, SIGMA, 0.5) is NEUTRAL_EFFECT
        assert injector.effect(500, SIGMA, 0.5) is NEUTRAL_EFFECT

    def test_negative_index_is_neutral(self):
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=0, noise_bars=0)
        assert _injector(overlay).effect(-1, SIGMA, 0.5) is NEUTRAL_EFFECT

    @pytest.mark.parametrize("direction", [Direction.UP, Direction.DOWN])
    def test_breakout_trigger(self, direction):
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=100, direction=direction,
                                       volume_boost=2.5, noise_bars=0)
        injector = _injector(overlay)
        trigger = injector.effect(100, SIGMA, 0.5)
        follow = injector.effect(101, SIGMA, 0.5)

        assert trigger.phase == "trigger"
        assert trigger.offset * direction.sign > 0
        assert trigger.volume_multiplier == 2.5
        assert abs(follow.offset) < abs(trigger.offset)

    def test_breakout_setup_compresses_range(self):
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=100, noise_bars=0)
        injector = _injector(overlay)
        setup = injector.effect(99, SIGMA, 0.5)
        assert setup.phase == "setup"
        assert setup.damping < 1.0
        assert setup.range_factor < 1.0
        assert injector.effect(100 - BREAKOUT_SETUP_BARS - 1, SIGMA, 0.5) is NEUTRAL_EFFECT

    def test_breakout_setup_does_not_override_other_windows(self):
        pullback = PatternOverlayConfig(PatternOverlayType.PULLBACK, at_bar=85, to_bar=94, noise_bars=0)
        breakout = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=100, noise_bars=0)
        injector = _injector(pullback, breakout)
        assert injector.effect(90, SIGMA, 0.5).phase in ("retrace", "resume")
        assert injector.effect(96, SIGMA, 0.5).phase == "setup"

    def test_pullback_retraces_then_resumes(self):
        overlay = PatternOverlayConfig(PatternOverlayType.PULLBACK, at_bar=100, to_bar=109,
                                       direction=Direction.UP, depth=0.8, noise_bars=0)
        injector = _injector(overlay)
        assert injector.effect(100, SIGMA, 0.5).offset < 0
        assert injector.effect(109, SIGMA, 0.5).offset > 0

    def test_gap_and_go_forces_gap_on_first_bar(self):
        overlay = PatternOverlayConfig(PatternOverlayType.GAP_AND_GO, at_bar=150, direction=Direction.DOWN,
                                       volume_boost=4.0, noise_bars=0)
        injector = _injector(overlay)
        first = injector.effect(150, SIGMA, 0.0)
        assert first.forced_gap == pytest.approx(-0.015)
        assert injector.effect(150, SIGMA, 0.999).forced_gap == pytest.approx(-0.03, abs=1e-4)
        assert injector.effect(151, SIGMA, 0.5).forced_gap is None

    def test_triangle_converges_then_breaks_out(self):
        overlay = PatternOverlayConfig(PatternOverlayType.TRIANGLE, at_bar=10, to_bar=29,
                                       triangle_subtype=TriangleType.ASCENDING, noise_bars=0)
        injector = _injector(overlay)
        early = injector.effect(11, SIGMA, 0.5)
        late = injector.effect(28, SIGMA, 0.5)
        assert late.range_factor < early.range_factor
        assert early.offset > 0
        assert injector.effect(29, SIGMA, 0.5).phase == "breakout"

    def test_double_top_breaks_the_neckline(self):
        overlay = PatternOverlayConfig(PatternOverlayType.DOUBLE_TOP, at_bar=0, to_bar=39,
                                       direction=Direction.DOWN, noise_bars=0)
        injector = _injector(overlay)
        offsets = [injector.effect(bar, SIGMA, 0.5).offset for bar in range(40)]
        # Rally into the first peak, final leg ends below the neckline
        assert sum(offsets[:8]) > 0
        assert sum(offsets[24:]) < 0
        assert sum(offsets) < sum(offsets[:16])

    @pytest.mark.parametrize("pattern", list(PatternOverlayType))
    def test_every_pattern_shapes_its_window(self, pattern):
        overlay = PatternOverlayConfig(pattern, at_bar=10, noise_bars=0)
        effect = _injector(overlay).effect(10, SIGMA, 0.5)
        assert effect.phase != ""

    def test_strength_zero_removes_offsets(self, sim_config):
        config = sim_config.model_copy(update={"pattern_overlay_strength": 0.0})
        overlay = PatternOverlayConfig(PatternOverlayType.BREAKOUT, at_bar=10, noise_bars=0)
        assert _injector(overlay, config=config).effect(10, SIGMA, 0.5).offset == 0.0
