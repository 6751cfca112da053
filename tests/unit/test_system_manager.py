"""
Unit tests for SystemManager without persistence.
"""
from datetime import datetime, timedelta, timezone

import pytest

from marketsim.core.enums import ClockMode
from marketsim.core.exceptions import ClockError, ConfigurationError
from marketsim.managers import SystemManager
from marketsim.managers.simulation_engine import bar_start_for
from tests.fixtures.scenarios import ANCHOR, FakeWallClock


@pytest.fixture
def system_mgr():
    manager = SystemManager(persist=False, tick_seconds=0.05, wall_clock=FakeWallClock(ANCHOR + timedelta(hours=2)))
    yield manager
    manager.shutdown()


class TestClockOperations:

    def test_current_time_is_real_by_default(self, system_mgr):
        now, mode = system_mgr.get_current_time()
        assert mode is ClockMode.REAL
        assert now == ANCHOR + timedelta(hours=2)

    def test_simulated_start_and_reset(self, system_mgr):
        system_mgr.set_mode("simulated")
        system_mgr.set_start_time(ANCHOR)
        now, mode = system_mgr.get_current_time()
        assert (now, mode) == (ANCHOR, ClockMode.SIMULATED)
        assert system_mgr.reset() == ANCHOR

    def test_invalid_speed(self, system_mgr):
        with pytest.raises(ClockError):
            system_mgr.set_speed(-2)
        assert system_mgr.set_speed(60) == 60.0
        assert system_mgr.get_clock_state().speed == 60.0

    def test_start_and_pause(self, system_mgr):
        system_mgr.set_mode("simulated")
        system_mgr.start()
        assert system_mgr.get_clock_state().running
        assert system_mgr.get_clock_driver().is_alive()
        system_mgr.pause()
        assert not system_mgr.get_clock_state().running


class TestScenarioOperations:

    def test_set_scenario_by_name(self, system_mgr):
        config = system_mgr.set_scenario("VWAP Long Test")
        assert config.anchor_time == datetime(2024, 1, 2, tzinfo=timezone.utc)
        state = system_mgr.get_scenario_state()
        assert state.enabled and state.preset_name == "VWAP Long Test"

    def test_set_unknown_scenario(self, system_mgr):
        with pytest.raises(ConfigurationError):
            system_mgr.set_scenario("Nope")

    def test_set_custom_scenario(self, system_mgr):
        config = system_mgr.set_scenario({"seed": 3, "regimes": [{"type": "HIGH_VOL", "bars": 40}]})
        assert config.name == "Custom"

    def test_enable_and_reset(self, system_mgr):
        system_mgr.set_scenario("Crash Scenario")
        assert not system_mgr.enable_scenario(False)
        assert not system_mgr.get_scenario_state().enabled
        system_mgr.reset_scenario()
        assert system_mgr.get_scenario_state().preset_name == "Default"


class TestBarGeneration:

    def test_bars_follow_active_scenario(self, system_mgr):
        default_bars = system_mgr.generate_bars("AAPL", 5, count=30)
        system_mgr.set_scenario("VWAP Long Test")
        scenario_bars = system_mgr.generate_bars("AAPL", 5, count=30)
        assert default_bars != scenario_bars

        system_mgr.enable_scenario(False)
        assert system_mgr.generate_bars("AAPL", 5, count=30) == default_bars

    def test_as_of_beyond_now_is_truncated(self, system_mgr, log_messages):
        now, _ = system_mgr.get_current_time()
        bars = system_mgr.generate_bars("AAPL", 5, count=10, as_of=now + timedelta(days=1))
        assert bars[-1].timestamp == bar_start_for(now, 5)
        assert any(level == "WARNING" and "truncating" in text for level, text in log_messages)

    def test_past_as_of(self, system_mgr):
        as_of = ANCHOR - timedelta(days=2)
        bars = system_mgr.generate_bars("MSFT", 15, count=10, as_of=as_of.replace(tzinfo=None))
        assert bars[-1].timestamp == bar_start_for(as_of, 15)

    def test_count_from_period(self, system_mgr):
        assert len(system_mgr.generate_bars("AAPL", 5, period="1d")) == 78

    def test_simulated_clock_limits_reveal(self, system_mgr):
        system_mgr.set_mode("simulated")
        system_mgr.set_start_time(ANCHOR)
        bars = system_mgr.generate_bars("AAPL", 1, count=5)
        assert bars[-1].timestamp == ANCHOR


class TestLifecycle:

    def test_system_info(self, system_mgr):
        info = system_mgr.system_info()
        assert info["mode"] == "real"
        assert info["persistence"] is False
        assert info["scenario"]["preset"] == "Default"

    def test_shutdown_is_repeatable(self, system_mgr):
        system_mgr.shutdown()
        system_mgr.shutdown()
