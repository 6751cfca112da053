"""
Unit tests for session hours and base prices.
"""
from datetime import datetime, time, timezone

import pytest

from marketsim.config.settings import SessionConfig
from marketsim.managers.simulation_engine.base_prices import BASE_PRICES, get_base_price
from marketsim.managers.simulation_engine.session_hours import SessionHours


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestSessionOpenBar:

    @pytest.mark.parametrize("bar_time,timeframe,expected", [
        (utc(2024, 1, 2, 14, 30), 5, True),     # 09:30 EST
        (utc(2024, 1, 2, 14, 35), 5, False),
        (utc(2024, 1, 2, 14, 25), 5, False),
        (utc(2024, 1, 2, 14, 0), 60, True),     # 09:00-10:00 contains the open
        (utc(2024, 7, 2, 13, 30), 1, True),     # 09:30 EDT
        (utc(2024, 1, 6, 14, 30), 5, False),    # Saturday
    ])
    def test_is_session_open_bar(self, bar_time, timeframe, expected):
        assert SessionHours().is_session_open_bar(bar_time, timeframe) is expected

    def test_naive_times_are_utc(self):
        assert SessionHours().is_session_open_bar(datetime(2024, 1, 2, 14, 30), 5)

    def test_from_config(self):
        config = SessionConfig(timezone="Europe/Berlin", regular_open=time(9, 0), regular_close=time(17, 30))
        hours = SessionHours.from_config(config)
        assert hours.timezone == "Europe/Berlin"
        # 09:00 CET == 08:00 UTC
        assert hours.is_session_open_bar(utc(2024, 1, 2, 8, 0), 1)


class TestVolumeProfile:

    def test_open_and_close_busier_than_midday(self):
        hours = SessionHours()
        opening = hours.volume_multiplier(utc(2024, 1, 2, 14, 45), 0.5)
        midday = hours.volume_multiplier(utc(2024, 1, 2, 17, 0), 0.5)
        closing = hours.volume_multiplier(utc(2024, 1, 2, 20, 30), 0.5)
        overnight = hours.volume_multiplier(utc(2024, 1, 2, 3, 0), 0.5)
        assert opening > closing > midday > overnight

    def test_weekend_is_quiet(self):
        hours = SessionHours()
        assert hours.volume_multiplier(utc(2024, 1, 6, 15, 0), 0.99) < 0.5
        assert not hours.is_trading_day(utc(2024, 1, 6, 15, 0))


class TestBasePrices:

    def test_known_symbol(self):
        assert get_base_price("AAPL") == BASE_PRICES["AAPL"]
        assert get_base_price(" aapl ") == BASE_PRICES["AAPL"]

    def test_unknown_symbol_is_stable(self):
        price = get_base_price("QWERTY")
        assert 50.0 <= price < 500.0
        assert get_base_price("qwerty") == price
