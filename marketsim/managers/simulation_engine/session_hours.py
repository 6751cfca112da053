"""Session Hours

Trading-session calendar used by the engine for two things only:
placing gaps at session opens and shaping volume by time of day.
"""
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from marketsim.config import settings
from marketsim.config.settings import SessionConfig


@dataclass(frozen=True)
class SessionHours:
    """Regular trading hours for one exchange.

    Times are local to `timezone`; bar timestamps are converted before
    comparison, so callers can pass UTC.
    """
    timezone: str = "America/New_York"
    regular_open: time = time(9, 30)
    regular_close: time = time(16, 0)
    trading_days: List[int] = field(default_factory=lambda: [0, 1, 2, 3, 4])
    open_window_minutes: int = 60
    close_window_minutes: int = 60

    @classmethod
    def from_config(cls, config: Optional[SessionConfig] = None) -> "SessionHours":
        config = config or settings.SESSION
        return cls(
            timezone=config.timezone,
            regular_open=config.regular_open,
            regular_close=config.regular_close,
            trading_days=list(config.trading_days),
            open_window_minutes=config.open_window_minutes,
            close_window_minutes=config.close_window_minutes,
        )

    def to_local(self, ts: datetime) -> datetime:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(ZoneInfo(self.timezone))

    def is_trading_day(self, ts: datetime) -> bool:
        return self.to_local(ts).weekday() in self.trading_days

    def is_session_open_bar(self, bar_time: datetime, timeframe_minutes: int) -> bool:
        """True if the bar starting at bar_time contains the regular open."""
        local = self.to_local(bar_time)
        if local.weekday() not in self.trading_days:
            return False
        session_open = local.replace(
            hour=self.regular_open.hour, minute=self.regular_open.minute, second=0, microsecond=0
        )
        return local <= session_open < local + timedelta(minutes=timeframe_minutes)

    def volume_multiplier(self, bar_time: datetime, u: float) -> float:
        """Time-of-day volume intensity for a bar.

        Args:
            bar_time: Bar open timestamp
            u: Uniform draw in [0, 1) for the bar

        Returns:
            ~2x near the open, ~1.8x near the close, ~1x midday, ~0.35x outside hours
        """
        local = self.to_local(bar_time)
        if local.weekday() not in self.trading_days:
            return 0.2 + u * 0.3

        minute = local.hour * 60 + local.minute
        open_minute = self.regular_open.hour * 60 + self.regular_open.minute
        close_minute = self.regular_close.hour * 60 + self.regular_close.minute

        if minute < open_minute or minute >= close_minute:
            return 0.2 + u * 0.3   # Pre/post market
        if minute < open_minute + self.open_window_minutes:
            return 1.8 + u * 0.4   # Opening rush
        if minute >= close_minute - self.close_window_minutes:
            return 1.6 + u * 0.4   # Closing auction build-up
        return 0.8 + u * 0.4       # Midday
