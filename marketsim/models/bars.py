"""
Bar (OHLCV) data model
"""
from datetime import datetime
from typing import Iterable, List

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Bar(BaseModel):
    """One OHLCV record for a fixed time interval.

    Prices carry 2-decimal precision; volume is a non-negative integer.
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float = Field(gt=0)
    high: float = Field(gt=0)
    low: float = Field(gt=0)
    close: float = Field(gt=0)
    volume: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_ohlc(self) -> "Bar":
        if not (self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high):
            raise ValueError(
                f"OHLC invariant violated at {self.timestamp}: "
                f"o={self.open} h={self.high} l={self.low} c={self.close}"
            )
        return self


BAR_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


def bars_to_dataframe(bars: Iterable[Bar]) -> pd.DataFrame:
    """Convert a bar sequence to a DataFrame (one row per bar, time ascending)."""
    rows: List[dict] = [bar.model_dump() for bar in bars]
    if not rows:
        return pd.DataFrame(columns=BAR_COLUMNS)
    return pd.DataFrame(rows, columns=BAR_COLUMNS)
