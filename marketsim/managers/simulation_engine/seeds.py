"""Seed Derivation

Pure functions mapping (symbol, time, scenario seed) to PRNG seeds.

Every bar gets its own generator, seeded independently of call order, so
any bar can be recomputed in isolation and concurrent requests never share
random state. The mixing formula is fixed here once:

    bar_seed  = fnv1a64(SYMBOL)
              ^ splitmix64(epoch_minute(bar_time))
              ^ splitmix64(timeframe << 32)
              ^ splitmix64(scenario_seed + GOLDEN_GAMMA)   # only when seeded
    tick_seed = splitmix64(bar_seed ^ (elapsed_second * 7919))

Generators are NumPy PCG64 instances, never the interpreter default, so the
streams are reproducible across platforms and Python versions.
"""
from datetime import datetime, timezone
from typing import Optional

import numpy as np


MASK64 = (1 << 64) - 1
GOLDEN_GAMMA = 0x9E3779B97F4A7C15
FNV_OFFSET = 0xCBF29CE484222325
FNV_PRIME = 0x100000001B3
TICK_PRIME = 7919

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def splitmix64(value: int) -> int:
    """SplitMix64 finalizer (bijective 64-bit mixer)."""
    z = (value + GOLDEN_GAMMA) & MASK64
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK64
    return z ^ (z >> 31)


def symbol_hash(symbol: str) -> int:
    """64-bit FNV-1a over the upper-cased UTF-8 symbol."""
    h = FNV_OFFSET
    for byte in symbol.strip().upper().encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & MASK64
    return h


def epoch_minute(ts: datetime) -> int:
    """Whole minutes since the Unix epoch (naive datetimes are UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int((ts - _EPOCH).total_seconds() // 60)


def scenario_salt(scenario_seed: Optional[int]) -> int:
    if scenario_seed is None:
        return 0
    return splitmix64((scenario_seed + GOLDEN_GAMMA) & MASK64)


def derive_bar_seed(
    symbol: str,
    bar_time: datetime,
    scenario_seed: Optional[int] = None,
    timeframe_minutes: int = 1,
) -> int:
    """Seed for one bar of one symbol.

    Args:
        symbol: Ticker symbol (case-insensitive)
        bar_time: Bar open timestamp
        scenario_seed: Scenario seed, or None for symbol-only seeding
        timeframe_minutes: Bar timeframe

    Returns:
        Unsigned 64-bit seed
    """
    seed = symbol_hash(symbol)
    seed ^= splitmix64(epoch_minute(bar_time) & MASK64)
    seed ^= splitmix64((timeframe_minutes << 32) & MASK64)
    seed ^= scenario_salt(scenario_seed)
    return seed & MASK64


def derive_tick_seed(bar_seed: int, elapsed_second: int) -> int:
    """Seed for one elapsed second inside a live bar."""
    return splitmix64((bar_seed ^ (elapsed_second * TICK_PRIME)) & MASK64)


def derive_overlay_seed(symbol: str, scenario_seed: Optional[int], overlay_index: int) -> int:
    """Seed for an overlay's trigger-bar jitter."""
    return splitmix64(symbol_hash(symbol) ^ scenario_salt(scenario_seed) ^ (overlay_index & MASK64))


def make_rng(seed: int) -> np.random.Generator:
    """Named, portable generator for a derived seed."""
    return np.random.Generator(np.random.PCG64(seed & MASK64))
