"""Stochastic Bar Generator

Turns effective regime parameters, a per-bar generator and the running
path state into one bar's close-to-close return.

Random draws are taken in a fixed order (one standard normal, then a
fixed-size block of uniforms) whether or not a given feature uses its
draw, so adding an overlay or a gap never shifts the randomness of the
other features.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from marketsim.config import settings
from marketsim.config.settings import SimulationSettings
from marketsim.models.scenario import RegimeParameters


# Uniform slots inside BarDraws
U_FAT_TAIL = 0
U_TAIL_SIZE = 1
U_GAP = 2
U_GAP_SIZE = 3
U_GAP_SIGN = 4
U_RANGE = 5
U_HIGH = 6
U_LOW = 7
U_SESSION = 8
U_JITTER = 9
U_OVERLAY = 10
U_SPARE = 11
N_UNIFORMS = 12


@dataclass(frozen=True)
class BarDraws:
    """All random numbers consumed by one bar."""
    normal: float
    uniforms: np.ndarray

    @classmethod
    def from_rng(cls, rng: np.random.Generator) -> "BarDraws":
        normal = float(rng.standard_normal())
        uniforms = rng.random(N_UNIFORMS)
        return cls(normal=normal, uniforms=uniforms)

    def u(self, slot: int) -> float:
        return float(self.uniforms[slot])


@dataclass(frozen=True)
class PathState:
    """Running state carried from one bar to the next.

    Attributes:
        prev_close: Close of the previous bar
        reference: Exponential moving average of closes (mean-reversion anchor)
        ewma_vol: EWMA of absolute returns (volatility clustering)
    """
    prev_close: float
    reference: float
    ewma_vol: float

    @classmethod
    def initial(cls, price: float, base_volatility: float) -> "PathState":
        return cls(prev_close=price, reference=price, ewma_vol=base_volatility)


@dataclass(frozen=True)
class GapDecision:
    occurred: bool
    fraction: float = 0.0


class StochasticBarGenerator:
    """Return process for one bar: noise, drift, mean reversion, fat tails, gaps."""

    def __init__(self, config: Optional[SimulationSettings] = None):
        self.config = config or settings.SIMULATION

    def noise_sigma(self, params: RegimeParameters, base_volatility: float) -> float:
        """Standard deviation of the noise term for one bar."""
        return base_volatility * params.volatility_multiplier * self.config.volatility_scale

    def clamp(self, value: float) -> float:
        limit = self.config.max_return_per_bar
        return max(-limit, min(limit, value))

    def compute_return(
        self,
        params: RegimeParameters,
        base_volatility: float,
        state: PathState,
        draws: BarDraws,
    ) -> float:
        """Base return for one bar, clamped to +/- max_return_per_bar.

        Overlays re-clamp after composition.
        """
        cfg = self.config
        sigma = self.noise_sigma(params, base_volatility)
        value = draws.normal * sigma
        value += params.drift * cfg.drift_scale

        if params.mean_reversion > 0 and state.reference > 0:
            deviation = (state.prev_close - state.reference) / state.reference
            value -= deviation * params.mean_reversion * cfg.mean_reversion_strength

        tail_probability = min(1.0, params.fat_tail_probability * cfg.fat_tail_multiplier)
        if draws.u(U_FAT_TAIL) < tail_probability:
            size = cfg.fat_tail_min_size + draws.u(U_TAIL_SIZE) * (cfg.fat_tail_max_size - cfg.fat_tail_min_size)
            value *= size

        return self.clamp(value)

    def session_gap(
        self,
        params: RegimeParameters,
        gap_probability: float,
        max_gap_percent: float,
        draws: BarDraws,
    ) -> GapDecision:
        """Gap applied to the open of a session-open bar."""
        probability = max(0.0, min(1.0, gap_probability * params.gap_probability_modifier))
        if draws.u(U_GAP) >= probability:
            return GapDecision(False)
        size = draws.u(U_GAP_SIZE) * max_gap_percent
        sign = 1.0 if draws.u(U_GAP_SIGN) > 0.5 else -1.0
        return GapDecision(True, sign * size)

    def advance(self, state: PathState, close: float, bar_return: float, base_volatility: float) -> PathState:
        """Path state after a bar closes."""
        alpha = 2.0 / (self.config.mean_reversion_window + 1)
        reference = state.reference + alpha * (close - state.reference)

        lam = self.config.ewma_lambda
        ewma = lam * state.ewma_vol + (1.0 - lam) * abs(bar_return)
        ewma = max(base_volatility * 0.3, min(base_volatility * 3.0, ewma))

        return PathState(prev_close=close, reference=reference, ewma_vol=ewma)
