"""Regime Scheduler

Resolves a bar index to the regime active at that index.

Cumulative phase offsets are computed once. Indices past the configured
timeline stay in the last phase indefinitely; negative indices (history
before the scenario anchor) resolve to the first phase.
"""
from bisect import bisect_right
from dataclasses import dataclass, replace
from typing import List, Sequence

from marketsim.core.enums import MarketRegime
from marketsim.core.exceptions import ConfigurationError
from marketsim.models.scenario import RegimeParameters, RegimePhase


@dataclass(frozen=True)
class ResolvedRegime:
    """Regime active at a bar index with its effective parameters."""
    regime: MarketRegime
    phase_index: int
    params: RegimeParameters


def effective_parameters(phase: RegimePhase, base_volatility: float) -> RegimeParameters:
    """Regime defaults with any explicit per-phase override substituted.

    A volatility override is absolute, so it is expressed relative to the
    scenario base volatility.
    """
    params = RegimeParameters.defaults(phase.regime)
    changes = {"volume_multiplier": params.volume_multiplier * phase.volume_multiplier}
    if phase.volatility is not None:
        changes["volatility_multiplier"] = phase.volatility / base_volatility
    if phase.drift is not None:
        changes["drift"] = phase.drift
    return replace(params, **changes)


class RegimeScheduler:
    """Bar-index to regime lookup over an ordered phase list."""

    def __init__(self, phases: Sequence[RegimePhase], base_volatility: float):
        if not phases:
            raise ConfigurationError("Regime schedule requires at least one phase")

        self._phases = tuple(phases)
        # Start offset of every phase: [0, bars0, bars0+bars1, ...]
        self._starts: List[int] = []
        offset = 0
        for phase in self._phases:
            self._starts.append(offset)
            offset += phase.bars
        self._total_bars = offset
        self._resolved = tuple(
            ResolvedRegime(phase.regime, i, effective_parameters(phase, base_volatility))
            for i, phase in enumerate(self._phases)
        )

    @property
    def total_bars(self) -> int:
        return self._total_bars

    @property
    def phase_starts(self) -> List[int]:
        return list(self._starts)

    def resolve(self, bar_index: int) -> ResolvedRegime:
        """Regime active at bar_index (clamped to the first/last phase)."""
        if bar_index <= 0:
            return self._resolved[0]
        position = bisect_right(self._starts, bar_index) - 1
        return self._resolved[position]
