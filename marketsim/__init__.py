"""
MarketSim Engine

Deterministic synthetic market data (regimes, pattern overlays, live open
bar) on top of a real or simulated clock.
"""
__version__ = "1.0.0"
