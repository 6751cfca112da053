"""
Persisted state models
Singleton rows (id = 1) for the clock, the active scenario and the
runtime simulation settings
"""
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from marketsim.models.database import Base


class ClockStateEntity(Base):
    """
    Persisted clock state.

    Times are stored as naive UTC; repositories attach tzinfo on load.
    """
    __tablename__ = "clock_state"

    id = Column(Integer, primary_key=True, default=1)
    mode = Column(String(20), nullable=False, default="real")
    simulated_time = Column(DateTime, nullable=False)
    sim_start = Column(DateTime, nullable=False)
    speed = Column(Float, nullable=False, default=1.0)
    running = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<ClockState {self.mode} t={self.simulated_time} speed={self.speed}x "
            f"{'RUNNING' if self.running else 'PAUSED'}>"
        )


class ScenarioConfigEntity(Base):
    """
    Persisted active scenario.

    The full configuration is stored as JSON so regimes/overlays keep
    their structure without extra tables.
    """
    __tablename__ = "scenario_config"

    id = Column(Integer, primary_key=True, default=1)
    active_preset = Column(String(100), nullable=False, default="Default")
    config_json = Column(Text, nullable=False, default="{}")
    is_enabled = Column(Boolean, nullable=False, default=False)
    anchor_time = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ScenarioConfig {self.active_preset} enabled={self.is_enabled}>"


class SimulationSettingsEntity(Base):
    """
    Persisted runtime calibration knobs.

    Only the knobs adjustable at runtime are stored; the rest
    (mean reversion window, EWMA lambda, max bars) come from SIMULATION__*.
    """
    __tablename__ = "simulation_settings"

    id = Column(Integer, primary_key=True, default=1)
    volatility_scale = Column(Float, nullable=False)
    drift_scale = Column(Float, nullable=False)
    mean_reversion_strength = Column(Float, nullable=False)
    fat_tail_multiplier = Column(Float, nullable=False)
    fat_tail_min_size = Column(Float, nullable=False)
    fat_tail_max_size = Column(Float, nullable=False)
    max_return_per_bar = Column(Float, nullable=False)
    live_tick_noise = Column(Float, nullable=False)
    high_low_range_multiplier = Column(Float, nullable=False)
    pattern_overlay_strength = Column(Float, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<SimulationSettings vol={self.volatility_scale} drift={self.drift_scale} "
            f"max_return={self.max_return_per_bar}>"
        )
