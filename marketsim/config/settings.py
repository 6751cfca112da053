"""
Application configuration using pydantic-settings with nested structure
"""
from datetime import datetime, time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ============================================================================
# NESTED CONFIGURATION MODELS
# ============================================================================

# Absolute path to .env file (project root)
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BASE_DIR / ".env"


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""
    url: str = "sqlite:///./data/marketsim.db"
    model_config = SettingsConfigDict(env_prefix="DATABASE__", extra="ignore")


class LoggerConfig(BaseSettings):
    """Logger configuration settings."""
    default_level: str = "INFO"
    console_level: str = "ERROR"
    file_path: str = "./data/logs/marketsim.log"
    rotation: str = "10 MB"
    retention: str = "30 days"
    filter_enabled: bool = True
    filter_max_history: int = 5
    filter_time_threshold_seconds: float = 1.0
    model_config = SettingsConfigDict(env_prefix="LOGGER__", extra="ignore")


class ClockConfig(BaseSettings):
    """Simulated clock configuration.

    Attributes:
        tick_seconds: Wall-clock interval between driver ticks
        default_speed: Speed multiplier used when no state is persisted
        default_mode: "real" or "simulated"
        start_time: Simulation start (ISO timestamp, UTC if naive). When
            unset the first process start, floored to the minute, is used.
    """
    tick_seconds: float = Field(default=1.0, gt=0)
    default_speed: float = Field(default=1.0, gt=0)
    default_mode: str = "real"
    start_time: Optional[datetime] = None
    model_config = SettingsConfigDict(env_prefix="CLOCK__", extra="ignore")

    @field_validator("default_mode")
    @classmethod
    def _check_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in ("real", "simulated"):
            raise ValueError(f"Invalid clock mode '{v}'. Choose from: real, simulated")
        return v


class SessionConfig(BaseSettings):
    """Trading session hours used for gap placement and volume shaping."""
    timezone: str = "America/New_York"
    regular_open: time = time(9, 30)
    regular_close: time = time(16, 0)
    trading_days: List[int] = [0, 1, 2, 3, 4]  # Mon-Fri
    open_window_minutes: int = Field(default=60, ge=0)
    close_window_minutes: int = Field(default=60, ge=0)
    model_config = SettingsConfigDict(env_prefix="SESSION__", extra="ignore")

    @model_validator(mode="after")
    def _check_hours(self) -> "SessionConfig":
        if self.regular_open >= self.regular_close:
            raise ValueError("regular_open must be before regular_close")
        return self


# Knobs adjustable at runtime and the range each one is clamped into.
# fat_tail_max_size is additionally kept >= fat_tail_min_size.
RUNTIME_TUNABLE_RANGES: Dict[str, Tuple[float, float]] = {
    "volatility_scale": (0.01, 1.0),
    "drift_scale": (0.01, 1.0),
    "mean_reversion_strength": (0.0, 1.0),
    "fat_tail_multiplier": (0.0, 2.0),
    "fat_tail_min_size": (1.0, 3.0),
    "fat_tail_max_size": (1.0, 5.0),
    "max_return_per_bar": (0.005, 0.1),
    "live_tick_noise": (0.0, 0.1),
    "high_low_range_multiplier": (0.1, 1.0),
    "pattern_overlay_strength": (0.0, 3.0),
}


class SimulationSettings(BaseSettings):
    """Calibration knobs for the synthetic market engine.

    These control how smooth or violent generated data looks. Defaults
    produce gentle intraday movement suitable for strategy testing.
    """
    volatility_scale: float = Field(default=0.15, gt=0)
    drift_scale: float = Field(default=0.1, ge=0)
    mean_reversion_strength: float = Field(default=0.3, ge=0)
    mean_reversion_window: int = Field(default=20, ge=1)
    fat_tail_multiplier: float = Field(default=0.1, ge=0)
    fat_tail_min_size: float = Field(default=1.5, ge=1.0)
    fat_tail_max_size: float = Field(default=2.5, ge=1.0)
    max_return_per_bar: float = Field(default=0.02, gt=0, le=0.5)
    live_tick_noise: float = Field(default=0.01, ge=0)
    high_low_range_multiplier: float = Field(default=0.3, ge=0)
    pattern_overlay_strength: float = Field(default=1.0, ge=0)
    ewma_lambda: float = Field(default=0.94, gt=0, lt=1)
    max_bars: int = Field(default=5000, ge=1)
    verify_determinism: bool = False
    model_config = SettingsConfigDict(env_prefix="SIMULATION__", extra="ignore")

    @model_validator(mode="after")
    def _check_fat_tail_range(self) -> "SimulationSettings":
        if self.fat_tail_min_size > self.fat_tail_max_size:
            raise ValueError("fat_tail_min_size must be <= fat_tail_max_size")
        return self


# ============================================================================
# MAIN SETTINGS CLASS
# ============================================================================

class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Configuration is organized into nested sections.
    Use double underscore (__) in env vars to address nested fields.

    Example:
        LOGGER__DEFAULT_LEVEL=DEBUG
        CLOCK__DEFAULT_MODE=simulated
        SIMULATION__MAX_RETURN_PER_BAR=0.03
    """

    # Application metadata
    APP_NAME: str = "MarketSim Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Nested configuration sections (constructed after environment is loaded)
    DATABASE: Optional[DatabaseConfig] = None
    LOGGER: Optional[LoggerConfig] = None
    CLOCK: Optional[ClockConfig] = None
    SESSION: Optional[SessionConfig] = None
    SIMULATION: Optional[SimulationSettings] = None

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.DATABASE = DatabaseConfig()
        self.LOGGER = LoggerConfig()
        self.CLOCK = ClockConfig()
        self.SESSION = SessionConfig()
        self.SIMULATION = SimulationSettings()

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_nested_delimiter="__",
        env_prefix=""
    )


# Global settings instance
from dotenv import load_dotenv

# Load .env file into environment variables
if _ENV_FILE.exists():
    load_dotenv(str(_ENV_FILE), override=True)

settings = Settings()
