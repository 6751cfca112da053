"""
SystemManager - Central orchestrator and service locator

Key Responsibilities:
1. Create the clock (restored from the database), its driver and persister
2. Create the scenario manager, the simulation engine and the runtime
   simulation settings (restored from the database)
3. Expose the core operations: time/mode/speed, start/pause/reset,
   scenario selection, calibration settings and bar generation
4. Enforce the reveal rule: no bar beyond the clock's current time
5. Provide singleton access via get_system_manager()
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from marketsim.config import settings
from marketsim.config.settings import RUNTIME_TUNABLE_RANGES, SimulationSettings
from marketsim.core.enums import ClockMode
from marketsim.core.exceptions import PersistenceError
from marketsim.logger import logger
from marketsim.managers.clock_manager import (
    Clock,
    ClockDriver,
    ClockState,
    ClockStatePersister,
    ClockStateRepository,
)
from marketsim.managers.scenario_manager import ScenarioManager, ScenarioState
from marketsim.managers.simulation_engine import MarketSimulationEngine, bars_for_period
from marketsim.managers.simulation_settings_manager import SimulationSettingsManager
from marketsim.models.bars import Bar
from marketsim.models.scenario import ScenarioConfig


class SystemManager:
    """
    Central orchestrator and service locator.

    Usage:
        system_mgr = get_system_manager()
        system_mgr.set_mode("simulated")
        system_mgr.start()
        bars = system_mgr.generate_bars("AAPL", timeframe_minutes=5, count=100)
        system_mgr.shutdown()

    Args:
        session_factory: Database session factory. None uses the configured
            database (tables are created on first use).
        persist: Set False to run without any database access
        tick_seconds: Driver tick interval (default from CLOCK settings)
        wall_clock: Real-time source (injectable for tests)
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        persist: bool = True,
        tick_seconds: Optional[float] = None,
        wall_clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = self._resolve_session_factory(session_factory) if persist else None

        # Clock + persistence writer
        self._persister: Optional[ClockStatePersister] = None
        if self._session_factory is not None:
            self._persister = ClockStatePersister(self._session_factory)
            self._persister.start()

        clock_kwargs = {"wall_clock": wall_clock} if wall_clock is not None else {}
        restored = self._load_clock_state()
        self._clock = Clock(
            state=restored,
            on_change=self._persister.submit if self._persister is not None else None,
            **clock_kwargs,
        )
        self._driver = ClockDriver(self._clock, tick_seconds)

        self._scenario_manager = ScenarioManager(self._session_factory, now=self._clock.get_current_time)
        self._engine = MarketSimulationEngine()
        self._settings_manager = SimulationSettingsManager(
            self._session_factory, on_change=self._engine.apply_settings
        )

        if restored is not None and restored.running:
            logger.info("Clock was running at shutdown - resuming driver")
            self._driver.start()

        logger.info("SystemManager initialized")

    @staticmethod
    def _resolve_session_factory(session_factory):
        if session_factory is not None:
            return session_factory
        from marketsim.models.database import SessionLocal, init_db

        init_db()
        return SessionLocal

    def _load_clock_state(self) -> Optional[ClockState]:
        if self._session_factory is None:
            return None
        session = self._session_factory()
        try:
            state = ClockStateRepository.load(session)
        except PersistenceError as e:
            logger.error(f"Could not restore clock state, using defaults: {e}")
            return None
        finally:
            session.close()

        if state is None:
            logger.info("No persisted clock state - starting from configuration defaults")
        else:
            logger.info(
                f"Restored clock: {state.mode.value} t={state.current_time.isoformat()} "
                f"speed={state.speed}x running={state.running}"
            )
        return state

    # =========================================================================
    # Manager Access
    # =========================================================================

    def get_clock(self) -> Clock:
        return self._clock

    def get_clock_driver(self) -> ClockDriver:
        return self._driver

    def get_scenario_manager(self) -> ScenarioManager:
        return self._scenario_manager

    def get_simulation_engine(self) -> MarketSimulationEngine:
        return self._engine

    def get_settings_manager(self) -> SimulationSettingsManager:
        return self._settings_manager

    # =========================================================================
    # Clock Operations
    # =========================================================================

    def get_current_time(self) -> Tuple[datetime, ClockMode]:
        """Current time (UTC) and the mode it came from."""
        return self._clock.read()

    def get_clock_state(self) -> ClockState:
        return self._clock.get_state()

    def set_mode(self, mode: Union[ClockMode, str]) -> ClockMode:
        return self._clock.set_mode(mode)

    def set_speed(self, multiplier: float) -> float:
        return self._driver.set_speed(multiplier)

    def start(self) -> None:
        self._driver.start()

    def pause(self) -> None:
        self._driver.pause()

    def reset(self) -> datetime:
        self._driver.reset()
        return self._clock.get_state().current_time

    def set_start_time(self, ts: datetime) -> datetime:
        return self._clock.set_start_time(ts)

    # =========================================================================
    # Scenario Operations
    # =========================================================================

    def set_scenario(self, scenario: Union[str, ScenarioConfig, Dict[str, Any]]) -> ScenarioConfig:
        """Activate a preset (by name) or a custom scenario.

        Raises:
            ConfigurationError: If the preset is unknown or the config invalid
        """
        if isinstance(scenario, str):
            config = self._scenario_manager.apply_preset(scenario)
        else:
            config = self._scenario_manager.apply_custom(scenario)
        self._engine.clear_cache()
        return config

    def enable_scenario(self, enabled: bool) -> bool:
        return self._scenario_manager.set_enabled(enabled)

    def reset_scenario(self) -> ScenarioConfig:
        config = self._scenario_manager.reset()
        self._engine.clear_cache()
        return config

    def get_scenario_state(self) -> ScenarioState:
        return self._scenario_manager.get_state()

    # =========================================================================
    # Simulation Settings
    # =========================================================================

    def get_simulation_settings(self) -> SimulationSettings:
        return self._settings_manager.get_settings()

    def update_simulation_settings(self, changes: Dict[str, Any]) -> SimulationSettings:
        """Change calibration knobs (clamped into range) and recalibrate the engine.

        Raises:
            ConfigurationError: Unknown knob or non-numeric value
        """
        return self._settings_manager.update_settings(changes)

    def reset_simulation_settings(self) -> SimulationSettings:
        return self._settings_manager.reset_to_defaults()

    # =========================================================================
    # Bar Generation
    # =========================================================================

    def generate_bars(
        self,
        symbol: str,
        timeframe_minutes: int = 1,
        count: Optional[int] = None,
        as_of: Optional[datetime] = None,
        period: str = "1d",
    ) -> List[Bar]:
        """Bars for a symbol under the active scenario.

        Args:
            symbol: Ticker symbol
            timeframe_minutes: Bar size in minutes
            count: Number of bars (default: enough to cover `period`)
            as_of: Reveal time (default and upper bound: the clock's now)
            period: Lookback period used when count is not given

        Returns:
            Bars in ascending time order, the last one live
        """
        now, mode = self._clock.read()
        if as_of is None:
            as_of = now
        else:
            if as_of.tzinfo is None:
                as_of = as_of.replace(tzinfo=timezone.utc)
            if as_of > now:
                logger.warning(
                    f"Requested {symbol} bars as of {as_of.isoformat()} beyond current "
                    f"{mode.value} time {now.isoformat()} - truncating"
                )
                as_of = now

        if count is None:
            count = bars_for_period(period, timeframe_minutes)

        scenario = self._scenario_manager.scenario_for(symbol)
        return self._engine.generate_bars(symbol, timeframe_minutes, count, as_of, scenario)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def system_info(self) -> Dict[str, Any]:
        clock = self._clock.get_state()
        now, mode = self._clock.read()
        scenario = self._scenario_manager.get_state()
        return {
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "now": now.isoformat(),
            "mode": mode.value,
            "clock": clock.to_dict(),
            "driver_alive": self._driver.is_alive(),
            "scenario": {
                "preset": scenario.preset_name,
                "enabled": scenario.enabled,
                "seed": scenario.scenario.seed,
                "symbol": scenario.scenario.symbol,
                "anchor_time": (
                    scenario.scenario.anchor_time.isoformat() if scenario.scenario.anchor_time else None
                ),
            },
            "simulation": self._settings_manager.get_settings().model_dump(
                include=set(RUNTIME_TUNABLE_RANGES)
            ),
            "persistence": self._session_factory is not None,
        }

    def shutdown(self) -> None:
        """Stop background threads. Clock state is flushed to the database."""
        self._driver.shutdown()
        if self._persister is not None:
            self._persister.stop()
        logger.info("SystemManager shut down")


# =============================================================================
# Singleton Pattern
# =============================================================================

_system_manager_instance: Optional[SystemManager] = None


def get_system_manager() -> SystemManager:
    """
    Get SystemManager singleton.

    Returns:
        SystemManager instance (creates if doesn't exist)
    """
    global _system_manager_instance
    if _system_manager_instance is None:
        _system_manager_instance = SystemManager()
    return _system_manager_instance


def reset_system_manager():
    """
    Reset SystemManager singleton (for testing).

    WARNING: Only use in tests.
    """
    global _system_manager_instance
    if _system_manager_instance is not None:
        _system_manager_instance.shutdown()
    _system_manager_instance = None
