"""
Simulation Settings Manager API
Runtime calibration knobs for the synthetic market engine

The knobs start from SIMULATION__* (environment / .env), are restored from
the database when a persisted row exists, and can be changed at runtime.
Runtime updates are clamped into RUNTIME_TUNABLE_RANGES rather than
rejected. Every change is persisted and pushed to the `on_change`
listener (the simulation engine).
"""
import math
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from marketsim.config import settings
from marketsim.config.settings import RUNTIME_TUNABLE_RANGES, SimulationSettings
from marketsim.core.exceptions import ConfigurationError, PersistenceError
from marketsim.logger import logger
from marketsim.managers.simulation_settings_manager.repositories import SimulationSettingsRepository


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def clamp_runtime_values(values: Mapping[str, float]) -> Dict[str, float]:
    """Clamp every tunable knob into its allowed range.

    Args:
        values: A value for every key of RUNTIME_TUNABLE_RANGES

    Returns:
        New mapping with clamped values
    """
    clamped = {name: _clamp(float(values[name]), lo, hi) for name, (lo, hi) in RUNTIME_TUNABLE_RANGES.items()}
    clamped["fat_tail_max_size"] = max(clamped["fat_tail_max_size"], clamped["fat_tail_min_size"])
    return clamped


def runtime_values(config: SimulationSettings) -> Dict[str, float]:
    return {name: float(getattr(config, name)) for name in RUNTIME_TUNABLE_RANGES}


class SimulationSettingsManager:
    """Runtime simulation settings service.

    Args:
        session_factory: Creates database sessions (None = no persistence)
        defaults: Baseline settings (default: SIMULATION section)
        on_change: Called with the new SimulationSettings after every change
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        defaults: Optional[SimulationSettings] = None,
        on_change: Optional[Callable[[SimulationSettings], None]] = None,
    ):
        self._session_factory = session_factory
        self._defaults = defaults or settings.SIMULATION
        self._on_change = on_change
        self._lock = threading.RLock()
        self._current = self._defaults

        self._load()

    # ==================== Queries ====================

    def get_settings(self) -> SimulationSettings:
        with self._lock:
            return self._current

    def get_defaults(self) -> SimulationSettings:
        return self._defaults

    @staticmethod
    def tunable_ranges() -> Dict[str, Tuple[float, float]]:
        return dict(RUNTIME_TUNABLE_RANGES)

    # ==================== Mutations ====================

    def update_settings(self, changes: Mapping[str, Any]) -> SimulationSettings:
        """Change some knobs; unspecified knobs keep their current value.

        Out-of-range values are clamped into RUNTIME_TUNABLE_RANGES.

        Raises:
            ConfigurationError: Unknown knob name or a non-numeric value
        """
        unknown = sorted(set(changes) - set(RUNTIME_TUNABLE_RANGES))
        if unknown:
            raise ConfigurationError(
                f"Unknown simulation setting(s): {', '.join(unknown)}. "
                f"Adjustable: {', '.join(RUNTIME_TUNABLE_RANGES)}"
            )

        parsed: Dict[str, float] = {}
        for name, value in changes.items():
            try:
                number = float(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e
            if not math.isfinite(number):
                raise ConfigurationError(f"Invalid value for {name}: {value!r}")
            parsed[name] = number

        with self._lock:
            values = runtime_values(self._current)
            values.update(parsed)
            new_settings = self._apply(clamp_runtime_values(values))

        logger.info(f"Simulation settings updated: {', '.join(f'{k}={v}' for k, v in parsed.items())}")
        return new_settings

    def reset_to_defaults(self) -> SimulationSettings:
        """Back to the baseline settings (persisted as well)."""
        with self._lock:
            new_settings = self._apply(clamp_runtime_values(runtime_values(self._defaults)))
        logger.info("Simulation settings reset to defaults")
        return new_settings

    # ==================== Internals ====================

    def _apply(self, values: Dict[str, float]) -> SimulationSettings:
        # Caller holds the lock
        self._current = self._defaults.model_copy(update=values)
        self._persist(values)
        if self._on_change is not None:
            self._on_change(self._current)
        return self._current

    def _persist(self, values: Dict[str, float]) -> None:
        if self._session_factory is None:
            return
        session = self._session_factory()
        try:
            SimulationSettingsRepository.save(session, values)
        except PersistenceError as e:
            logger.error(f"Simulation settings not persisted: {e}")
        finally:
            session.close()

    def _load(self) -> None:
        if self._session_factory is None:
            return
        session = self._session_factory()
        try:
            persisted = SimulationSettingsRepository.load(session)
        except PersistenceError as e:
            logger.error(f"Could not restore simulation settings, using defaults: {e}")
            return
        finally:
            session.close()

        if persisted is None:
            logger.info("No persisted simulation settings, using SIMULATION defaults")
            return

        self._current = self._defaults.model_copy(update=clamp_runtime_values(persisted))
        logger.info("Restored simulation settings from database")
        if self._on_change is not None:
            self._on_change(self._current)
