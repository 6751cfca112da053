"""
Scenario Manager API
Owns the active scenario and whether scenario-driven generation is enabled

The active scenario is an immutable ScenarioConfig replaced wholesale on
every change. Each change is persisted; persistence failures are logged
and never reach callers.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from marketsim.config.scenario_presets import (
    DEFAULT_PRESET,
    PRESET_CONFIGS,
    default_scenario,
    load_preset,
)
from marketsim.core.exceptions import ConfigurationError, PersistenceError
from marketsim.logger import logger
from marketsim.managers.scenario_manager.repositories import ScenarioRepository
from marketsim.managers.simulation_engine.base_prices import get_base_price
from marketsim.models.scenario import ScenarioConfig


CUSTOM_PRESET = "Custom"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def anchor_for(now: datetime) -> datetime:
    """Scenario anchor for a given current time: the UTC day it falls in."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class ScenarioState:
    """Snapshot of the scenario service."""
    preset_name: str
    enabled: bool
    scenario: ScenarioConfig

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preset_name": self.preset_name,
            "enabled": self.enabled,
            "scenario": self.scenario.to_dict(),
        }


def summarize(config: ScenarioConfig) -> Dict[str, Any]:
    """Short description of a scenario for listings."""
    return {
        "name": config.name,
        "description": config.description or "",
        "total_bars": config.total_bars,
        "regimes": [phase.regime.name for phase in config.regimes],
        "patterns": [overlay.pattern.name for overlay in config.overlays],
        "seed": config.seed,
    }


class ScenarioManager:
    """Active scenario service.

    Args:
        session_factory: Creates database sessions (None = no persistence)
        now: Current-time source used to stamp scenario anchors
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        now: Callable[[], datetime] = _utc_now,
    ):
        self._session_factory = session_factory
        self._now = now
        self._lock = threading.RLock()

        self._preset_name = DEFAULT_PRESET
        self._scenario = default_scenario()
        self._enabled = False

        self._load()

    # ==================== Queries ====================

    def get_active_scenario(self) -> ScenarioConfig:
        with self._lock:
            return self._scenario

    def is_enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def get_state(self) -> ScenarioState:
        with self._lock:
            return ScenarioState(self._preset_name, self._enabled, self._scenario)

    def scenario_for(self, symbol: str) -> Optional[ScenarioConfig]:
        """Scenario to generate `symbol` under, or None for the default path.

        Returns a per-symbol copy carrying the symbol's start price; the
        active scenario itself is never modified.
        """
        with self._lock:
            scenario, enabled = self._scenario, self._enabled

        if not enabled or not scenario.is_active:
            return None
        if not scenario.applies_to(symbol):
            logger.debug(f"Scenario '{scenario.name}' is scoped to {scenario.symbol}, not {symbol}")
            return None
        if scenario.start_price is None:
            return scenario.with_overrides(start_price=get_base_price(symbol))
        return scenario

    @staticmethod
    def list_presets() -> List[Dict[str, Any]]:
        return [summarize(config) for config in PRESET_CONFIGS.values()]

    # ==================== Mutations ====================

    def apply_preset(self, name: str) -> ScenarioConfig:
        """Activate a preset and enable scenario generation.

        Raises:
            ConfigurationError: If the preset is unknown
        """
        config = self._stamp_anchor(load_preset(name))
        with self._lock:
            self._replace(name, config, enabled=True)
        logger.info(f"Applied scenario preset '{name}' (anchor {config.anchor_time.isoformat()})")
        return config

    def apply_custom(self, config: Union[ScenarioConfig, Dict[str, Any]]) -> ScenarioConfig:
        """Activate a custom scenario (renamed "Custom") and enable generation.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        if isinstance(config, dict):
            config = ScenarioConfig.from_dict(config)
        elif not isinstance(config, ScenarioConfig):
            raise ConfigurationError(f"Expected a scenario configuration, got {type(config).__name__}")

        config = self._stamp_anchor(config.with_overrides(name=CUSTOM_PRESET))
        with self._lock:
            self._replace(CUSTOM_PRESET, config, enabled=True)
        logger.info(
            f"Applied custom scenario: {len(config.regimes)} regimes, {len(config.overlays)} overlays, "
            f"seed={config.seed}, symbol={config.symbol or 'ALL'}"
        )
        return config

    def set_enabled(self, enabled: bool) -> bool:
        with self._lock:
            if self._enabled == enabled:
                return enabled
            self._replace(self._preset_name, self._scenario, enabled=enabled)
        logger.info(f"Scenario generation {'enabled' if enabled else 'disabled'}")
        return enabled

    def reset(self) -> ScenarioConfig:
        """Back to the Default preset with scenario generation disabled."""
        config = default_scenario()
        with self._lock:
            self._replace(DEFAULT_PRESET, config, enabled=False)
        logger.info("Scenario reset to Default (disabled)")
        return config

    # ==================== Internals ====================

    def _stamp_anchor(self, config: ScenarioConfig) -> ScenarioConfig:
        if config.anchor_time is not None:
            return config
        return config.with_overrides(anchor_time=anchor_for(self._now()))

    def _replace(self, preset_name: str, config: ScenarioConfig, enabled: bool) -> None:
        # Caller holds the lock
        self._preset_name = preset_name
        self._scenario = config
        self._enabled = enabled
        self._persist()

    def _persist(self) -> None:
        if self._session_factory is None:
            return
        session = self._session_factory()
        try:
            ScenarioRepository.save(session, self._preset_name, self._scenario, self._enabled)
        except PersistenceError as e:
            logger.error(f"Scenario not persisted: {e}")
        finally:
            session.close()

    def _load(self) -> None:
        if self._session_factory is None:
            return
        session = self._session_factory()
        try:
            persisted = ScenarioRepository.load(session)
        except PersistenceError as e:
            logger.error(f"Could not restore scenario, using Default: {e}")
            return
        finally:
            session.close()

        if persisted is None:
            logger.info("No persisted scenario, using Default (disabled)")
            return

        self._preset_name = persisted.preset_name
        self._scenario = persisted.config
        self._enabled = persisted.enabled
        logger.info(f"Restored scenario '{persisted.preset_name}' (enabled={persisted.enabled})")
