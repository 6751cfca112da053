"""
Scenario Repository
Database operations for the active scenario (singleton row id = 1)
"""
from dataclasses import dataclass
from datetime import timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketsim.core.exceptions import ConfigurationError, PersistenceError
from marketsim.logger import logger
from marketsim.models.persistence import ScenarioConfigEntity
from marketsim.models.scenario import ScenarioConfig


STATE_ID = 1


@dataclass(frozen=True)
class PersistedScenario:
    preset_name: str
    config: ScenarioConfig
    enabled: bool


class ScenarioRepository:
    """Repository for the persisted active scenario"""

    @staticmethod
    def load(session: Session) -> Optional[PersistedScenario]:
        """Load the active scenario

        Returns:
            PersistedScenario, or None if nothing was persisted yet

        Raises:
            PersistenceError: If the row cannot be read or its JSON is invalid
        """
        try:
            entity = session.execute(
                select(ScenarioConfigEntity).where(ScenarioConfigEntity.id == STATE_ID)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load scenario: {e}") from e

        if entity is None:
            return None

        try:
            config = ScenarioConfig.from_json(entity.config_json)
        except ConfigurationError as e:
            raise PersistenceError(f"Persisted scenario '{entity.active_preset}' is invalid: {e}") from e

        # The column is authoritative for the anchor
        if entity.anchor_time is not None and config.anchor_time is None:
            config = config.with_overrides(anchor_time=entity.anchor_time)

        return PersistedScenario(
            preset_name=entity.active_preset,
            config=config,
            enabled=bool(entity.is_enabled),
        )

    @staticmethod
    def save(session: Session, preset_name: str, config: ScenarioConfig, enabled: bool) -> None:
        """Upsert the active scenario

        Raises:
            PersistenceError: If the write fails (the session is rolled back)
        """
        try:
            entity = session.get(ScenarioConfigEntity, STATE_ID)
            if entity is None:
                entity = ScenarioConfigEntity(id=STATE_ID)
                session.add(entity)

            entity.active_preset = preset_name
            entity.config_json = config.to_json()
            entity.is_enabled = enabled
            entity.anchor_time = (
                config.anchor_time.astimezone(timezone.utc).replace(tzinfo=None) if config.anchor_time is not None else None
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to save scenario: {e}") from e

        logger.debug(f"Persisted scenario '{preset_name}' (enabled={enabled})")
