"""
Simulation Settings Repository
Database operations for the runtime calibration knobs (singleton row id = 1)
"""
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketsim.config.settings import RUNTIME_TUNABLE_RANGES
from marketsim.core.exceptions import PersistenceError
from marketsim.logger import logger
from marketsim.models.persistence import SimulationSettingsEntity


STATE_ID = 1


class SimulationSettingsRepository:
    """Repository for persisted runtime simulation settings"""

    @staticmethod
    def load(session: Session) -> Optional[Dict[str, float]]:
        """Load the persisted knob values

        Returns:
            Mapping of knob name to value, or None if nothing was persisted yet

        Raises:
            PersistenceError: If the row cannot be read
        """
        try:
            entity = session.execute(
                select(SimulationSettingsEntity).where(SimulationSettingsEntity.id == STATE_ID)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load simulation settings: {e}") from e

        if entity is None:
            return None
        return {name: float(getattr(entity, name)) for name in RUNTIME_TUNABLE_RANGES}

    @staticmethod
    def save(session: Session, values: Dict[str, float]) -> None:
        """Upsert the knob values

        Raises:
            PersistenceError: If the write fails (the session is rolled back)
        """
        try:
            entity = session.get(SimulationSettingsEntity, STATE_ID)
            if entity is None:
                entity = SimulationSettingsEntity(id=STATE_ID)
                session.add(entity)

            for name in RUNTIME_TUNABLE_RANGES:
                setattr(entity, name, float(values[name]))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to save simulation settings: {e}") from e

        logger.debug("Persisted simulation settings")
