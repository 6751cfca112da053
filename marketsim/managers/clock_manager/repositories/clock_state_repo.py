"""
Clock State Repository
Database operations for the persisted clock (singleton row id = 1)
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketsim.core.enums import ClockMode
from marketsim.core.exceptions import PersistenceError
from marketsim.logger import logger
from marketsim.managers.clock_manager.models import ClockState
from marketsim.models.persistence import ClockStateEntity


STATE_ID = 1


def _to_naive_utc(ts: datetime) -> datetime:
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _to_aware_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


class ClockStateRepository:
    """Repository for the persisted clock state"""

    @staticmethod
    def load(session: Session) -> Optional[ClockState]:
        """Load the persisted clock state

        Args:
            session: Database session

        Returns:
            ClockState, or None if nothing was persisted yet

        Raises:
            PersistenceError: If the row cannot be read
        """
        try:
            entity = session.execute(
                select(ClockStateEntity).where(ClockStateEntity.id == STATE_ID)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load clock state: {e}") from e

        if entity is None:
            return None

        try:
            mode = ClockMode(entity.mode)
        except ValueError:
            logger.warning(f"Unknown persisted clock mode '{entity.mode}', using real")
            mode = ClockMode.REAL

        return ClockState(
            mode=mode,
            current_time=_to_aware_utc(entity.simulated_time),
            sim_start=_to_aware_utc(entity.sim_start),
            speed=entity.speed if entity.speed and entity.speed > 0 else 1.0,
            running=bool(entity.running),
        )

    @staticmethod
    def save(session: Session, state: ClockState) -> None:
        """Upsert the clock state row

        Raises:
            PersistenceError: If the write fails (the session is rolled back)
        """
        try:
            entity = session.get(ClockStateEntity, STATE_ID)
            if entity is None:
                entity = ClockStateEntity(id=STATE_ID)
                session.add(entity)

            entity.mode = state.mode.value
            entity.simulated_time = _to_naive_utc(state.current_time)
            entity.sim_start = _to_naive_utc(state.sim_start)
            entity.speed = state.speed
            entity.running = state.running
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to save clock state: {e}") from e

        logger.debug(f"Persisted clock state: {state.mode.value} t={state.current_time.isoformat()}")
