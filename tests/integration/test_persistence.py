"""
Integration tests for clock, scenario and simulation settings persistence on SQLite.
"""
from datetime import datetime, timedelta, timezone

import pytest

from marketsim.config.scenario_presets import load_preset
from marketsim.core.enums import ClockMode
from marketsim.core.exceptions import PersistenceError
from marketsim.managers.clock_manager import ClockState, ClockStatePersister, ClockStateRepository
from marketsim.config.settings import SimulationSettings
from marketsim.managers.scenario_manager import ScenarioManager, ScenarioRepository
from marketsim.managers.simulation_settings_manager import (
    SimulationSettingsManager,
    SimulationSettingsRepository,
    runtime_values,
)
from marketsim.models.database import init_db
from marketsim.models.persistence import ScenarioConfigEntity
from tests.fixtures.scenarios import ANCHOR


def _state(**changes) -> ClockState:
    state = ClockState(mode=ClockMode.SIMULATED, current_time=ANCHOR, sim_start=ANCHOR, speed=2.5, running=True)
    return state.with_changes(**changes)


class TestDatabase:

    def test_init_db_is_idempotent(self, db_engine):
        assert init_db(bind=db_engine) == ["clock_state", "scenario_config", "simulation_settings"]


class TestClockStateRepository:

    def test_empty_database(self, test_db):
        assert ClockStateRepository.load(test_db) is None

    def test_round_trip(self, test_db):
        ClockStateRepository.save(test_db, _state())
        assert ClockStateRepository.load(test_db) == _state()

    def test_upsert_keeps_single_row(self, test_db):
        ClockStateRepository.save(test_db, _state())
        later = _state(current_time=ANCHOR + timedelta(minutes=30), running=False, mode=ClockMode.REAL)
        ClockStateRepository.save(test_db, later)
        assert ClockStateRepository.load(test_db) == later

    def test_non_utc_times_normalized(self, test_db):
        local = ANCHOR.astimezone(timezone(timedelta(hours=-5)))
        ClockStateRepository.save(test_db, _state(current_time=local))
        loaded = ClockStateRepository.load(test_db)
        assert loaded.current_time == ANCHOR
        assert loaded.current_time.tzinfo == timezone.utc


class TestClockStatePersister:

    def test_latest_state_wins(self, session_factory):
        persister = ClockStatePersister(session_factory)
        persister.start()
        try:
            for minute in range(20):
                persister.submit(_state(current_time=ANCHOR + timedelta(minutes=minute)))
            persister.flush()
        finally:
            persister.stop()

        session = session_factory()
        try:
            loaded = ClockStateRepository.load(session)
        finally:
            session.close()
        assert loaded.current_time == ANCHOR + timedelta(minutes=19)
        assert 1 <= persister.writes <= 20
        assert persister.failures == 0

    def test_stop_writes_pending(self, session_factory):
        persister = ClockStatePersister(session_factory)
        persister.start()
        persister.submit(_state(speed=9.0))
        persister.stop()
        assert not persister.is_alive()

        session = session_factory()
        try:
            assert ClockStateRepository.load(session).speed == 9.0
        finally:
            session.close()

    def test_submit_after_stop_is_ignored(self, session_factory):
        persister = ClockStatePersister(session_factory)
        persister.start()
        persister.stop()
        persister.submit(_state())
        assert persister.writes == 0

    def test_write_failures_are_counted(self, db_engine):
        from sqlalchemy.orm import sessionmaker
        from marketsim.models.database import Base

        Base.metadata.drop_all(bind=db_engine)
        persister = ClockStatePersister(sessionmaker(bind=db_engine))
        persister.start()
        persister.submit(_state())
        persister.stop()
        assert persister.failures == 1
        assert persister.writes == 0


class TestScenarioRepository:

    def test_round_trip(self, test_db):
        config = load_preset("Trend Reversal").with_overrides(anchor_time=ANCHOR)
        ScenarioRepository.save(test_db, "Trend Reversal", config, enabled=True)
        persisted = ScenarioRepository.load(test_db)
        assert persisted.preset_name == "Trend Reversal"
        assert persisted.enabled
        assert persisted.config == config

    def test_invalid_json_raises(self, test_db):
        test_db.add(ScenarioConfigEntity(id=1, active_preset="Custom", config_json="{broken", is_enabled=True))
        test_db.commit()
        with pytest.raises(PersistenceError, match="invalid"):
            ScenarioRepository.load(test_db)


class TestScenarioManagerPersistence:

    def test_state_survives_restart(self, session_factory):
        now = datetime(2024, 1, 2, 18, 0, tzinfo=timezone.utc)
        first = ScenarioManager(session_factory, now=lambda: now)
        applied = first.apply_preset("VWAP Short Test")

        second = ScenarioManager(session_factory, now=lambda: now + timedelta(days=3))
        state = second.get_state()
        assert state.preset_name == "VWAP Short Test"
        assert state.enabled
        # Anchor is not re-stamped on restore
        assert state.scenario.anchor_time == applied.anchor_time

    def test_disable_and_reset_persist(self, session_factory):
        manager = ScenarioManager(session_factory)
        manager.apply_custom({"seed": 5, "symbol": "AAPL", "regimes": [{"type": "NEWS_SPIKE", "bars": 30}]})
        manager.set_enabled(False)

        restored = ScenarioManager(session_factory).get_state()
        assert restored.preset_name == "Custom"
        assert not restored.enabled
        assert restored.scenario.symbol == "AAPL"

        manager.reset()
        assert ScenarioManager(session_factory).get_state().preset_name == "Default"


class TestSimulationSettingsRepository:

    def test_empty_database(self, test_db):
        assert SimulationSettingsRepository.load(test_db) is None

    def test_round_trip_keeps_single_row(self, test_db):
        values = runtime_values(SimulationSettings())
        SimulationSettingsRepository.save(test_db, values)

        values["drift_scale"] = 0.42
        SimulationSettingsRepository.save(test_db, values)
        assert SimulationSettingsRepository.load(test_db) == values


class TestSimulationSettingsManagerPersistence:

    def test_clamped_values_survive_restart(self, session_factory):
        defaults = SimulationSettings()
        first = SimulationSettingsManager(session_factory, defaults=defaults)
        first.update_settings({"max_return_per_bar": 0.5, "volatility_scale": 0.3})

        restored = SimulationSettingsManager(session_factory, defaults=defaults).get_settings()
        assert restored.max_return_per_bar == 0.1
        assert restored.volatility_scale == 0.3
        assert restored.drift_scale == defaults.drift_scale

    def test_reset_is_persisted(self, session_factory):
        defaults = SimulationSettings()
        manager = SimulationSettingsManager(session_factory, defaults=defaults)
        manager.update_settings({"pattern_overlay_strength": 2.5})
        manager.reset_to_defaults()

        assert SimulationSettingsManager(session_factory, defaults=defaults).get_settings() == defaults
