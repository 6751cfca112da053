"""Test Database Fixtures

Each test gets its own SQLite file under tmp_path with the tables created,
so persisted clock/scenario rows never leak between tests.
"""
import pytest

from marketsim.models.database import init_db, make_engine, make_session_factory


@pytest.fixture
def db_engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory for code that opens its own sessions (persister, managers)."""
    return make_session_factory(db_engine)


@pytest.fixture
def test_db(session_factory):
    session = session_factory()
    yield session
    session.close()
