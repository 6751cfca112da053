"""Pytest configuration shared by unit and integration tests

Settings are read on first import of `marketsim`, so the database and log
file are pointed at a throwaway directory before anything is imported.
Markers are declared in pyproject.toml and applied here by location.
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="marketsim-tests-"))
os.environ.setdefault("DATABASE__URL", f"sqlite:///{TEST_DATA_DIR / 'marketsim.db'}")
os.environ.setdefault("LOGGER__FILE_PATH", str(TEST_DATA_DIR / "logs" / "marketsim.log"))
os.environ.setdefault("LOGGER__FILTER_ENABLED", "false")

pytest_plugins = [
    "tests.fixtures.test_database",
    "tests.fixtures.scenarios",
]

_DB_FIXTURES = {"test_db", "session_factory", "db_engine"}


def pytest_collection_modifyitems(config, items):
    """Mark tests by directory, and db tests by the fixtures they use."""
    for item in items:
        parts = Path(str(item.fspath)).parts
        if "unit" in parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in parts:
            item.add_marker(pytest.mark.integration)

        if _DB_FIXTURES.intersection(item.fixturenames):
            item.add_marker(pytest.mark.db)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    print(f"\n🔧 Test data in {TEST_DATA_DIR}")

    yield

    from marketsim.managers import reset_system_manager
    reset_system_manager()
    print("\n✅ Test environment cleaned up")


@pytest.fixture
def log_messages():
    """Messages logged through loguru while the test runs (level, text)."""
    from marketsim.logger import logger

    messages = []
    sink_id = logger.add(lambda m: messages.append((m.record["level"].name, m.record["message"])), level="DEBUG")
    yield messages
    logger.remove(sink_id)
