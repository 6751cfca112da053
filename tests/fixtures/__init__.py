"""Test Fixtures Package

Provides reusable test fixtures for all test modules.

Fixtures:
- test_database: Per-test SQLite database, session factory and session
- scenarios: Reference anchor time, fake wall clock, engine and small scenarios
"""
from tests.fixtures.scenarios import ANCHOR, FakeWallClock

__all__ = [
    "ANCHOR",
    "FakeWallClock",
]
