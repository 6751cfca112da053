"""
Custom exceptions for the market simulation engine.

All custom exceptions should be defined here for easy discovery
and consistent error handling throughout the application.
"""


class MarketSimError(Exception):
    """Base exception for all market simulation errors."""
    pass


class ConfigurationError(MarketSimError):
    """Raised when a scenario or settings value is invalid.

    Invalid configuration is rejected where it is created and never
    silently repaired.
    """
    pass


class ClockError(MarketSimError):
    """Raised when a clock operation is invalid (bad speed or time).

    The clock state is left unchanged when this is raised.
    """
    pass


class PersistenceError(MarketSimError):
    """Raised when reading or writing persisted state fails."""
    pass


class DeterminismViolation(MarketSimError):
    """Raised when identical seed inputs produced different output.

    This is a programming-contract bug, never an expected runtime condition.
    """
    pass
