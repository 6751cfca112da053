"""
Loguru setup for MarketSim

Two sinks:
- console: CLI output stays clean, only LOGGER__CONSOLE_LEVEL and above
- file: everything at the runtime level, tagged with the thread name so
  ClockDriver / ClockStatePersister activity can be told apart

The file level can be changed at runtime (`marketsim admin log-level`).
"""
import sys
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from marketsim.config import settings


VALID_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {thread.name: <19} | "
    "{name}:{function}:{line} - {message}"
)


class LogDeduplicationFilter:
    """Drop repeats of the same call site inside a time window.

    The clock driver ticks many times per second and a chart refresh asks
    for bars in bursts, so the same log line fires over and over. A call
    site (file, line) that logged less than `time_threshold_seconds` ago is
    suppressed. Only the `max_history` most recent call sites are tracked.
    """

    def __init__(self, max_history: int = 5, time_threshold_seconds: float = 1.0):
        self.max_history = max_history
        self.time_threshold = time_threshold_seconds
        self._last_seen: "OrderedDict[Tuple[str, int], float]" = OrderedDict()
        self._lock = threading.Lock()

    def __call__(self, record: Dict[str, Any]) -> bool:
        site = (record["file"].path, record["line"])
        now = time.monotonic()

        with self._lock:
            last = self._last_seen.get(site)
            if last is not None and now - last < self.time_threshold:
                return False

            self._last_seen[site] = now
            self._last_seen.move_to_end(site)
            while len(self._last_seen) > self.max_history:
                self._last_seen.popitem(last=False)
        return True


def _normalize_level(level: str) -> str:
    level_upper = level.strip().upper()
    if level_upper not in VALID_LEVELS:
        raise ValueError(f"Invalid level '{level}'. Choose from: {', '.join(VALID_LEVELS)}")
    return level_upper


class LoggerManager:
    """Owns the loguru sinks and the runtime log level."""

    def __init__(self):
        config = settings.LOGGER
        self.current_level = _normalize_level(config.default_level)
        self.console_level = _normalize_level(config.console_level)
        self.log_file_path = Path(config.file_path)

        self.dedup_filter: Optional[LogDeduplicationFilter] = None
        if config.filter_enabled:
            self.dedup_filter = LogDeduplicationFilter(
                max_history=config.filter_max_history,
                time_threshold_seconds=config.filter_time_threshold_seconds,
            )

        self._file_sink_id: Optional[int] = None
        logger.remove()
        logger.add(
            sys.stderr,
            level=self.console_level,
            format=CONSOLE_FORMAT,
            colorize=True,
            filter=self.dedup_filter,
        )
        self._add_file_sink()
        logger.info(f"Logger initialized (file={self.current_level}, console={self.console_level})")

    def _add_file_sink(self) -> None:
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_sink_id = logger.add(
            str(self.log_file_path),
            level=self.current_level,
            format=FILE_FORMAT,
            rotation=settings.LOGGER.rotation,
            retention=settings.LOGGER.retention,
            compression="zip",
            backtrace=True,
            diagnose=False,
            enqueue=True,  # driver and persister threads log concurrently
            filter=self.dedup_filter,
        )

    def set_level(self, level: str) -> str:
        """
        Change the file sink level at runtime

        Raises:
            ValueError: If level is not one of VALID_LEVELS
        """
        new_level = _normalize_level(level)
        old_level = self.current_level
        if new_level == old_level:
            return new_level

        self.current_level = new_level
        if self._file_sink_id is not None:
            logger.remove(self._file_sink_id)
        self._add_file_sink()

        logger.success(f"Log level changed from {old_level} to {new_level}")
        return new_level

    def get_level(self) -> str:
        return self.current_level

    def get_available_levels(self) -> List[str]:
        return list(VALID_LEVELS)


logger_manager = LoggerManager()

__all__ = ["logger", "logger_manager", "LoggerManager", "LogDeduplicationFilter", "VALID_LEVELS"]
