"""Clock persistence writer.

Clock mutations are handed to one background thread that owns the
database session. Submissions never block the caller: the writer only
stores the most recent state it has seen, and write failures are logged
and dropped.
"""
import queue
import threading
from typing import Callable, Optional

from sqlalchemy.orm import Session

from marketsim.core.exceptions import PersistenceError
from marketsim.logger import logger
from marketsim.managers.clock_manager.models import ClockState
from marketsim.managers.clock_manager.repositories import ClockStateRepository


class ClockStatePersister(threading.Thread):
    """Fire-and-forget writer for clock state snapshots."""

    def __init__(self, session_factory: Callable[[], Session]):
        super().__init__(name="ClockStatePersister", daemon=True)
        self._session_factory = session_factory
        self._queue: "queue.Queue[Optional[ClockState]]" = queue.Queue()
        self._stop_event = threading.Event()
        self.writes = 0
        self.failures = 0

    def submit(self, state: ClockState) -> None:
        """Queue a snapshot for writing (never blocks)."""
        if self._stop_event.is_set():
            return
        self._queue.put(state, block=False)

    def flush(self) -> None:
        """Block until every submitted snapshot has been handled."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Write what is pending, then exit."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        # Sentinel unblocks queue.get()
        self._queue.put(None, block=False)
        if self.is_alive():
            self.join(timeout=timeout)
            if self.is_alive():
                logger.warning("ClockStatePersister did not exit in time")

    def run(self) -> None:
        logger.debug("ClockStatePersister started")
        while True:
            item = self._queue.get()
            handled = 1
            stop = item is None

            # Coalesce: only the newest queued snapshot is worth writing
            latest = item
            while True:
                try:
                    nxt = self._queue.get(block=False)
                except queue.Empty:
                    break
                handled += 1
                if nxt is None:
                    stop = True
                else:
                    latest = nxt

            try:
                if latest is not None:
                    self._write(latest)
            finally:
                for _ in range(handled):
                    self._queue.task_done()

            if stop:
                break
        logger.debug("ClockStatePersister exiting")

    def _write(self, state: ClockState) -> None:
        session = self._session_factory()
        try:
            ClockStateRepository.save(session, state)
            self.writes += 1
        except PersistenceError as e:
            self.failures += 1
            logger.error(f"Clock state not persisted: {e}")
        finally:
            session.close()
