"""
Clock Manager API
Single source of truth for "now" in both real and simulated time

The Clock is one guarded state object: every read and write of mode,
time, speed and the running flag goes through its lock, and callers only
ever receive immutable ClockState snapshots. The ClockDriver is the only
thing that advances simulated time on its own.
"""
import math
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple, Union

from marketsim.config import settings
from marketsim.core.enums import ClockMode
from marketsim.core.exceptions import ClockError
from marketsim.logger import logger
from marketsim.managers.clock_manager.models import ClockState


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def default_start_time(now: Optional[datetime] = None) -> datetime:
    """Configured simulation start, or now floored to the minute."""
    configured = settings.CLOCK.start_time
    if configured is not None:
        if configured.tzinfo is None:
            return configured.replace(tzinfo=timezone.utc)
        return configured.astimezone(timezone.utc)
    now = now or _utc_now()
    return now.replace(second=0, microsecond=0)


def default_clock_state(now: Optional[datetime] = None) -> ClockState:
    start = default_start_time(now)
    return ClockState(
        mode=ClockMode(settings.CLOCK.default_mode),
        current_time=start,
        sim_start=start,
        speed=settings.CLOCK.default_speed,
        running=False,
    )


def parse_mode(mode: Union[ClockMode, str]) -> ClockMode:
    if isinstance(mode, ClockMode):
        return mode
    try:
        return ClockMode(str(mode).strip().lower())
    except ValueError:
        raise ClockError(f"Invalid clock mode '{mode}'. Choose from: real, simulated") from None


def _require_aware(ts: datetime, what: str) -> datetime:
    if not isinstance(ts, datetime):
        raise ClockError(f"{what} must be a datetime (got {type(ts).__name__})")
    if ts.tzinfo is None:
        raise ClockError(f"{what} must be timezone-aware")
    return ts.astimezone(timezone.utc)


class Clock:
    """Dual time source (real wall clock or simulated time).

    Args:
        state: Initial state (e.g. loaded from the database)
        on_change: Called with a snapshot after every mutation
        wall_clock: Source of real time (injectable for tests)
    """

    def __init__(
        self,
        state: Optional[ClockState] = None,
        on_change: Optional[Callable[[ClockState], None]] = None,
        wall_clock: Callable[[], datetime] = _utc_now,
    ):
        self._lock = threading.RLock()
        self._wall_clock = wall_clock
        self._state = state or default_clock_state(wall_clock())
        self._on_change = on_change

    # ==================== Reads ====================

    def get_current_time(self) -> datetime:
        """Wall time in REAL mode, simulated time in SIMULATED mode (UTC)."""
        with self._lock:
            if self._state.mode is ClockMode.REAL:
                return self._wall_clock()
            return self._state.current_time

    def read(self) -> Tuple[datetime, ClockMode]:
        """Current time and mode, read together."""
        with self._lock:
            if self._state.mode is ClockMode.REAL:
                return self._wall_clock(), ClockMode.REAL
            return self._state.current_time, ClockMode.SIMULATED

    def get_mode(self) -> ClockMode:
        with self._lock:
            return self._state.mode

    def get_state(self) -> ClockState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.running

    # ==================== Mutations ====================

    def set_mode(self, mode: Union[ClockMode, str]) -> ClockMode:
        """Switch time source. Simulated time is preserved across switches."""
        mode = parse_mode(mode)
        with self._lock:
            if self._state.mode is mode:
                return mode
            old = self._state.mode
            self._update(mode=mode)
        logger.info(f"Clock mode changed: {old.value} -> {mode.value}")
        return mode

    def set_speed(self, multiplier: float) -> float:
        """Set simulated seconds per wall-clock second.

        Raises:
            ClockError: If multiplier is not a finite number > 0
        """
        try:
            value = float(multiplier)
        except (TypeError, ValueError):
            raise ClockError(f"Speed must be a number (got {multiplier!r})") from None
        if not math.isfinite(value) or value <= 0:
            raise ClockError(f"Speed must be > 0 (got {multiplier})")

        with self._lock:
            old = self._state.speed
            self._update(speed=value)
        logger.info(f"Clock speed changed: {old}x -> {value}x")
        return value

    def set_simulated_time(self, ts: datetime) -> datetime:
        """Jump simulated time.

        Raises:
            ClockError: If ts is naive, or earlier than now while running
        """
        ts = _require_aware(ts, "Simulated time")
        with self._lock:
            if self._state.running and ts < self._state.current_time:
                raise ClockError(
                    f"Cannot move simulated time backwards while running "
                    f"({self._state.current_time.isoformat()} -> {ts.isoformat()})"
                )
            self._update(current_time=ts)
        logger.info(f"Simulated time set to {ts.isoformat()}")
        return ts

    def set_start_time(self, ts: datetime) -> datetime:
        """Set the simulation start and jump to it; stops the clock."""
        ts = _require_aware(ts, "Start time")
        with self._lock:
            self._update(sim_start=ts, current_time=ts, running=False)
        logger.info(f"Simulation start set to {ts.isoformat()} (clock paused)")
        return ts

    def advance(self, wall_seconds: float) -> bool:
        """Advance simulated time by wall_seconds x speed.

        Only takes effect while running in SIMULATED mode.

        Returns:
            True if time moved
        """
        if wall_seconds <= 0:
            return False
        with self._lock:
            state = self._state
            if not state.running or state.mode is not ClockMode.SIMULATED:
                return False
            delta = timedelta(seconds=wall_seconds * state.speed)
            self._update(current_time=state.current_time + delta)
        return True

    def start(self) -> bool:
        """Set the running flag (idempotent).

        Returns:
            True if the clock was paused before
        """
        with self._lock:
            if self._state.running:
                return False
            self._update(running=True)
            mode = self._state.mode
        if mode is ClockMode.REAL:
            logger.warning("Clock started in real mode; simulated time only advances in simulated mode")
        logger.info("Clock started")
        return True

    def pause(self) -> bool:
        """Clear the running flag (idempotent). Simulated time freezes."""
        with self._lock:
            if not self._state.running:
                return False
            self._update(running=False)
            frozen = self._state.current_time
        logger.info(f"Clock paused at {frozen.isoformat()}")
        return True

    def reset(self) -> datetime:
        """Stop and rewind simulated time to the simulation start."""
        with self._lock:
            start = self._state.sim_start
            self._update(current_time=start, running=False)
        logger.info(f"Clock reset to {start.isoformat()}")
        return start

    def _update(self, **changes) -> None:
        # Caller holds the lock
        self._state = self._state.with_changes(**changes)
        if self._on_change is not None:
            self._on_change(self._state)


class ClockDriver:
    """Background ticker that advances a Clock while it runs.

    Each tick advances the clock by the wall time measured since the
    previous tick (monotonic), times the clock speed. The driver holds no
    market logic and only talks to the Clock.
    """

    def __init__(self, clock: Clock, tick_seconds: Optional[float] = None):
        self._clock = clock
        self._tick_seconds = tick_seconds or settings.CLOCK.tick_seconds

        self._thread: Optional[threading.Thread] = None
        self._shutdown = threading.Event()
        self._tick_lock = threading.Lock()
        self._last_tick = time.monotonic()
        self.ticks = 0

    @property
    def tick_seconds(self) -> float:
        return self._tick_seconds

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ==================== Transitions ====================

    def start(self) -> None:
        """Start advancing simulated time (idempotent)."""
        self._ensure_thread()
        with self._tick_lock:
            if not self._clock.is_running:
                self._last_tick = time.monotonic()
            self._clock.start()

    def pause(self) -> None:
        """Freeze simulated time (idempotent)."""
        with self._tick_lock:
            # Credit the partial tick so the frozen time is exact
            self._tick_locked()
            self._clock.pause()

    def reset(self) -> None:
        """Stop and rewind to the simulation start."""
        with self._tick_lock:
            self._clock.reset()

    def set_speed(self, multiplier: float) -> float:
        with self._tick_lock:
            # Time before the change runs at the old speed
            self._tick_locked()
            return self._clock.set_speed(multiplier)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the ticker thread (the clock keeps its state)."""
        self._shutdown.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("ClockDriver did not stop within timeout")
            self._thread = None

    # ==================== Ticking ====================

    def tick(self) -> None:
        with self._tick_lock:
            self._tick_locked()

    def _tick_locked(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_tick
        self._last_tick = now
        if self._clock.advance(elapsed):
            self.ticks += 1
            logger.debug(f"Clock tick +{elapsed:.3f}s wall -> {self._clock.get_state().current_time.isoformat()}")

    def _ensure_thread(self) -> None:
        if self.is_alive():
            return
        with self._tick_lock:
            # Wall time while no thread was ticking is not credited
            self._last_tick = time.monotonic()
        self._shutdown.clear()
        self._thread = threading.Thread(target=self._worker, name="ClockDriver", daemon=True)
        self._thread.start()
        logger.info(f"ClockDriver started (tick={self._tick_seconds}s)")

    def _worker(self) -> None:
        while not self._shutdown.wait(self._tick_seconds):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"ClockDriver tick failed: {e}")
        logger.info("ClockDriver stopped")
