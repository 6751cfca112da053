"""
Clock state value type
"""
from dataclasses import dataclass, replace
from datetime import datetime

from marketsim.core.enums import ClockMode


@dataclass(frozen=True)
class ClockState:
    """Snapshot of the clock.

    Attributes:
        mode: Active time source
        current_time: Simulated time (timezone-aware UTC)
        sim_start: Time the clock rewinds to on reset
        speed: Simulated seconds per wall-clock second
        running: Whether the driver advances simulated time
    """
    mode: ClockMode
    current_time: datetime
    sim_start: datetime
    speed: float = 1.0
    running: bool = False

    def with_changes(self, **changes) -> "ClockState":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "simulated_time": self.current_time.isoformat(),
            "sim_start": self.sim_start.isoformat(),
            "speed": self.speed,
            "running": self.running,
        }
