"""Alarm state and alert pulse definitions."""

from enum import Enum
from dataclasses import dataclass

from poolmon import MonitorError


# Fixed alarm tone
ALARM_FREQUENCY_HZ = 900
ALARM_DURATION_MS = 500


class AlarmState(Enum):
    """Alarm controller states."""
    IDLE = "idle"           # All pools healthy, actuation trigger off
    ALARMING = "alarming"   # At least one pool not healthy, pulsing

    @property
    def display_name(self) -> str:
        return self.value.upper()


@dataclass(frozen=True)
class AlertPulse:
    """One tone emission."""
    frequency_hz: int = ALARM_FREQUENCY_HZ
    duration_ms: int = ALARM_DURATION_MS

    def __post_init__(self):
        """Validate pulse parameters."""
        if self.frequency_hz <= 0:
            raise ValueError(f"frequency_hz must be positive, got {self.frequency_hz}")
        if self.duration_ms < 0:
            raise ValueError(f"duration_ms must be non-negative, got {self.duration_ms}")


class ActuationError(MonitorError):
    """Raised when a tone cannot be produced."""
