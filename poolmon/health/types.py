"""Health status types and pool records."""

from enum import IntEnum
from dataclasses import dataclass
from typing import Union

from poolmon import MonitorError


class HealthStatus(IntEnum):
    """Storage pool health codes as reported by the storage management API."""
    HEALTHY = 0
    WARNING = 1
    UNHEALTHY = 2
    UNKNOWN = 5

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        return self.name.capitalize()


def describe_health(code: int) -> str:
    """Describe a raw health code, keeping codes outside the enum visible."""
    try:
        return HealthStatus(code).display_name
    except ValueError:
        return f"Code {code}"


@dataclass(frozen=True)
class PoolHealthRecord:
    """
    Health of one storage pool at the moment it was queried.

    Records are fetched fresh on every sample and never compared across
    samples; the name is only used in log messages.
    """
    name: str
    health_code: Union[HealthStatus, int]

    @property
    def is_healthy(self) -> bool:
        return self.health_code == HealthStatus.HEALTHY

    def __str__(self) -> str:
        return f"{self.name}: {describe_health(self.health_code)}"


class PoolQueryError(MonitorError):
    """Raised when the storage subsystem cannot be queried."""
