"""
Health sampling module.

Provides pool health types, host pool sources and the health sampler.
"""

from .types import HealthStatus, PoolHealthRecord, PoolQueryError
from .sources import (
    PoolSource,
    WMIPoolSource,
    ZFSPoolSource,
    StaticPoolSource,
    create_pool_source,
)
from .sampler import HealthSampler, compute_alarm_condition

__all__ = [
    "HealthStatus",
    "PoolHealthRecord",
    "PoolQueryError",
    "PoolSource",
    "WMIPoolSource",
    "ZFSPoolSource",
    "StaticPoolSource",
    "create_pool_source",
    "HealthSampler",
    "compute_alarm_condition",
]
