"""Health sampler - reduces pool health to a single alarm condition."""

import logging
from typing import Iterable, List

from .sources import PoolSource
from .types import HealthStatus, PoolHealthRecord

logger = logging.getLogger(__name__)


def compute_alarm_condition(codes: Iterable[int]) -> bool:
    """
    Reduce health codes to the alarm condition.

    Returns:
        True if any code is not healthy; False for no codes at all
    """
    return any(code != HealthStatus.HEALTHY for code in codes)


class HealthSampler:
    """
    Samples the health of every storage pool on the host.

    Query errors from the source are not caught here; they end the
    current sampling cycle and reach the caller unchanged.
    """

    def __init__(self, source: PoolSource):
        self._source = source
        self._sample_count = 0

    @property
    def source(self) -> PoolSource:
        return self._source

    @property
    def sample_count(self) -> int:
        """Number of samples that completed successfully."""
        return self._sample_count

    def read_pools(self) -> List[PoolHealthRecord]:
        """Fetch a fresh list of pool records."""
        return list(self._source.get_pools())

    def sample(self) -> bool:
        """
        Take one sample.

        Returns:
            The alarm condition: True if any pool is not healthy

        Raises:
            PoolQueryError: If the pools could not be enumerated
        """
        pools = self.read_pools()
        self._sample_count += 1

        unhealthy = [pool for pool in pools if not pool.is_healthy]
        for pool in unhealthy:
            logger.debug(f"Pool not healthy: {pool}")

        return compute_alarm_condition(pool.health_code for pool in pools)
