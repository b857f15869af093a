"""
Storage pool data sources.

Each source enumerates the pools currently known to the host and reports
their health codes. The right source is resolved at runtime from the
platform and the tools it has available.
"""

import json
import logging
import subprocess
import sys
import threading
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from poolmon.utils.platform import is_windows, find_executable
from .types import HealthStatus, PoolHealthRecord, PoolQueryError

logger = logging.getLogger(__name__)


SOURCE_KINDS = ("auto", "wmi", "zfs", "static")

# Keep console windows from flashing up when running as a service
_SUBPROCESS_FLAGS = subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0


class PoolSource:
    """Base class for pool data sources."""

    name = "base"

    def get_pools(self) -> List[PoolHealthRecord]:
        """
        Enumerate all pools and their health.

        Raises:
            PoolQueryError: If the storage subsystem cannot be queried
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release any resources held by the source."""


class WMIPoolSource(PoolSource):
    """
    Windows Storage Spaces pools via WMI.

    Queries MSFT_StoragePool in the storage management namespace through
    PowerShell's CIM cmdlets.
    """

    name = "wmi"

    NAMESPACE = "root/Microsoft/Windows/Storage"
    CLASS_NAME = "MSFT_StoragePool"
    QUERY_TIMEOUT_S = 30.0

    def __init__(self, powershell: str = "powershell"):
        self._powershell = powershell

    @property
    def command(self) -> List[str]:
        script = (
            f"ConvertTo-Json -Compress -InputObject @("
            f"Get-CimInstance -Namespace {self.NAMESPACE} -ClassName {self.CLASS_NAME} "
            f"-ErrorAction Stop | Select-Object FriendlyName,HealthStatus)"
        )
        return [self._powershell, "-NoProfile", "-NonInteractive", "-Command", script]

    def get_pools(self) -> List[PoolHealthRecord]:
        try:
            result = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                timeout=self.QUERY_TIMEOUT_S,
                creationflags=_SUBPROCESS_FLAGS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise PoolQueryError(f"{self.CLASS_NAME} query failed: {e}") from e

        if result.returncode != 0:
            raise PoolQueryError(
                f"{self.CLASS_NAME} query exited with status {result.returncode}: "
                f"{result.stderr.strip()}"
            )

        return self.parse_output(result.stdout)

    @staticmethod
    def parse_output(output: str) -> List[PoolHealthRecord]:
        """
        Parse the JSON array of {FriendlyName, HealthStatus} objects.

        Raises:
            PoolQueryError: If the output is not the expected JSON
        """
        output = output.strip()
        if not output:
            return []

        try:
            rows = json.loads(output)
            if isinstance(rows, dict):
                rows = [rows]
            return [
                PoolHealthRecord(
                    name=str(row.get("FriendlyName") or "(unnamed)"),
                    health_code=_to_health_code(int(row["HealthStatus"])),
                )
                for row in rows
            ]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise PoolQueryError(f"Unexpected {WMIPoolSource.CLASS_NAME} output: {e}") from e


class ZFSPoolSource(PoolSource):
    """ZFS pools via the zpool command line tool."""

    name = "zfs"

    QUERY_TIMEOUT_S = 30.0

    # zpool health words mapped onto storage health codes
    HEALTH_MAP = {
        "ONLINE": HealthStatus.HEALTHY,
        "DEGRADED": HealthStatus.WARNING,
        "FAULTED": HealthStatus.UNHEALTHY,
        "UNAVAIL": HealthStatus.UNHEALTHY,
        "SUSPENDED": HealthStatus.UNHEALTHY,
    }

    def __init__(self, zpool_path: str = "zpool"):
        self._zpool = zpool_path

    @property
    def command(self) -> List[str]:
        return [self._zpool, "list", "-H", "-o", "name,health"]

    def get_pools(self) -> List[PoolHealthRecord]:
        try:
            result = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                timeout=self.QUERY_TIMEOUT_S,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise PoolQueryError(f"zpool query failed: {e}") from e

        if result.returncode != 0:
            raise PoolQueryError(
                f"zpool exited with status {result.returncode}: {result.stderr.strip()}"
            )

        return self.parse_output(result.stdout)

    @classmethod
    def parse_output(cls, output: str) -> List[PoolHealthRecord]:
        """
        Parse tab separated `zpool list -H -o name,health` output.

        Raises:
            PoolQueryError: If a line does not have both columns
        """
        pools = []
        for line in output.splitlines():
            line = line.strip()
            if not line or line == "no pools available":
                continue

            fields = line.split("\t")
            if len(fields) != 2:
                fields = line.split()
            if len(fields) != 2:
                raise PoolQueryError(f"Unexpected zpool output line: {line!r}")

            name, health = fields
            pools.append(PoolHealthRecord(
                name=name,
                health_code=cls.HEALTH_MAP.get(health.upper(), HealthStatus.UNKNOWN),
            ))
        return pools


class StaticPoolSource(PoolSource):
    """
    Fixed pool health, for dry runs and tests.

    Codes can be replaced while the monitor runs, and an error can be
    injected to simulate an unavailable storage subsystem.
    """

    name = "static"

    def __init__(self, codes: Optional[Sequence[int]] = None):
        self._lock = threading.Lock()
        self._pools: List[PoolHealthRecord] = []
        self._error: Optional[Exception] = None
        self.set_codes(codes or [])

    def set_codes(self, codes: Iterable[Union[int, Tuple[str, int]]]) -> None:
        """Replace the pools. Items are codes or (name, code) pairs."""
        pools = []
        for index, item in enumerate(codes):
            if isinstance(item, tuple):
                name, code = item
            else:
                name, code = f"pool{index}", item
            pools.append(PoolHealthRecord(name=name, health_code=_to_health_code(code)))

        with self._lock:
            self._pools = pools

    def set_error(self, error: Optional[Exception]) -> None:
        """Make every query raise the given error until cleared with None."""
        with self._lock:
            self._error = error

    def get_pools(self) -> List[PoolHealthRecord]:
        with self._lock:
            if self._error is not None:
                raise PoolQueryError(str(self._error)) from self._error
            return list(self._pools)


def _to_health_code(code: int) -> Union[HealthStatus, int]:
    """Convert a raw code to HealthStatus where known, keeping unknown codes as ints."""
    try:
        return HealthStatus(code)
    except ValueError:
        return code


def create_pool_source(
    kind: str = "auto",
    codes: Optional[Sequence[int]] = None,
) -> PoolSource:
    """
    Factory function to create the pool source for this host.

    Args:
        kind: One of "auto", "wmi", "zfs", "static"
        codes: Initial codes for the static source

    Returns:
        PoolSource instance

    Raises:
        ValueError: If kind is unknown
        PoolQueryError: If kind is "auto" and no source is usable
    """
    if kind not in SOURCE_KINDS:
        raise ValueError(f"Unknown pool source: {kind}")

    if kind == "static":
        logger.info("Using static pool source")
        return StaticPoolSource(codes)

    if kind == "wmi":
        return WMIPoolSource()

    if kind == "zfs":
        return ZFSPoolSource(find_executable("zpool") or "zpool")

    if is_windows():
        logger.info("Using WMI storage pool source")
        return WMIPoolSource()

    zpool = find_executable("zpool")
    if zpool is not None:
        logger.info(f"Using ZFS pool source ({zpool})")
        return ZFSPoolSource(zpool)

    raise PoolQueryError("No storage pool source available on this host")
