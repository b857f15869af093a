"""
Raw I/O port access for the PC speaker.

Two backends give byte-wide access to legacy x86 I/O ports:
- Linux: the /dev/port character device (needs root or CAP_SYS_RAWIO)
- Windows: the InpOut driver, loaded through ctypes

The backend is chosen at runtime by probe_port_io().
"""

import ctypes
import logging
import os
from collections import deque
from typing import Optional

from poolmon.utils.platform import is_windows, is_linux, inpout_library_name
from .types import ActuationError

logger = logging.getLogger(__name__)


# Programmable interval timer and speaker control ports
PIT_COMMAND_PORT = 0x43
PIT_CHANNEL2_PORT = 0x42
SPEAKER_CONTROL_PORT = 0x61


class PortIO:
    """Base class for byte-wide port access."""

    name = "base"

    def read_byte(self, port: int) -> int:
        raise NotImplementedError

    def write_byte(self, port: int, value: int) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release the backend."""


class DevPortIO(PortIO):
    """Port access through the Linux /dev/port device."""

    name = "dev-port"

    DEFAULT_PATH = "/dev/port"

    def __init__(self, path: str = DEFAULT_PATH):
        self._path = path
        self._fd: Optional[int] = None

    @classmethod
    def is_available(cls, path: str = DEFAULT_PATH) -> bool:
        """Check the device exists and is readable and writable by this process."""
        return os.path.exists(path) and os.access(path, os.R_OK | os.W_OK)

    def _open(self) -> int:
        if self._fd is None:
            try:
                self._fd = os.open(self._path, os.O_RDWR)
            except OSError as e:
                raise ActuationError(f"Cannot open {self._path}: {e}") from e
        return self._fd

    def read_byte(self, port: int) -> int:
        fd = self._open()
        try:
            data = os.pread(fd, 1, port)
        except OSError as e:
            raise ActuationError(f"Port read 0x{port:02X} failed: {e}") from e
        if len(data) != 1:
            raise ActuationError(f"Port read 0x{port:02X} returned no data")
        return data[0]

    def write_byte(self, port: int, value: int) -> None:
        fd = self._open()
        try:
            os.pwrite(fd, bytes([value & 0xFF]), port)
        except OSError as e:
            raise ActuationError(f"Port write 0x{port:02X} failed: {e}") from e

    def close(self) -> None:
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError as e:
                logger.warning(f"Closing {self._path} failed: {e}")
            self._fd = None


def _load_library(name: str):
    """Load a native library with the platform's calling convention."""
    loader = getattr(ctypes, "WinDLL", ctypes.CDLL)
    return loader(name)


class InpOutPortIO(PortIO):
    """
    Port access through the InpOut driver on Windows.

    The library matching the interpreter's word size (inpout32.dll or
    inpoutx64.dll) is resolved when the backend is created.
    """

    name = "inpout"

    def __init__(self, library: Optional[str] = None):
        self._library_name = library or inpout_library_name()
        try:
            self._dll = _load_library(self._library_name)
        except OSError as e:
            raise ActuationError(f"Cannot load {self._library_name}: {e}") from e

        self._dll.Out32.argtypes = [ctypes.c_short, ctypes.c_short]
        self._dll.Out32.restype = None
        self._dll.Inp32.argtypes = [ctypes.c_short]
        self._dll.Inp32.restype = ctypes.c_short

    @property
    def library_name(self) -> str:
        return self._library_name

    def driver_open(self) -> bool:
        """Ask the library whether its kernel driver is loaded."""
        check = getattr(self._dll, "IsInpOutDriverOpen", None)
        if check is None:
            return True
        return bool(check())

    def read_byte(self, port: int) -> int:
        try:
            return self._dll.Inp32(port) & 0xFF
        except OSError as e:
            raise ActuationError(f"Inp32(0x{port:02X}) failed: {e}") from e

    def write_byte(self, port: int, value: int) -> None:
        try:
            self._dll.Out32(port, value & 0xFF)
        except OSError as e:
            raise ActuationError(f"Out32(0x{port:02X}) failed: {e}") from e


def probe_port_io() -> Optional[PortIO]:
    """
    Find a usable port backend for this host.

    Returns:
        PortIO instance, or None if raw port access is unavailable
    """
    if is_linux():
        if DevPortIO.is_available():
            return DevPortIO()
        logger.info(f"{DevPortIO.DEFAULT_PATH} not accessible - raw port access unavailable")
        return None

    if is_windows():
        try:
            port_io = InpOutPortIO()
        except ActuationError as e:
            logger.info(f"InpOut not available: {e}")
            return None
        if not port_io.driver_open():
            logger.info("InpOut driver not loaded - raw port access unavailable")
            return None
        return port_io

    return None


class RecordingPortIO(PortIO):
    """
    In-memory port backend that records recent accesses.

    Used for dry runs of the speaker protocol and in tests. Only the
    last history_size accesses are kept, so a long dry run stays bounded.
    """

    name = "recording"

    DEFAULT_HISTORY_SIZE = 1000

    def __init__(self, initial: Optional[dict] = None, history_size: int = DEFAULT_HISTORY_SIZE):
        self.ports = dict(initial or {})
        self.log: deque = deque(maxlen=history_size)

    def read_byte(self, port: int) -> int:
        value = self.ports.get(port, 0)
        self.log.append(("read", port, value))
        return value

    def write_byte(self, port: int, value: int) -> None:
        self.ports[port] = value & 0xFF
        self.log.append(("write", port, value & 0xFF))
