"""Utility modules for the Storage Pool Monitor."""

from poolmon.utils.platform import (
    is_windows,
    is_linux,
    interpreter_bits,
    inpout_library_name,
    get_platform_name,
)
from poolmon.utils.timing import PeriodicTask, sleep_ms

__all__ = [
    "is_windows",
    "is_linux",
    "interpreter_bits",
    "inpout_library_name",
    "get_platform_name",
    "PeriodicTask",
    "sleep_ms",
]
