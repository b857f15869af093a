"""
Platform detection utilities.

Provides functions to detect the current platform and resolve which
native backends are usable on it.
"""

import platform
import shutil
import struct
from functools import lru_cache
from typing import Optional


# InpOut ships one driver library per interpreter word size
INPOUT_LIBRARIES = {
    32: "inpout32.dll",
    64: "inpoutx64.dll",
}


def is_windows() -> bool:
    """Check if running on Windows."""
    return platform.system() == "Windows"


def is_linux() -> bool:
    """Check if running on Linux."""
    return platform.system() == "Linux"


@lru_cache(maxsize=1)
def interpreter_bits() -> int:
    """
    Get the pointer width of the running interpreter.

    A 32-bit Python on a 64-bit host still needs the 32-bit native
    library, so this looks at the interpreter rather than the machine.

    Returns:
        32 or 64
    """
    return struct.calcsize("P") * 8


def inpout_library_name(bits: Optional[int] = None) -> str:
    """
    Resolve the InpOut library filename for an interpreter word size.

    Args:
        bits: Pointer width, defaults to the running interpreter

    Returns:
        Library filename to load

    Raises:
        ValueError: If no InpOut build exists for the word size
    """
    if bits is None:
        bits = interpreter_bits()

    try:
        return INPOUT_LIBRARIES[bits]
    except KeyError:
        raise ValueError(f"No InpOut library for {bits}-bit interpreter") from None


def find_executable(name: str) -> Optional[str]:
    """Return the full path of an executable on PATH, or None."""
    return shutil.which(name)


@lru_cache(maxsize=1)
def get_platform_name() -> str:
    """
    Get a human-readable platform name.

    Returns:
        Platform name string
    """
    system = platform.system()
    if system == "Windows":
        return f"Windows {platform.release()} ({interpreter_bits()}-bit)"
    elif system == "Linux":
        return f"Linux ({platform.release()}, {platform.machine()})"
    elif system == "Darwin":
        return f"macOS {platform.mac_ver()[0]}"

    return system
