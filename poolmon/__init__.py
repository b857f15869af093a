"""
Storage Pool Monitor.

Polls the health of host storage pools and sounds an audible alarm
for as long as any pool is not healthy.
"""

__version__ = "1.0.0"


class MonitorError(Exception):
    """Base class for monitor errors."""
