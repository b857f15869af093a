"""
Timing utilities for the monitor's periodic triggers.

Provides a cancellable periodic task that can be switched on and off
while its thread keeps running.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs a callback on a fixed interval in a background thread.

    The task can be enabled and disabled at any time without tearing
    down its thread. The first tick fires one interval after the task is
    enabled, and later ticks stay on that wall-clock grid.

    Overlap policy is skip-if-running: callbacks execute one at a time on
    the task's own thread, and any tick whose deadline passes while the
    callback is still busy is dropped (see skipped_ticks), never queued.

    A callback exception is logged and counted; the task carries on with
    its next natural tick.

    Usage:
        task = PeriodicTask(1000, do_work, name="Worker")
        task.start()
        task.enable()
        # ... later
        task.stop()
    """

    def __init__(
        self,
        interval_ms: float,
        callback: Callable[[], object],
        name: str = "PeriodicTask",
        enabled: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize periodic task.

        Args:
            interval_ms: Tick interval in milliseconds (must be > 0)
            callback: Function called on every tick
            name: Thread name, also used in log messages
            enabled: Whether ticks fire as soon as the task starts
            clock: Monotonic clock in seconds
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self._interval_s = interval_ms / 1000.0
        self._callback = callback
        self._name = name
        self._clock = clock

        self._cond = threading.Condition()
        self._enabled = enabled
        self._next_tick: Optional[float] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Statistics
        self._tick_count = 0
        self._error_count = 0
        self._skipped_ticks = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_ms(self) -> float:
        """Get tick interval in milliseconds."""
        return self._interval_s * 1000.0

    @property
    def stop_event(self) -> threading.Event:
        """Event set when the task is stopped; callbacks may wait on it."""
        return self._stop_event

    @property
    def enabled(self) -> bool:
        with self._cond:
            return self._enabled

    @property
    def running(self) -> bool:
        """Check if the task thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    def start(self, timeout: float = 2.0) -> bool:
        """
        Start the background thread.

        A thread detached by an earlier stop() is given up to timeout
        seconds to finish its callback before a new one is started.

        Args:
            timeout: Seconds to wait for a detached thread

        Returns:
            True if the task thread is running
        """
        thread = self._thread
        if thread is not None and thread.is_alive():
            if not self._stop_event.is_set():
                return True
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(
                    f"{self._name} still finishing a detached callback, not restarted"
                )
                return False

        self._stop_event.clear()
        with self._cond:
            if self._enabled:
                self._next_tick = self._clock() + self._interval_s

        self._thread = threading.Thread(
            target=self._run,
            name=self._name,
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"{self._name} started ({self.interval_ms:.0f}ms interval)")
        return True

    def stop(self, timeout: float = 2.0) -> bool:
        """
        Stop the task and wait for its thread.

        A callback still running after the timeout is left to finish on
        its own daemon thread.

        Args:
            timeout: Seconds to wait for the thread to exit

        Returns:
            True if the thread exited, False if it was detached
        """
        self._stop_event.set()
        with self._cond:
            self._enabled = False
            self._next_tick = None
            self._cond.notify_all()

        thread = self._thread
        if thread is None:
            return True

        if thread is not threading.current_thread():
            thread.join(timeout=timeout)

        if thread.is_alive():
            logger.warning(f"{self._name} did not stop within {timeout:.1f}s, detaching")
            return False

        self._thread = None
        logger.debug(f"{self._name} stopped")
        return True

    def enable(self) -> None:
        """
        Enable ticks; the first fires one interval from now.

        Ignored once the task is stopped, so a callback that outlives
        stop() cannot switch the task back on.
        """
        with self._cond:
            if self._enabled or self._stop_event.is_set():
                return
            self._enabled = True
            self._next_tick = self._clock() + self._interval_s
            self._cond.notify_all()

    def disable(self) -> None:
        """Disable ticks. A callback already running is allowed to finish."""
        with self._cond:
            if not self._enabled:
                return
            self._enabled = False
            self._next_tick = None
            self._cond.notify_all()

    def _run(self) -> None:
        """Background thread loop."""
        while self._wait_for_tick():
            self._tick_count += 1
            try:
                self._callback()
            except Exception:
                self._error_count += 1
                logger.exception(f"{self._name} callback failed")

    def _wait_for_tick(self) -> bool:
        """
        Block until the next tick is due.

        Returns:
            True when a tick is due, False when the task was stopped
        """
        with self._cond:
            while not self._stop_event.is_set():
                if not self._enabled or self._next_tick is None:
                    self._cond.wait()
                    continue

                now = self._clock()
                remaining = self._next_tick - now
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue

                # Due: advance the grid, dropping deadlines already missed
                self._next_tick += self._interval_s
                if self._next_tick <= now:
                    missed = int((now - self._next_tick) // self._interval_s) + 1
                    self._next_tick += missed * self._interval_s
                    self._skipped_ticks += missed
                return True

        return False

    def __enter__(self) -> "PeriodicTask":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def sleep_ms(milliseconds: float, cancel: Optional[threading.Event] = None) -> bool:
    """
    Sleep for specified milliseconds.

    Args:
        milliseconds: Time to sleep in milliseconds
        cancel: Optional event that cuts the sleep short when set

    Returns:
        True if the full duration elapsed, False if cancelled
    """
    if milliseconds <= 0:
        return True

    if cancel is None:
        time.sleep(milliseconds / 1000.0)
        return True

    return not cancel.wait(milliseconds / 1000.0)
