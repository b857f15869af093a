"""
Pool monitor - owns the sampling and actuation triggers.

Wires HealthSampler, AlarmController and a ToneEmitter together with
two periodic triggers: one samples pool health, the other emits alarm
pulses while the controller is ALARMING.
"""

import logging
from typing import Optional

from poolmon import MonitorError
from poolmon.alerts.controller import AlarmController
from poolmon.alerts.tone import ToneEmitter, create_tone_emitter
from poolmon.alerts.types import AlarmState, AlertPulse
from poolmon.config import Config
from poolmon.health.sampler import HealthSampler
from poolmon.health.sources import PoolSource, create_pool_source
from poolmon.utils.timing import PeriodicTask

logger = logging.getLogger(__name__)


class PoolMonitor:
    """
    Background storage pool health monitor.

    Usage:
        monitor = PoolMonitor.from_config(config)
        monitor.start()
        # ... until the service is asked to stop
        monitor.stop()
    """

    STOP_TIMEOUT_S = 2.0

    def __init__(
        self,
        source: PoolSource,
        emitter: ToneEmitter,
        sampling_interval_ms: int = 5000,
        actuation_interval_ms: int = 1000,
        pulse: AlertPulse = AlertPulse(),
    ):
        """
        Initialize pool monitor.

        Args:
            source: Pool data source
            emitter: Tone emitter for alarm pulses
            sampling_interval_ms: Health sampling interval
            actuation_interval_ms: Pulse interval while alarming
            pulse: Tone emitted on each actuation tick
        """
        self._source = source
        self._emitter = emitter
        self._sampler = HealthSampler(source)
        self._controller = AlarmController(self._sampler, emitter, pulse=pulse)

        self._sampling_task = PeriodicTask(
            sampling_interval_ms,
            self._controller.run_sampling_cycle,
            name="HealthSampling",
        )
        self._actuation_task = PeriodicTask(
            actuation_interval_ms,
            self._actuation_tick,
            name="AlarmActuation",
        )
        self._controller.attach_trigger(self._actuation_task)

        self._running = False
        self._stopped = False

    @classmethod
    def from_config(
        cls,
        config: Config,
        source: Optional[PoolSource] = None,
        emitter: Optional[ToneEmitter] = None,
    ) -> "PoolMonitor":
        """
        Build a monitor, resolving the pool source and tone backend for this host.

        Raises:
            PoolQueryError: If no pool source is usable
            ActuationError: If the configured tone backend is unavailable
        """
        if source is None:
            source = create_pool_source(config.sampling.source)
        if emitter is None:
            emitter = create_tone_emitter(config.alarm.backend, settle_ms=config.alarm.settle_ms)

        return cls(
            source=source,
            emitter=emitter,
            sampling_interval_ms=config.sampling.interval_ms,
            actuation_interval_ms=config.alarm.interval_ms,
            pulse=AlertPulse(
                frequency_hz=config.alarm.frequency_hz,
                duration_ms=config.alarm.duration_ms,
            ),
        )

    @property
    def sampler(self) -> HealthSampler:
        return self._sampler

    @property
    def controller(self) -> AlarmController:
        return self._controller

    @property
    def emitter(self) -> ToneEmitter:
        return self._emitter

    @property
    def sampling_task(self) -> PeriodicTask:
        return self._sampling_task

    @property
    def actuation_task(self) -> PeriodicTask:
        return self._actuation_task

    @property
    def state(self) -> AlarmState:
        return self._controller.state

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Reset to IDLE and start sampling.

        A monitor runs once: stop() closes the emitter and the source, so
        build a new monitor to start again.

        Raises:
            MonitorError: If the monitor has already been stopped
        """
        if self._running:
            return
        if self._stopped:
            raise MonitorError("Pool monitor has been stopped and cannot be restarted")

        self._controller.reset()
        self._actuation_task.start()
        self._sampling_task.start()
        self._sampling_task.enable()
        self._running = True

        logger.info(
            f"Pool monitor started (source={self._source.name}, "
            f"tone={self._emitter.name}, "
            f"sampling every {self._sampling_task.interval_ms:.0f}ms)"
        )

    def stop(self) -> None:
        """
        Stop both triggers and release resources.

        Shutdown is best effort: errors are logged and do not stop the
        remaining steps.
        """
        if not self._running:
            return
        self._running = False
        self._stopped = True

        for task in (self._sampling_task, self._actuation_task):
            try:
                task.stop(timeout=self.STOP_TIMEOUT_S)
            except Exception as e:
                logger.warning(f"Stopping {task.name} failed: {e}")

        for resource in (self._emitter, self._source):
            try:
                resource.close()
            except Exception as e:
                logger.warning(f"Closing {resource.name} failed: {e}")

        logger.info(
            f"Pool monitor stopped. Samples: {self._sampler.sample_count}, "
            f"Pulses: {self._controller.get_stats()['pulses_emitted']}"
        )

    def _actuation_tick(self) -> None:
        # The stop event cuts a pulse short so stop() returns promptly
        self._controller.run_actuation_tick(cancel=self._actuation_task.stop_event)

    def status(self) -> dict:
        """Get a snapshot of monitor state and statistics."""
        stats = self._controller.get_stats()
        stats.update({
            "running": self._running,
            "source": self._source.name,
            "tone_backend": self._emitter.name,
            "samples": self._sampler.sample_count,
            "actuation_enabled": self._actuation_task.enabled,
            "skipped_sampling_ticks": self._sampling_task.skipped_ticks,
            "skipped_actuation_ticks": self._actuation_task.skipped_ticks,
        })
        return stats

    def __enter__(self) -> "PoolMonitor":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
