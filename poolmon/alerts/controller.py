"""Alarm controller - two-state machine driving the actuation trigger."""

import logging
import threading
from typing import Optional, Protocol

from poolmon.health.sampler import HealthSampler
from .tone import ToneEmitter
from .types import AlarmState, AlertPulse

logger = logging.getLogger(__name__)


class Trigger(Protocol):
    """Anything that can be switched on and off, such as a PeriodicTask."""

    def enable(self) -> None: ...

    def disable(self) -> None: ...


class AlarmController:
    """
    Keeps the alarm state in step with pool health.

    State transitions:
        IDLE → ALARMING: A sampling cycle finds a pool that is not healthy
        ALARMING → IDLE: A sampling cycle finds every pool healthy
        Unchanged input: no transition

    On every sampling cycle the actuation trigger is switched on if the
    state is ALARMING and off otherwise. A failed sample or a failed pulse
    raises to the caller and leaves the state untouched.

    Only the sampling thread writes the state; the actuation thread only
    reads the pulse parameters. The trigger's own lock makes the
    enable/disable flag visible across threads.
    """

    def __init__(
        self,
        sampler: HealthSampler,
        emitter: ToneEmitter,
        trigger: Optional[Trigger] = None,
        pulse: AlertPulse = AlertPulse(),
    ):
        """
        Initialize alarm controller.

        Args:
            sampler: Health sampler read on every sampling cycle
            emitter: Tone emitter used for actuation ticks
            trigger: Actuation trigger switched on while ALARMING
            pulse: Tone emitted on each actuation tick
        """
        self._sampler = sampler
        self._emitter = emitter
        self._trigger = trigger
        self._pulse = pulse

        self._state = AlarmState.IDLE

        # Statistics
        self._transitions = 0
        self._pulses_emitted = 0
        self._pulse_failures = 0
        self._sample_failures = 0
        self._last_error: Optional[str] = None

    @property
    def state(self) -> AlarmState:
        return self._state

    @property
    def is_alarming(self) -> bool:
        return self._state == AlarmState.ALARMING

    @property
    def pulse(self) -> AlertPulse:
        return self._pulse

    @property
    def trigger(self) -> Optional[Trigger]:
        return self._trigger

    def attach_trigger(self, trigger: Trigger) -> None:
        """Attach the actuation trigger and bring it in line with the current state."""
        self._trigger = trigger
        self._apply_trigger()

    def reset(self) -> None:
        """Return to IDLE with the actuation trigger off."""
        self._state = AlarmState.IDLE
        self._apply_trigger()

    def run_sampling_cycle(self) -> AlarmState:
        """
        Sample pool health and update the state.

        Returns:
            State after the cycle

        Raises:
            PoolQueryError: If sampling failed; the state is unchanged
        """
        try:
            condition = self._sampler.sample()
        except Exception as e:
            self._sample_failures += 1
            self._last_error = f"sample: {e}"
            raise

        return self.update(condition)

    def update(self, alarm_condition: bool) -> AlarmState:
        """
        Apply one alarm condition to the state machine.

        Args:
            alarm_condition: True if any pool is not healthy

        Returns:
            State after the update
        """
        new_state = AlarmState.ALARMING if alarm_condition else AlarmState.IDLE

        if new_state != self._state:
            self._state = new_state
            self._transitions += 1
            if new_state == AlarmState.ALARMING:
                logger.warning("Storage pool not healthy - alarm on")
            else:
                logger.info("All storage pools healthy - alarm off")

        self._apply_trigger()
        return self._state

    def run_actuation_tick(self, cancel: Optional[threading.Event] = None) -> bool:
        """
        Emit one alarm pulse.

        Args:
            cancel: Event that cuts the pulse short when set

        Returns:
            True if the full pulse was emitted

        Raises:
            ActuationError: If the tone could not be produced; the state is unchanged
        """
        try:
            completed = self._emitter.emit_tone(
                self._pulse.frequency_hz,
                self._pulse.duration_ms,
                cancel,
            )
        except Exception as e:
            self._pulse_failures += 1
            self._last_error = f"pulse: {e}"
            raise

        self._pulses_emitted += 1
        return completed

    def _apply_trigger(self) -> None:
        if self._trigger is None:
            return
        if self._state == AlarmState.ALARMING:
            self._trigger.enable()
        else:
            self._trigger.disable()

    def get_stats(self) -> dict:
        """Get controller statistics."""
        return {
            "state": self._state.value,
            "transitions": self._transitions,
            "pulses_emitted": self._pulses_emitted,
            "pulse_failures": self._pulse_failures,
            "sample_failures": self._sample_failures,
            "last_error": self._last_error,
        }
