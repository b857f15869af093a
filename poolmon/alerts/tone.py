"""
Tone emitters for the audible alarm.

PortSpeakerEmitter drives the PC speaker directly through the
programmable interval timer. Where raw port access is not available,
FallbackToneEmitter uses winsound (Windows), pygame (Linux) or the
`beep` command instead.
"""

import logging
import subprocess
import threading
from typing import Callable, Optional

from poolmon.utils.platform import is_windows, find_executable
from poolmon.utils.timing import sleep_ms
from .port_io import (
    PortIO,
    RecordingPortIO,
    probe_port_io,
    PIT_COMMAND_PORT,
    PIT_CHANNEL2_PORT,
    SPEAKER_CONTROL_PORT,
)
from .types import ActuationError

logger = logging.getLogger(__name__)


TONE_BACKENDS = ("auto", "port", "fallback", "stub")

# PIT input clock in Hz
PIT_INPUT_HZ = 1193182

# Channel 2, lobyte/hibyte access, mode 3 (square wave), binary
PIT_CHANNEL2_SQUARE_WAVE = 0xB6

# Speaker control bits: timer 2 gate and speaker data
SPEAKER_GATE_BITS = 0x03

DEFAULT_SETTLE_MS = 10


def pit_divisor(frequency_hz: int) -> int:
    """
    Compute the 16-bit channel 2 divisor for a tone frequency.

    Raises:
        ValueError: If the frequency is not positive
    """
    if frequency_hz <= 0:
        raise ValueError(f"frequency_hz must be positive, got {frequency_hz}")
    return max(1, min(0xFFFF, PIT_INPUT_HZ // frequency_hz))


class ToneEmitter:
    """
    Base class for tone emitters.

    emit_tone() blocks for the whole tone. If the cancel event is set the
    tone is cut short and the call returns False. Failures raise
    ActuationError.
    """

    name = "base"

    def emit_tone(
        self,
        frequency_hz: int,
        duration_ms: int,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        """Release the emitter's resources."""


class PortSpeakerEmitter(ToneEmitter):
    """
    PC speaker tone through raw port I/O.

    Sequence per tone:
    1. Program PIT channel 2: command byte, divisor low byte, divisor high byte
    2. Settle delay
    3. Set the gate bits on the speaker control port
    4. Hold for the tone duration
    5. Clear the gate bits
    """

    name = "port"

    def __init__(
        self,
        port_io: PortIO,
        settle_ms: int = DEFAULT_SETTLE_MS,
        sleep: Callable[[float, Optional[threading.Event]], bool] = sleep_ms,
    ):
        """
        Initialize port speaker emitter.

        Args:
            port_io: Port backend
            settle_ms: Delay between programming the timer and opening the gate
            sleep: Sleep function taking (milliseconds, cancel event)
        """
        self._port_io = port_io
        self._settle_ms = settle_ms
        self._sleep = sleep

    @property
    def port_io(self) -> PortIO:
        return self._port_io

    def emit_tone(
        self,
        frequency_hz: int,
        duration_ms: int,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        divisor = pit_divisor(frequency_hz)
        io = self._port_io

        io.write_byte(PIT_COMMAND_PORT, PIT_CHANNEL2_SQUARE_WAVE)
        io.write_byte(PIT_CHANNEL2_PORT, divisor & 0xFF)
        io.write_byte(PIT_CHANNEL2_PORT, (divisor >> 8) & 0xFF)

        if not self._sleep(self._settle_ms, cancel):
            return False

        io.write_byte(SPEAKER_CONTROL_PORT, io.read_byte(SPEAKER_CONTROL_PORT) | SPEAKER_GATE_BITS)
        try:
            completed = self._sleep(duration_ms, cancel)
        finally:
            # Always silence, even when the hold was interrupted
            io.write_byte(
                SPEAKER_CONTROL_PORT,
                io.read_byte(SPEAKER_CONTROL_PORT) & ~SPEAKER_GATE_BITS & 0xFF,
            )

        return completed

    def close(self) -> None:
        self._port_io.close()


class FallbackToneEmitter(ToneEmitter):
    """
    Tone through portable audio primitives.

    On Windows: winsound.Beep()
    Elsewhere: pygame sine tone (preferred) or the `beep` command
    """

    name = "fallback"

    SAMPLE_RATE = 44100
    FADE_S = 0.01

    def __init__(self):
        self._winsound = None
        self._pygame = None
        self._beep_path: Optional[str] = None

        if is_windows():
            try:
                import winsound
                self._winsound = winsound
            except ImportError:
                pass
        else:
            try:
                import pygame
                pygame.mixer.pre_init(frequency=self.SAMPLE_RATE, size=-16, channels=1, buffer=512)
                pygame.mixer.init()
                self._pygame = pygame
            except Exception as e:
                logger.debug(f"pygame audio unavailable: {e}")

            self._beep_path = find_executable("beep")

    @property
    def primitive(self) -> Optional[str]:
        """Name of the primitive in use, or None when nothing can play."""
        if self._winsound is not None:
            return "winsound"
        if self._pygame is not None:
            return "pygame"
        if self._beep_path is not None:
            return "beep"
        return None

    @property
    def is_available(self) -> bool:
        return self.primitive is not None

    def emit_tone(
        self,
        frequency_hz: int,
        duration_ms: int,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        if self._winsound is not None:
            try:
                self._winsound.Beep(frequency_hz, duration_ms)
            except RuntimeError as e:
                raise ActuationError(f"winsound.Beep failed: {e}") from e
            return True

        if self._pygame is not None:
            return self._play_pygame_tone(frequency_hz, duration_ms, cancel)

        if self._beep_path is not None:
            return self._play_system_beep(frequency_hz, duration_ms)

        raise ActuationError("No tone primitive available on this host")

    def _play_pygame_tone(
        self,
        frequency_hz: int,
        duration_ms: int,
        cancel: Optional[threading.Event],
    ) -> bool:
        """Generate and play a sine tone with pygame."""
        import numpy as np

        try:
            sample_rate, _, channels = self._pygame.mixer.get_init()
            duration_s = duration_ms / 1000.0
            n_samples = int(sample_rate * duration_s)

            t = np.linspace(0, duration_s, n_samples, endpoint=False, dtype=np.float32)
            wave = np.sin(2 * np.pi * frequency_hz * t)

            # Fade in/out to avoid clicks
            fade_samples = int(sample_rate * self.FADE_S)
            if fade_samples > 0 and n_samples > 2 * fade_samples:
                wave[:fade_samples] *= np.linspace(0, 1, fade_samples, dtype=np.float32)
                wave[-fade_samples:] *= np.linspace(1, 0, fade_samples, dtype=np.float32)

            wave = (wave * 32767).astype(np.int16)
            if channels > 1:
                wave = np.ascontiguousarray(np.repeat(wave[:, None], channels, axis=1))

            sound = self._pygame.sndarray.make_sound(wave)
            sound.play()
        except Exception as e:
            raise ActuationError(f"pygame tone failed: {e}") from e

        try:
            return sleep_ms(duration_ms, cancel)
        finally:
            sound.stop()

    def _play_system_beep(self, frequency_hz: int, duration_ms: int) -> bool:
        """Play a tone with the `beep` command."""
        try:
            subprocess.run(
                [self._beep_path, "-f", str(frequency_hz), "-l", str(duration_ms)],
                capture_output=True,
                timeout=duration_ms / 1000.0 + 0.5,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ActuationError(f"beep command failed: {e}") from e
        return True

    def close(self) -> None:
        if self._pygame is not None:
            self._pygame.mixer.quit()
            self._pygame = None


def create_tone_emitter(
    backend: str = "auto",
    settle_ms: int = DEFAULT_SETTLE_MS,
) -> ToneEmitter:
    """
    Factory function to create the tone emitter for this host.

    "auto" probes for raw port access and uses the PC speaker when it is
    available, otherwise the portable fallback. "stub" runs the speaker
    protocol against an in-memory port backend (no sound).

    Args:
        backend: One of "auto", "port", "fallback", "stub"
        settle_ms: PIT settle delay for the port emitter

    Returns:
        ToneEmitter instance

    Raises:
        ValueError: If backend is unknown
        ActuationError: If backend is "port" and raw port access is unavailable
    """
    if backend not in TONE_BACKENDS:
        raise ValueError(f"Unknown tone backend: {backend}")

    if backend == "stub":
        logger.info("Using stub tone backend (no sound)")
        return PortSpeakerEmitter(RecordingPortIO(), settle_ms=settle_ms)

    if backend in ("auto", "port"):
        port_io = probe_port_io()
        if port_io is not None:
            logger.info(f"Using PC speaker through {port_io.name} port access")
            return PortSpeakerEmitter(port_io, settle_ms=settle_ms)
        if backend == "port":
            raise ActuationError("Raw port access is not available on this host")

    emitter = FallbackToneEmitter()
    if emitter.is_available:
        logger.info(f"Using fallback tone backend ({emitter.primitive})")
    else:
        logger.warning("No tone primitive available - alarm pulses will fail")
    return emitter
