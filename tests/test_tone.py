"""
Tests for the tone emitters and raw port backends.

Run:
    pytest tests/test_tone.py -v
"""

import subprocess
import sys
import threading
from unittest.mock import MagicMock, patch

import pytest


def make_recording_sleep(port_io):
    """Sleep stand-in that logs into the port backend's access log."""
    def fake_sleep(milliseconds, cancel=None):
        port_io.log.append(("sleep", milliseconds))
        return True
    return fake_sleep


# ==============================================================================
# PIT divisor
# ==============================================================================

class TestPITDivisor:
    """Test channel 2 divisor computation."""

    def test_alarm_frequency(self):
        from poolmon.alerts.tone import pit_divisor

        assert pit_divisor(900) == 1325  # 0x052D

    def test_clamped_to_16_bits(self):
        from poolmon.alerts.tone import pit_divisor

        assert pit_divisor(1) == 0xFFFF
        assert pit_divisor(10_000_000) == 1

    def test_rejects_zero(self):
        from poolmon.alerts.tone import pit_divisor

        with pytest.raises(ValueError):
            pit_divisor(0)


# ==============================================================================
# PortSpeakerEmitter
# ==============================================================================

class TestPortSpeakerEmitter:
    """Test the PC speaker port sequence."""

    def test_sequence_order(self):
        """Command byte, divisor low/high, settle, gate on, hold, gate off."""
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter

        io = RecordingPortIO(initial={0x61: 0x30})
        emitter = PortSpeakerEmitter(io, sleep=make_recording_sleep(io))

        assert emitter.emit_tone(900, 500) is True
        assert list(io.log) == [
            ("write", 0x43, 0xB6),
            ("write", 0x42, 0x2D),
            ("write", 0x42, 0x05),
            ("sleep", 10),
            ("read", 0x61, 0x30),
            ("write", 0x61, 0x33),
            ("sleep", 500),
            ("read", 0x61, 0x33),
            ("write", 0x61, 0x30),
        ]

    def test_other_speaker_bits_preserved(self):
        """Only the two gate bits are touched."""
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter

        io = RecordingPortIO(initial={0x61: 0xFE})
        PortSpeakerEmitter(io, sleep=make_recording_sleep(io)).emit_tone(900, 1)

        assert io.ports[0x61] == 0xFC

    def test_cancelled_hold_still_silences(self):
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter

        io = RecordingPortIO()
        cancel = threading.Event()
        cancel.set()
        calls = []

        def sleep(milliseconds, cancel_event=None):
            calls.append(milliseconds)
            # Settle completes, hold is interrupted
            return len(calls) == 1

        emitter = PortSpeakerEmitter(io, sleep=sleep)
        assert emitter.emit_tone(900, 500, cancel) is False
        assert io.log[-1] == ("write", 0x61, 0x00)

    def test_cancel_during_settle_skips_gate(self):
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter

        io = RecordingPortIO()
        emitter = PortSpeakerEmitter(io, sleep=lambda ms, cancel=None: False)

        assert emitter.emit_tone(900, 500) is False
        assert all(entry[1] != 0x61 for entry in io.log)

    def test_real_sleep_cancellation(self):
        """The default sleep returns as soon as the cancel event is set."""
        import time
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter

        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()

        start = time.monotonic()
        completed = PortSpeakerEmitter(RecordingPortIO()).emit_tone(900, 5000, cancel)
        elapsed = time.monotonic() - start
        timer.join()

        assert completed is False
        assert elapsed < 2.0

    def test_port_failure_surfaces(self):
        from poolmon.alerts.port_io import PortIO
        from poolmon.alerts.tone import PortSpeakerEmitter
        from poolmon.alerts.types import ActuationError

        class BrokenPortIO(PortIO):
            def read_byte(self, port):
                raise ActuationError("read denied")

            def write_byte(self, port, value):
                raise ActuationError("write denied")

        with pytest.raises(ActuationError, match="write denied"):
            PortSpeakerEmitter(BrokenPortIO()).emit_tone(900, 500)


# ==============================================================================
# Port backends
# ==============================================================================

class TestDevPortIO:
    """Test /dev/port access against a regular file standing in for the device."""

    def test_read_write(self, tmp_path):
        from poolmon.alerts.port_io import DevPortIO

        device = tmp_path / "port"
        device.write_bytes(bytes(0x100))

        io = DevPortIO(str(device))
        io.write_byte(0x61, 0x133)
        assert io.read_byte(0x61) == 0x33
        io.close()

        assert device.read_bytes()[0x61] == 0x33

    def test_read_past_end_fails(self, tmp_path):
        from poolmon.alerts.port_io import DevPortIO
        from poolmon.alerts.types import ActuationError

        device = tmp_path / "port"
        device.write_bytes(bytes(0x10))

        with pytest.raises(ActuationError):
            DevPortIO(str(device)).read_byte(0x61)

    def test_missing_device_fails(self, tmp_path):
        from poolmon.alerts.port_io import DevPortIO
        from poolmon.alerts.types import ActuationError

        path = str(tmp_path / "missing")
        assert DevPortIO.is_available(path) is False
        with pytest.raises(ActuationError):
            DevPortIO(path).write_byte(0x61, 0)


class TestInpOutPortIO:
    """Test the InpOut ctypes wrapper with a fake library."""

    def test_library_resolved_by_word_size(self):
        from poolmon.utils.platform import inpout_library_name

        assert inpout_library_name(64) == "inpoutx64.dll"
        assert inpout_library_name(32) == "inpout32.dll"
        with pytest.raises(ValueError):
            inpout_library_name(16)

    def test_calls_go_to_library(self):
        from poolmon.alerts.port_io import InpOutPortIO

        dll = MagicMock()
        dll.Inp32.return_value = 0x1F0
        with patch("poolmon.alerts.port_io._load_library", return_value=dll) as load:
            io = InpOutPortIO("inpoutx64.dll")

        load.assert_called_once_with("inpoutx64.dll")
        io.write_byte(0x43, 0xB6)
        assert io.read_byte(0x61) == 0xF0
        dll.Out32.assert_called_once_with(0x43, 0xB6)

    def test_missing_library(self):
        from poolmon.alerts.port_io import InpOutPortIO
        from poolmon.alerts.types import ActuationError

        with patch("poolmon.alerts.port_io._load_library", side_effect=OSError("not found")):
            with pytest.raises(ActuationError, match="not found"):
                InpOutPortIO("inpout32.dll")

    def test_driver_open(self):
        from poolmon.alerts.port_io import InpOutPortIO

        dll = MagicMock()
        dll.IsInpOutDriverOpen.return_value = 0
        with patch("poolmon.alerts.port_io._load_library", return_value=dll):
            assert InpOutPortIO("inpoutx64.dll").driver_open() is False


class TestProbePortIO:
    """Test runtime port backend resolution."""

    def test_linux_without_access(self):
        from poolmon.alerts import port_io

        with patch.object(port_io, "is_linux", return_value=True), \
             patch.object(port_io.DevPortIO, "is_available", return_value=False):
            assert port_io.probe_port_io() is None

    def test_linux_with_access(self):
        from poolmon.alerts import port_io

        with patch.object(port_io, "is_linux", return_value=True), \
             patch.object(port_io.DevPortIO, "is_available", return_value=True):
            assert isinstance(port_io.probe_port_io(), port_io.DevPortIO)

    def test_windows_without_driver(self):
        from poolmon.alerts import port_io

        with patch.object(port_io, "is_linux", return_value=False), \
             patch.object(port_io, "is_windows", return_value=True), \
             patch.object(port_io, "_load_library", side_effect=OSError("missing")):
            assert port_io.probe_port_io() is None


# ==============================================================================
# Fallback emitter and factory
# ==============================================================================

def _linux_fallback(beep_path=None):
    """Build a FallbackToneEmitter as on Linux without pygame."""
    from poolmon.alerts import tone

    with patch.object(tone, "is_windows", return_value=False), \
         patch.object(tone, "find_executable", return_value=beep_path), \
         patch.dict(sys.modules, {"pygame": None}):
        return tone.FallbackToneEmitter()


class TestFallbackToneEmitter:
    """Test portable tone primitives."""

    def test_winsound(self):
        from poolmon.alerts import tone

        winsound = MagicMock()
        with patch.object(tone, "is_windows", return_value=True), \
             patch.dict(sys.modules, {"winsound": winsound}):
            emitter = tone.FallbackToneEmitter()

        assert emitter.primitive == "winsound"
        assert emitter.emit_tone(900, 500) is True
        winsound.Beep.assert_called_once_with(900, 500)

    def test_winsound_failure(self):
        from poolmon.alerts import tone
        from poolmon.alerts.types import ActuationError

        winsound = MagicMock()
        winsound.Beep.side_effect = RuntimeError("Failed to beep")
        with patch.object(tone, "is_windows", return_value=True), \
             patch.dict(sys.modules, {"winsound": winsound}):
            emitter = tone.FallbackToneEmitter()

        with pytest.raises(ActuationError):
            emitter.emit_tone(900, 500)

    def test_beep_command(self):
        emitter = _linux_fallback("/usr/bin/beep")
        assert emitter.primitive == "beep"

        with patch("poolmon.alerts.tone.subprocess.run") as run:
            assert emitter.emit_tone(900, 500) is True

        assert run.call_args[0][0] == ["/usr/bin/beep", "-f", "900", "-l", "500"]

    def test_beep_command_failure(self):
        from poolmon.alerts.types import ActuationError

        emitter = _linux_fallback("/usr/bin/beep")
        error = subprocess.CalledProcessError(1, "beep")
        with patch("poolmon.alerts.tone.subprocess.run", side_effect=error):
            with pytest.raises(ActuationError):
                emitter.emit_tone(900, 500)

    def test_nothing_available(self):
        from poolmon.alerts.types import ActuationError

        emitter = _linux_fallback(None)
        assert emitter.is_available is False
        with pytest.raises(ActuationError):
            emitter.emit_tone(900, 500)


class TestToneEmitterFactory:
    """Test create_tone_emitter backend selection."""

    def test_stub_runs_protocol_in_memory(self):
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter, create_tone_emitter

        emitter = create_tone_emitter("stub", settle_ms=0)
        assert isinstance(emitter, PortSpeakerEmitter)
        assert isinstance(emitter.port_io, RecordingPortIO)

    def test_stub_access_log_is_bounded(self):
        """A long dry run keeps only the most recent port accesses."""
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import create_tone_emitter

        emitter = create_tone_emitter("stub", settle_ms=0)
        for _ in range(1000):
            emitter.emit_tone(900, 0)

        assert len(emitter.port_io.log) == RecordingPortIO.DEFAULT_HISTORY_SIZE
        assert emitter.port_io.log[-1] == ("write", 0x61, 0x00)
        assert emitter.port_io.ports[0x61] == 0x00

    def test_auto_prefers_port(self):
        from poolmon.alerts.port_io import RecordingPortIO
        from poolmon.alerts.tone import PortSpeakerEmitter, create_tone_emitter

        with patch("poolmon.alerts.tone.probe_port_io", return_value=RecordingPortIO()):
            assert isinstance(create_tone_emitter("auto"), PortSpeakerEmitter)

    def test_auto_falls_back(self):
        from poolmon.alerts import tone

        with patch.object(tone, "probe_port_io", return_value=None), \
             patch.object(tone, "is_windows", return_value=False), \
             patch.object(tone, "find_executable", return_value="/usr/bin/beep"), \
             patch.dict(sys.modules, {"pygame": None}):
            emitter = tone.create_tone_emitter("auto")

        assert isinstance(emitter, tone.FallbackToneEmitter)
        assert emitter.primitive == "beep"

    def test_port_required_but_unavailable(self):
        from poolmon.alerts.tone import create_tone_emitter
        from poolmon.alerts.types import ActuationError

        with patch("poolmon.alerts.tone.probe_port_io", return_value=None):
            with pytest.raises(ActuationError):
                create_tone_emitter("port")

    def test_unknown_backend(self):
        from poolmon.alerts.tone import create_tone_emitter

        with pytest.raises(ValueError):
            create_tone_emitter("speaker")
