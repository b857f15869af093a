"""
Alert System Module.

Provides the alarm state machine and the tone emitters that produce
the audible alarm.
"""

from .types import AlarmState, AlertPulse, ActuationError
from .controller import AlarmController
from .tone import (
    ToneEmitter,
    PortSpeakerEmitter,
    FallbackToneEmitter,
    create_tone_emitter,
)
from .port_io import PortIO, DevPortIO, InpOutPortIO, probe_port_io

__all__ = [
    "AlarmState",
    "AlertPulse",
    "ActuationError",
    "AlarmController",
    "ToneEmitter",
    "PortSpeakerEmitter",
    "FallbackToneEmitter",
    "create_tone_emitter",
    "PortIO",
    "DevPortIO",
    "InpOutPortIO",
    "probe_port_io",
]
