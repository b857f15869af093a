"""
Configuration management for the Storage Pool Monitor.

Handles loading, validation, and access to monitor configuration.
"""

import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from poolmon.alerts.tone import TONE_BACKENDS
from poolmon.alerts.types import ALARM_FREQUENCY_HZ, ALARM_DURATION_MS
from poolmon.health.sources import SOURCE_KINDS


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SystemConfig:
    """Process-level configuration."""
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class SamplingConfig:
    """Health sampling configuration."""
    interval_ms: int = 5000
    source: str = "auto"


@dataclass
class AlarmConfig:
    """Audible alarm configuration."""
    interval_ms: int = 1000
    frequency_hz: int = ALARM_FREQUENCY_HZ
    duration_ms: int = ALARM_DURATION_MS
    settle_ms: int = 10
    backend: str = "auto"


@dataclass
class Config:
    """Complete monitor configuration."""
    system: SystemConfig = field(default_factory=SystemConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    alarm: AlarmConfig = field(default_factory=AlarmConfig)

    def validate(self) -> "Config":
        """
        Check values are usable.

        Raises:
            ValueError: On the first invalid value
        """
        if self.system.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.system.log_level}")
        if self.sampling.interval_ms <= 0:
            raise ValueError("sampling.interval_ms must be positive")
        if self.sampling.source not in SOURCE_KINDS:
            raise ValueError(f"Unknown pool source: {self.sampling.source}")
        if self.alarm.interval_ms <= 0:
            raise ValueError("alarm.interval_ms must be positive")
        if self.alarm.frequency_hz <= 0:
            raise ValueError("alarm.frequency_hz must be positive")
        if self.alarm.duration_ms < 0:
            raise ValueError("alarm.duration_ms must not be negative")
        if self.alarm.settle_ms < 0:
            raise ValueError("alarm.settle_ms must not be negative")
        if self.alarm.backend not in TONE_BACKENDS:
            raise ValueError(f"Unknown tone backend: {self.alarm.backend}")
        return self


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Get a config section, treating an empty section as {}."""
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses config.yaml in the
            project root when present

    Returns:
        Populated Config object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If config file is malformed
        ValueError: If a value is invalid
    """
    if config_path is None:
        path = DEFAULT_CONFIG_PATH
        if not path.exists():
            # Return default configuration
            return Config()
    else:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping")

    config = Config()

    # Parse system config
    sys_data = _section(data, "system")
    config.system = SystemConfig(
        log_level=str(sys_data.get("log_level", "INFO")).upper(),
        log_file=sys_data.get("log_file"),
    )

    # Parse sampling config
    sampling_data = _section(data, "sampling")
    config.sampling = SamplingConfig(
        interval_ms=int(sampling_data.get("interval_ms", 5000)),
        source=sampling_data.get("source", "auto"),
    )

    # Parse alarm config
    alarm_data = _section(data, "alarm")
    config.alarm = AlarmConfig(
        interval_ms=int(alarm_data.get("interval_ms", 1000)),
        frequency_hz=int(alarm_data.get("frequency_hz", ALARM_FREQUENCY_HZ)),
        duration_ms=int(alarm_data.get("duration_ms", ALARM_DURATION_MS)),
        settle_ms=int(alarm_data.get("settle_ms", 10)),
        backend=alarm_data.get("backend", "auto"),
    )

    return config.validate()
