#!/usr/bin/env python3
"""
Storage Pool Monitor - Main Entry Point

Polls storage pool health every few seconds and sounds the PC speaker
for as long as any pool is not healthy. Meant to run unattended under
a service supervisor (Windows service wrapper, systemd, ...).

Usage:
    # Run until SIGINT/SIGTERM
    python -m poolmon.main

    # One health check, exit status 0 (healthy) / 2 (alarm) / 1 (error)
    python -m poolmon.main --check

    # One alarm pulse through the configured backend
    python -m poolmon.main --test-beep

    # Log alarms without making a sound
    python -m poolmon.main --dry-run
"""

import argparse
import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional, List

import yaml

from poolmon import MonitorError, __version__
from poolmon.alerts.tone import TONE_BACKENDS, create_tone_emitter
from poolmon.config import Config, LOG_LEVELS, load_config
from poolmon.health.sampler import HealthSampler
from poolmon.health.sources import SOURCE_KINDS, create_pool_source
from poolmon.health.types import PoolQueryError
from poolmon.monitor import PoolMonitor
from poolmon.utils.platform import get_platform_name

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_ALARM = 2

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Logging level name
        log_file: Optional path for a size-rotated log file
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
        )

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )


class MonitorService:
    """
    Runs a PoolMonitor in the foreground until a stop signal arrives.

    This is the glue a service supervisor talks to: SIGINT/SIGTERM
    request a stop, run() blocks until then and always stops the monitor.
    """

    def __init__(self, monitor: PoolMonitor):
        self._monitor = monitor
        self._stop_requested = threading.Event()

    @property
    def monitor(self) -> PoolMonitor:
        return self._monitor

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def request_stop(self) -> None:
        self._stop_requested.set()

    def run(self) -> None:
        """Start the monitor and block until a stop is requested."""
        self._monitor.start()
        try:
            while not self._stop_requested.wait(timeout=1.0):
                pass
        finally:
            self._monitor.stop()

    def _signal_handler(self, signum, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.request_stop()


def run_check(config: Config) -> int:
    """
    Run one sampling cycle and print every pool.

    Returns:
        Exit status: 0 healthy, 2 alarm condition, 1 query failure
    """
    try:
        sampler = HealthSampler(create_pool_source(config.sampling.source))
        pools = sampler.read_pools()
    except PoolQueryError as e:
        logger.error(f"Health query failed: {e}")
        return EXIT_ERROR

    if not pools:
        print("No storage pools found")

    for pool in pools:
        print(str(pool))

    if any(not pool.is_healthy for pool in pools):
        return EXIT_ALARM
    return EXIT_OK


def run_test_beep(config: Config) -> int:
    """Emit one alarm pulse through the configured backend."""
    try:
        emitter = create_tone_emitter(config.alarm.backend, settle_ms=config.alarm.settle_ms)
    except MonitorError as e:
        logger.error(f"Tone backend unavailable: {e}")
        return EXIT_ERROR

    try:
        emitter.emit_tone(config.alarm.frequency_hz, config.alarm.duration_ms)
    except MonitorError as e:
        logger.error(f"Test beep failed: {e}")
        return EXIT_ERROR
    finally:
        emitter.close()

    logger.info(f"Test beep sent through {emitter.name} backend")
    return EXIT_OK


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Storage Pool Monitor - audible alarm for unhealthy storage pools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                      Run the monitor until interrupted
  %(prog)s --check              Print pool health and exit
  %(prog)s --test-beep          Sound one alarm pulse
  %(prog)s --source zfs --dry-run
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Configuration
    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML config file (default: config.yaml if present)",
    )
    config_group.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: from config)",
    )
    config_group.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also log to this file, rotated by size",
    )

    # Backends
    backend_group = parser.add_argument_group("Backends")
    backend_group.add_argument(
        "--source",
        choices=SOURCE_KINDS,
        default=None,
        help="Pool health source (default: from config)",
    )
    backend_group.add_argument(
        "--backend",
        choices=TONE_BACKENDS,
        default=None,
        help="Tone backend (default: from config)",
    )
    backend_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Log alarms without making a sound (same as --backend stub)",
    )

    # Modes
    mode_group = parser.add_argument_group("Modes")
    mode_mutex = mode_group.add_mutually_exclusive_group()
    mode_mutex.add_argument(
        "--check",
        action="store_true",
        help="Run one health check and exit",
    )
    mode_mutex.add_argument(
        "--test-beep",
        action="store_true",
        help="Emit one alarm pulse and exit",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return EXIT_ERROR

    # Apply CLI overrides
    if args.log_level:
        config.system.log_level = args.log_level
    if args.log_file:
        config.system.log_file = args.log_file
    if args.source:
        config.sampling.source = args.source
    if args.backend:
        config.alarm.backend = args.backend
    if args.dry_run:
        config.alarm.backend = "stub"

    setup_logging(config.system.log_level, config.system.log_file)

    if args.check:
        return run_check(config)

    if args.test_beep:
        return run_test_beep(config)

    logger.info("=" * 60)
    logger.info(f"Storage Pool Monitor {__version__} on {get_platform_name()}")
    logger.info("=" * 60)

    try:
        monitor = PoolMonitor.from_config(config)
    except MonitorError as e:
        logger.critical(f"Monitor setup failed - aborting: {e}")
        return EXIT_ERROR

    service = MonitorService(monitor)
    service.install_signal_handlers()

    try:
        service.run()
        return EXIT_OK
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_OK
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
