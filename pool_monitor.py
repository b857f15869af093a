#!/usr/bin/env python3
"""
Storage Pool Monitor - Entry Point

This is the main entry point for the Storage Pool Monitor.
Run this file directly or use: python -m poolmon.main

Usage:
    python pool_monitor.py --help
    python pool_monitor.py --check
    python pool_monitor.py --dry-run
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from poolmon.main import main

if __name__ == "__main__":
    sys.exit(main())
