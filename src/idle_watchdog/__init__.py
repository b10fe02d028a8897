"""Idle Watchdog - idle detection with countdown and pluggable interrupts."""

__version__ = "0.1.0"
