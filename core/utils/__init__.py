"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Monotonic clock and UTC timestamp helpers
"""

from core.utils.time import monotonic_ms, ms_to_seconds, current_utc_datetime

__all__ = ["monotonic_ms", "ms_to_seconds", "current_utc_datetime"]
