"""
Core module initialization.
Exports configuration, clock and error types.
"""

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.core.config import get_settings, Settings, EnvironmentMode

__all__ = ["get_settings", "Settings", "EnvironmentMode", "Clock", "SystemClock"]
