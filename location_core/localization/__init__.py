"""
Localization Module: Fix conditioning and geometry.

Key classes:
- SignalFilter: Accuracy gate, throttle, teleport rejection, smoothing
- FilterState: Per-session filter state (bounded smoothing buffer)
"""

from .geo import (
    EARTH_RADIUS_M,
    haversine_m,
    distance_between,
    is_within_radius,
    format_distance,
)
from .signal_filter import (
    AcceptedFix,
    FilterState,
    SignalFilter,
    SignalFilterConfig,
)

__all__ = [
    # Geometry
    'EARTH_RADIUS_M',
    'haversine_m',
    'distance_between',
    'is_within_radius',
    'format_distance',
    # Signal conditioning
    'AcceptedFix',
    'FilterState',
    'SignalFilter',
    'SignalFilterConfig',
]
