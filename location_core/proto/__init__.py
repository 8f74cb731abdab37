"""
Protocol Module: Fix, location and error schemas.

Shared by every layer:
- RawFix: one sensor reading (input of the signal filter)
- SmoothedLocation / LocationSnapshot: published output
- PositionError: platform error channel
"""

from .fix import (
    RawFix,
    SmoothedLocation,
    LocationSnapshot,
)
from .position_error import (
    PositionError,
    PositionErrorCode,
)

__all__ = [
    'RawFix',
    'SmoothedLocation',
    'LocationSnapshot',
    'PositionError',
    'PositionErrorCode',
]
