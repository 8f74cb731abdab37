"""
Position Fix Message Schemas.

Defines the raw sensor reading consumed by the signal filter and the
smoothed estimate it publishes.

Notes:
    - RawFix does not validate on construction. Non-finite or missing
      coordinates must reach the SignalFilter, which rejects them silently.
    - SmoothedLocation carries no accuracy; accuracy is published separately.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RawFix:
    """
    One reading from the positioning sensor.

    Attributes:
        lat: Latitude (degrees, WGS84)
        lng: Longitude (degrees, WGS84)
        accuracy_m: Sensor-reported confidence radius (m)
        timestamp_ms: Fix timestamp (ms since epoch)
    """

    lat: float
    lng: float
    accuracy_m: float
    timestamp_ms: int

    @property
    def has_finite_coordinates(self) -> bool:
        """Check that both coordinates are present and finite."""
        try:
            return math.isfinite(self.lat) and math.isfinite(self.lng)
        except TypeError:
            return False

    @property
    def timestamp_s(self) -> float:
        """Fix timestamp in seconds."""
        return self.timestamp_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RawFix':
        """
        Build a fix from a wire message.

        Args:
            data: Dict with 'lat', 'lng' (or 'lon'), 'accuracy' and
                'timestamp_ms'. Missing coordinates become NaN.

        Returns:
            RawFix (possibly invalid; validity is judged by the filter)

        Raises:
            ValueError: If the timestamp is not a finite number
        """
        lng = data.get('lng', data.get('lon'))
        timestamp_ms = _as_float(data.get('timestamp_ms', 0))
        if not math.isfinite(timestamp_ms):
            raise ValueError(f"Invalid timestamp_ms: {data.get('timestamp_ms')!r}")
        return cls(
            lat=_as_float(data.get('lat')),
            lng=_as_float(lng),
            accuracy_m=_as_float(data.get('accuracy', data.get('accuracy_m'))),
            timestamp_ms=int(timestamp_ms),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'lat': self.lat,
            'lng': self.lng,
            'accuracy': self.accuracy_m,
            'timestamp_ms': self.timestamp_ms,
        }


@dataclass(frozen=True)
class SmoothedLocation:
    """Published location estimate (moving average of accepted fixes)."""

    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {'lat': self.lat, 'lng': self.lng}


@dataclass(frozen=True)
class LocationSnapshot:
    """
    State held by the LocationPublisher.

    Attributes:
        location: Latest smoothed location (None before the first publish)
        accuracy: Raw accuracy (m) of the fix that produced `location`
        error: Latest positioning error message, if any
    """

    location: Optional[SmoothedLocation] = None
    accuracy: Optional[float] = None
    error: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.location is not None


def _as_float(value: Any) -> float:
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return math.nan
