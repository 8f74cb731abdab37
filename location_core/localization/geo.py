"""
Great-circle geometry helpers.

Used by the signal filter (teleport rejection) and by downstream consumers
(distance-to-task-radius checks, distance labels).
"""

from typing import Optional, Tuple, Union

import numpy as np

EARTH_RADIUS_M = 6371000.0

LatLng = Tuple[float, float]
ArrayLike = Union[float, np.ndarray]


def haversine_m(lat1: ArrayLike, lng1: ArrayLike, lat2: ArrayLike, lng2: ArrayLike) -> ArrayLike:
    """
    Great-circle distance using the haversine formula.

    Args:
        lat1, lng1: First point(s) in degrees
        lat2, lng2: Second point(s) in degrees

    Returns:
        Distance in meters (float for scalars, array for array inputs)
    """
    phi1 = np.radians(lat1)
    phi2 = np.radians(lat2)
    d_phi = np.radians(np.subtract(lat2, lat1))
    d_lambda = np.radians(np.subtract(lng2, lng1))

    x = np.sin(d_phi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    # Rounding can push x marginally above 1 for antipodal points
    distance = 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(x, 0.0, 1.0)))

    if np.ndim(distance) == 0:
        return float(distance)
    return distance


def distance_between(a: Optional[LatLng], b: Optional[LatLng]) -> float:
    """
    Distance in meters between two (lat, lng) pairs.

    Returns 0.0 when either point is missing.
    """
    if a is None or b is None:
        return 0.0
    return haversine_m(a[0], a[1], b[0], b[1])


def is_within_radius(position: Optional[LatLng], target: Optional[LatLng], radius_m: float) -> bool:
    """Check whether `position` lies within `radius_m` of `target`."""
    if position is None or target is None:
        return False
    return distance_between(position, target) <= radius_m


def format_distance(meters: float) -> str:
    """Format a distance for display ('850 m', '1.2 km')."""
    if meters >= 1000:
        return f"{meters / 1000:.1f} km"
    return f"{round(meters)} m"
