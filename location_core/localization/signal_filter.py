"""
Signal Filter for Raw Position Fixes.

Turns a sequence of noisy sensor fixes into a stable location estimate by
applying, in this fixed order:

1. Validity check (finite coordinates)
2. Accuracy gate (bootstrap-exempt)
3. Throttle (bypassed by forced fixes)
4. Teleport rejection (implied speed vs last accepted fix)
5. Accept into a bounded FIFO buffer
6. Moving-average smoothing over the buffer

The order matters: changing it changes which fixes end up in the smoothing
buffer once throttling lifts.

All rejections are silent. The caller simply gets None; the drop reason is
logged at DEBUG and counted in metrics.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Tuple

import numpy as np

from location_core.localization.geo import haversine_m
from location_core.metrics import MetricsCollector, get_metrics
from location_core.proto.fix import RawFix, SmoothedLocation

logger = logging.getLogger(__name__)


@dataclass
class SignalFilterConfig:
    """
    Configuration for the signal filter.

    Attributes:
        buffer_size: Number of accepted fixes averaged for smoothing
        max_speed_m_s: Maximum plausible implied speed (m/s)
        throttle_interval_ms: Minimum interval between publishes (ms)
        max_accuracy_m: Accuracy gate once a location has been published (m)
        teleport_accuracy_exemption_m: Fixes at least this precise are
            trusted even when the implied speed is implausible (m)
    """

    buffer_size: int = 3
    max_speed_m_s: float = 50.0          # ~180 km/h, allows highway travel
    throttle_interval_ms: int = 1000
    max_accuracy_m: float = 100.0
    teleport_accuracy_exemption_m: float = 20.0

    def __post_init__(self):
        """Validate configuration."""
        assert self.buffer_size > 0, "buffer_size must be positive"
        assert self.max_speed_m_s > 0, "max_speed must be positive"
        assert self.throttle_interval_ms >= 0, "throttle_interval must be non-negative"
        assert self.max_accuracy_m > 0, "max_accuracy must be positive"


@dataclass(frozen=True)
class AcceptedFix:
    """Last fix that passed every filter stage."""

    lat: float
    lng: float
    timestamp_ms: int


@dataclass
class FilterState:
    """
    Mutable filter state, owned by one tracking session.

    Attributes:
        buffer: Recent accepted (lat, lng) pairs, oldest first
        last_accepted: Last accepted fix (None before the first accept)
        last_publish_timestamp_ms: Timestamp of the last accepted fix
    """

    buffer: Deque[Tuple[float, float]] = field(default_factory=lambda: deque(maxlen=3))
    last_accepted: Optional[AcceptedFix] = None
    last_publish_timestamp_ms: int = 0

    @classmethod
    def create(cls, buffer_size: int) -> 'FilterState':
        return cls(buffer=deque(maxlen=buffer_size))

    @property
    def has_published(self) -> bool:
        """True once at least one fix has been accepted."""
        return self.last_accepted is not None


class SignalFilter:
    """
    Accuracy gating, throttling, teleport rejection and smoothing.

    Usage:
        signal_filter = SignalFilter()

        location = signal_filter.accept(fix, forced=False)
        if location is not None:
            publisher.publish_location(location, signal_filter.last_accuracy_m)

    Notes:
        - "now" is the fix timestamp, so behaviour follows the sensor clock
        - Distances are always measured from the last *accepted* fix, never
          from the last attempted one
        - Fixes are processed one at a time; callers serialize deliveries
    """

    def __init__(
        self,
        config: Optional[SignalFilterConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize signal filter.

        Args:
            config: Filter configuration (uses defaults if None)
            metrics: Metrics collector (uses the global collector if None)
        """
        self.config = config or SignalFilterConfig()
        self.metrics = metrics or get_metrics()
        self.state = FilterState.create(self.config.buffer_size)
        self.last_accuracy_m: Optional[float] = None

    def accept(self, fix: RawFix, forced: bool = False) -> Optional[SmoothedLocation]:
        """
        Run one fix through every filter stage.

        Args:
            fix: Raw sensor fix
            forced: Bypass the throttle (bootstrap and post-resume fixes)

        Returns:
            New smoothed location, or None if the fix was rejected
        """
        self.metrics.increment('fixes_in')

        if not fix.has_finite_coordinates:
            return self._reject('invalid_fix', fix)

        if fix.accuracy_m > self.config.max_accuracy_m and self.state.has_published:
            return self._reject('low_accuracy', fix)

        if not forced and self.state.has_published:
            since_publish_ms = fix.timestamp_ms - self.state.last_publish_timestamp_ms
            if since_publish_ms < self.config.throttle_interval_ms:
                return self._reject('throttled', fix)

        if self._is_teleport(fix):
            return self._reject('teleport', fix)

        self._store(fix)
        return self._smooth()

    def _is_teleport(self, fix: RawFix) -> bool:
        """Check implied speed from the last accepted fix."""
        last = self.state.last_accepted
        if last is None:
            return False

        elapsed_s = (fix.timestamp_ms - last.timestamp_ms) / 1000.0
        if elapsed_s <= 0:
            return False

        distance_m = haversine_m(last.lat, last.lng, fix.lat, fix.lng)
        speed = distance_m / elapsed_s
        self.metrics.record_histogram('implied_speed_m_s', speed)

        if speed > self.config.max_speed_m_s and fix.accuracy_m > self.config.teleport_accuracy_exemption_m:
            logger.debug(
                f"Rejected jump: {speed:.1f} m/s ({distance_m:.0f}m in {elapsed_s:.1f}s, "
                f"accuracy {fix.accuracy_m:.0f}m)"
            )
            return True
        return False

    def _store(self, fix: RawFix):
        """Commit an accepted fix to the filter state."""
        self.state.last_accepted = AcceptedFix(fix.lat, fix.lng, fix.timestamp_ms)
        self.state.last_publish_timestamp_ms = fix.timestamp_ms
        # deque(maxlen) evicts the oldest entry on overflow
        self.state.buffer.append((float(fix.lat), float(fix.lng)))
        self.last_accuracy_m = fix.accuracy_m

        self.metrics.increment('fixes_accepted')
        self.metrics.record_histogram('fix_accuracy_m', fix.accuracy_m)

    def _smooth(self) -> SmoothedLocation:
        """Arithmetic mean of the buffered coordinates."""
        mean_lat, mean_lng = np.mean(np.asarray(self.state.buffer, dtype=float), axis=0)
        return SmoothedLocation(lat=float(mean_lat), lng=float(mean_lng))

    def _reject(self, reason: str, fix: RawFix) -> None:
        self.metrics.increment_drop(reason)
        logger.debug(f"Fix dropped ({reason}): {fix}")
        return None

    @property
    def current_location(self) -> Optional[SmoothedLocation]:
        """Smoothed location for the current buffer (None if empty)."""
        if not self.state.buffer:
            return None
        return self._smooth()

    def reset(self):
        """Discard all filter state."""
        self.state = FilterState.create(self.config.buffer_size)
        self.last_accuracy_m = None

    def get_statistics(self) -> dict:
        """Get signal filter statistics."""
        return {
            'fixes_in': self.metrics.get_counter('fixes_in'),
            'fixes_accepted': self.metrics.get_counter('fixes_accepted'),
            'invalid_fix': self.metrics.get_drop_count('invalid_fix'),
            'low_accuracy': self.metrics.get_drop_count('low_accuracy'),
            'throttled': self.metrics.get_drop_count('throttled'),
            'teleport': self.metrics.get_drop_count('teleport'),
            'buffer_len': len(self.state.buffer),
        }
