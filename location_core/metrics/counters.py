"""
Metrics counters and histograms implementation.

Provides thread-safe counters for:
- Fix counts (received, accepted, published)
- Drop reasons for every filter rejection
- Session lifecycle events (starts, resumes, display lock failures)
- Value histograms (fix accuracy, implied speed)

Filter rejections are never surfaced to subscribers, so every drop is
counted here under a reason code instead.
"""

import logging
import threading
import time
from typing import Dict, List, Optional
from dataclasses import dataclass
from collections import defaultdict

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class CounterSnapshot:
    """Snapshot of counter state at a point in time."""

    timestamp: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]]

    def total_dropped(self) -> int:
        """Total fixes dropped across all reasons."""
        return sum(self.drop_reasons.values())

    def acceptance_rate(self) -> float:
        """Accepted fixes as a percentage of fixes received."""
        received = self.counters.get('fixes_in', 0)
        if received == 0:
            return 0.0
        return (self.counters.get('fixes_accepted', 0) / received) * 100.0


class MetricsCollector:
    """
    Thread-safe metrics collection.

    Usage:
        collector = MetricsCollector()
        collector.increment('fixes_in')
        collector.increment_drop('teleport')
        collector.record_histogram('fix_accuracy_m', 12.5)

        snapshot = collector.snapshot()
        print(f"Total dropped: {snapshot.total_dropped()}")
    """

    # Standard drop reason codes
    DROP_REASONS = {
        'invalid_fix': 'Missing or non-finite coordinates',
        'low_accuracy': 'Accuracy radius above gate after first publish',
        'throttled': 'Arrived inside the publish interval',
        'teleport': 'Implausible implied speed from an imprecise fix',
        'stale_delivery': 'Delivered after the subscription was stopped',
        'malformed_message': 'Network message failed to parse',
    }

    STANDARD_COUNTERS = (
        'fixes_in',
        'fixes_accepted',
        'locations_published',
        'position_errors',
        'sessions_started',
        'sessions_resumed',
        'display_lock_failures',
    )

    def __init__(self):
        """Initialize metrics collector."""
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._drop_reasons: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, List[float]] = defaultdict(list)
        self._start_time = time.time()

        self._init_standard_counters()

    def _init_standard_counters(self):
        """Initialize standard counter keys to 0 for consistent reporting."""
        with self._lock:
            for counter in self.STANDARD_COUNTERS:
                self._counters.setdefault(counter, 0)
            for reason in self.DROP_REASONS:
                self._drop_reasons.setdefault(reason, 0)

    def increment(self, counter_name: str, value: int = 1):
        """
        Increment a counter by value.

        Args:
            counter_name: Name of counter to increment
            value: Amount to increment (default 1)
        """
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Increment drop counter for specific reason.

        Args:
            reason: Drop reason code (should be in DROP_REASONS)
            value: Amount to increment (default 1)
        """
        if reason not in self.DROP_REASONS:
            logger.warning(f"Unknown drop reason '{reason}'")

        with self._lock:
            self._drop_reasons[reason] += value
            self._counters['fixes_dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        """Get current value of a counter (0 if never incremented)."""
        with self._lock:
            return self._counters.get(counter_name, 0)

    def get_drop_count(self, reason: str) -> int:
        """Get number of drops recorded for a reason."""
        with self._lock:
            return self._drop_reasons.get(reason, 0)

    def record_histogram(self, histogram_name: str, value: float, max_samples: int = 10000):
        """
        Record a value in a histogram.

        Args:
            histogram_name: Name of histogram
            value: Value to record
            max_samples: Maximum samples to keep (older half is discarded)
        """
        with self._lock:
            samples = self._histograms[histogram_name]
            samples.append(float(value))

            if len(samples) > max_samples:
                self._histograms[histogram_name] = samples[-max_samples // 2:]

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Get statistics for a histogram.

        Returns:
            Dict with count, min, max, mean, median, p95, None if empty
        """
        with self._lock:
            samples = list(self._histograms.get(histogram_name, []))

        if not samples:
            return None

        values = np.asarray(samples, dtype=float)
        return {
            'count': int(values.size),
            'min': float(values.min()),
            'max': float(values.max()),
            'mean': float(values.mean()),
            'median': float(np.median(values)),
            'p95': float(np.percentile(values, 95)),
        }

    def snapshot(self) -> CounterSnapshot:
        """Get a snapshot (copies) of the current metrics state."""
        with self._lock:
            return CounterSnapshot(
                timestamp=time.time(),
                counters=dict(self._counters),
                drop_reasons=dict(self._drop_reasons),
                histograms={k: list(v) for k, v in self._histograms.items()},
            )

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            self._counters.clear()
            self._drop_reasons.clear()
            self._histograms.clear()
            self._start_time = time.time()
        self._init_standard_counters()

    def get_uptime(self) -> float:
        """Get uptime in seconds since initialization."""
        return time.time() - self._start_time

    def print_summary(self):
        """Print human-readable metrics summary."""
        snapshot = self.snapshot()

        print("\n" + "=" * 70)
        print(f"  TRACKING METRICS (uptime: {self.get_uptime():.1f}s)")
        print("=" * 70)

        print("\nCOUNTERS:")
        for name, value in sorted(snapshot.counters.items()):
            print(f"  {name:30s}: {value:8d}")
        print(f"  {'acceptance_rate_pct':30s}: {snapshot.acceptance_rate():8.1f}")

        total_dropped = snapshot.total_dropped()
        if total_dropped > 0:
            print("\nDROP REASONS:")
            for reason, count in sorted(snapshot.drop_reasons.items()):
                if count > 0:
                    pct = (count / total_dropped) * 100
                    print(f"  {reason:30s}: {count:8d} ({pct:5.1f}%)")

        if snapshot.histograms:
            print("\nHISTOGRAMS:")
            for name in sorted(snapshot.histograms):
                stats = self.get_histogram_stats(name)
                if stats:
                    print(f"  {name}: count={stats['count']}, mean={stats['mean']:.2f}, "
                          f"median={stats['median']:.2f}, p95={stats['p95']:.2f}")

        print("=" * 70 + "\n")
