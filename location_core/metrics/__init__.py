"""
Metrics Module: Diagnostics, counters, histograms.

Every silently dropped fix is counted under a reason code, so filter
behaviour stays observable without surfacing noise to subscribers.

Usage:
    from location_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('fixes_in')
    metrics.increment_drop('throttled')
    metrics.record_histogram('fix_accuracy_m', 8.0)

Components accept an explicit MetricsCollector; the global collector is
only the default.
"""

from .counters import CounterSnapshot, MetricsCollector

_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Replace the global metrics collector with a fresh one."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['CounterSnapshot', 'MetricsCollector', 'get_metrics', 'reset_metrics']
