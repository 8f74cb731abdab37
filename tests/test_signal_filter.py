"""
Unit tests for SignalFilter.

Tests cover:
- Validity check and bootstrap exemption of the accuracy gate
- Throttle (including forced bypass) and its non-advancing rejections
- Teleport rejection with the precise-fix exemption
- Bounded FIFO smoothing buffer and moving average
- Fixed stage order
- Bootstrap, jump rejection and convergence cases
"""

import math

import pytest

from location_core.localization import (
    SignalFilter,
    SignalFilterConfig,
    haversine_m,
)
from location_core.proto import RawFix, SmoothedLocation
from tests.conftest import BASE_LAT, BASE_LNG, make_fix


# =============================================================================
# Validity
# =============================================================================


class TestValidity:
    """Tests for the validity stage."""

    @pytest.mark.parametrize("lat,lng", [
        (math.nan, BASE_LNG),
        (BASE_LAT, math.inf),
        (-math.inf, BASE_LNG),
        (BASE_LAT, None),
    ])
    def test_invalid_coordinates_rejected(self, signal_filter, metrics, lat, lng):
        fix = RawFix(lat=lat, lng=lng, accuracy_m=5.0, timestamp_ms=0)

        assert signal_filter.accept(fix, forced=True) is None
        assert signal_filter.state.last_accepted is None
        assert len(signal_filter.state.buffer) == 0
        assert metrics.get_drop_count('invalid_fix') == 1

    def test_invalid_fix_does_not_consume_bootstrap(self, signal_filter):
        signal_filter.accept(RawFix(math.nan, math.nan, 500.0, 0))

        # First valid fix is still exempt from the accuracy gate
        location = signal_filter.accept(make_fix(accuracy=500.0, t_s=0.1))
        assert location == SmoothedLocation(BASE_LAT, BASE_LNG)


# =============================================================================
# Accuracy gate
# =============================================================================


class TestAccuracyGate:
    """Tests for the accuracy gate and bootstrap exemption."""

    @pytest.mark.parametrize("accuracy", [0.0, 5.0, 100.0, 150.0, 5000.0])
    def test_first_fix_always_accepted(self, signal_filter, accuracy):
        location = signal_filter.accept(make_fix(accuracy=accuracy))

        assert location == SmoothedLocation(BASE_LAT, BASE_LNG)
        assert signal_filter.last_accuracy_m == accuracy

    def test_second_imprecise_fix_rejected(self, signal_filter, metrics):
        assert signal_filter.accept(make_fix(accuracy=150.0, t_s=0)) is not None

        assert signal_filter.accept(make_fix(accuracy=150.0, t_s=5)) is None
        assert metrics.get_drop_count('low_accuracy') == 1
        assert signal_filter.state.last_accepted.timestamp_ms == 0

    def test_gate_threshold_is_inclusive(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        assert signal_filter.accept(make_fix(accuracy=100.0, t_s=2)) is not None

    def test_forced_fix_still_gated(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        assert signal_filter.accept(make_fix(accuracy=101.0, t_s=2), forced=True) is None


# =============================================================================
# Throttle
# =============================================================================


class TestThrottle:
    """Tests for the publish throttle."""

    def test_fix_inside_interval_rejected(self, signal_filter, metrics):
        signal_filter.accept(make_fix(t_s=0))

        assert signal_filter.accept(make_fix(t_s=0.5)) is None
        assert metrics.get_drop_count('throttled') == 1

    def test_only_earlier_of_two_close_fixes_published(self, signal_filter):
        published = [
            signal_filter.accept(make_fix(t_s=10.0)),
            signal_filter.accept(make_fix(lat=BASE_LAT + 0.00001, t_s=10.4)),
        ]

        assert published[0] is not None
        assert published[1] is None

    def test_fix_at_interval_boundary_accepted(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        assert signal_filter.accept(make_fix(t_s=1.0)) is not None

    def test_rejection_does_not_advance_window(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))
        signal_filter.accept(make_fix(t_s=0.9))

        # Window is measured from t=0, not from the throttled fix at t=0.9
        assert signal_filter.accept(make_fix(t_s=1.0)) is not None

    def test_forced_fix_bypasses_throttle(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        location = signal_filter.accept(make_fix(lat=BASE_LAT + 0.0001, t_s=0.2), forced=True)

        assert location is not None
        assert signal_filter.state.last_publish_timestamp_ms == 200


# =============================================================================
# Teleport rejection
# =============================================================================


class TestTeleportRejection:
    """Tests for implied-speed outlier rejection."""

    FAR_LAT = BASE_LAT + 0.01  # ~1.1 km north

    def test_fast_imprecise_jump_rejected(self, signal_filter, metrics):
        first = signal_filter.accept(make_fix(t_s=0))
        buffer_before = list(signal_filter.state.buffer)
        last_before = signal_filter.state.last_accepted

        # 0.5s later: throttled when not forced, teleport when forced
        assert signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=25.0, t_s=0.5)) is None
        assert signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=25.0, t_s=0.5), forced=True) is None

        assert metrics.get_drop_count('teleport') == 1
        assert list(signal_filter.state.buffer) == buffer_before
        assert signal_filter.state.last_accepted == last_before
        assert signal_filter.current_location == first

    def test_implied_speed_of_fast_jump(self):
        distance = haversine_m(BASE_LAT, BASE_LNG, self.FAR_LAT, BASE_LNG)

        assert distance == pytest.approx(1112.0, abs=2.0)
        assert distance / 0.5 > 2000

    def test_fast_precise_fix_trusted(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        location = signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=20.0, t_s=2))

        assert location is not None
        assert signal_filter.state.last_accepted.lat == self.FAR_LAT

    def test_fast_imprecise_fix_rejected_after_interval(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        # ~556 m/s with accuracy 21 m
        assert signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=21.0, t_s=2)) is None

    def test_plausible_speed_accepted(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))

        # ~1.1 km in 60 s is ~18.5 m/s
        assert signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=60.0, t_s=60)) is not None

    def test_distance_measured_from_last_accepted_fix(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))
        assert signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=30.0, t_s=2)) is None

        # Next fix near the rejected one is still compared with t=0
        assert signal_filter.accept(make_fix(lat=self.FAR_LAT + 0.00001, accuracy=30.0, t_s=3)) is None

        # A fix at the original place is fine
        assert signal_filter.accept(make_fix(accuracy=30.0, t_s=4)) is not None

    def test_non_positive_elapsed_skips_check(self, signal_filter):
        signal_filter.accept(make_fix(t_s=5))

        location = signal_filter.accept(make_fix(lat=self.FAR_LAT, accuracy=50.0, t_s=5), forced=True)

        assert location is not None


# =============================================================================
# Smoothing
# =============================================================================


class TestSmoothing:
    """Tests for the bounded buffer and moving average."""

    def test_identical_fixes_converge_exactly(self, signal_filter):
        outputs = [signal_filter.accept(make_fix(t_s=t)) for t in (0, 1, 2)]

        assert outputs[-1] == SmoothedLocation(55.0, 12.0)
        assert outputs[-1].lat == 55.0 and outputs[-1].lng == 12.0

    def test_mean_of_last_min_k_3_fixes(self, signal_filter):
        lats = [55.0, 55.0001, 55.0002, 55.0003, 55.0004]
        lngs = [12.0, 12.0002, 12.0001, 12.0003, 12.0000]

        for k, (lat, lng) in enumerate(zip(lats, lngs), start=1):
            location = signal_filter.accept(make_fix(lat=lat, lng=lng, t_s=k))
            window = slice(max(0, k - 3), k)
            expected_lat = sum(lats[window]) / len(lats[window])
            expected_lng = sum(lngs[window]) / len(lngs[window])

            assert location.lat == pytest.approx(expected_lat, abs=1e-12)
            assert location.lng == pytest.approx(expected_lng, abs=1e-12)

    def test_buffer_never_exceeds_capacity(self, signal_filter):
        for t in range(10):
            signal_filter.accept(make_fix(lat=BASE_LAT + t * 0.00001, t_s=t))
            assert len(signal_filter.state.buffer) <= 3

        assert list(signal_filter.state.buffer)[0][0] == pytest.approx(BASE_LAT + 7 * 0.00001)

    def test_converges_to_new_position(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))
        target = BASE_LAT + 0.0001
        for t in (1, 2, 3):
            location = signal_filter.accept(make_fix(lat=target, t_s=t))

        assert location.lat == pytest.approx(target, abs=1e-12)

    def test_accuracy_published_unsmoothed(self, signal_filter):
        signal_filter.accept(make_fix(accuracy=40.0, t_s=0))
        signal_filter.accept(make_fix(accuracy=4.0, t_s=1))

        assert signal_filter.last_accuracy_m == 4.0

    def test_custom_buffer_size(self, metrics):
        narrow = SignalFilter(SignalFilterConfig(buffer_size=1), metrics=metrics)
        narrow.accept(make_fix(t_s=0))

        location = narrow.accept(make_fix(lat=BASE_LAT + 0.0001, t_s=1))

        assert location.lat == BASE_LAT + 0.0001


# =============================================================================
# Stage order and lifecycle
# =============================================================================


class TestStageOrder:
    """Tests that each fix is charged to the first failing stage."""

    def test_accuracy_gate_before_throttle(self, signal_filter, metrics):
        signal_filter.accept(make_fix(t_s=0))
        signal_filter.accept(make_fix(accuracy=150.0, t_s=0.5))

        assert metrics.get_drop_count('low_accuracy') == 1
        assert metrics.get_drop_count('throttled') == 0

    def test_throttle_before_teleport(self, signal_filter, metrics):
        signal_filter.accept(make_fix(t_s=0))
        signal_filter.accept(make_fix(lat=BASE_LAT + 0.01, accuracy=50.0, t_s=0.5))

        assert metrics.get_drop_count('throttled') == 1
        assert metrics.get_drop_count('teleport') == 0


class TestFilterLifecycle:
    """Tests for reset and statistics."""

    def test_reset_restores_bootstrap(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))
        signal_filter.reset()

        assert signal_filter.state.last_accepted is None
        assert signal_filter.current_location is None
        assert signal_filter.accept(make_fix(accuracy=300.0, t_s=0.1)) is not None

    def test_statistics(self, signal_filter):
        signal_filter.accept(make_fix(t_s=0))
        signal_filter.accept(make_fix(t_s=0.1))
        signal_filter.accept(RawFix(math.nan, 0.0, 5.0, 200))

        stats = signal_filter.get_statistics()

        assert stats['fixes_in'] == 3
        assert stats['fixes_accepted'] == 1
        assert stats['throttled'] == 1
        assert stats['invalid_fix'] == 1
        assert stats['buffer_len'] == 1

    def test_independent_filters_do_not_share_state(self, metrics):
        a = SignalFilter(metrics=metrics)
        b = SignalFilter(metrics=metrics)

        a.accept(make_fix(t_s=0))

        assert b.state.last_accepted is None
        assert b.accept(make_fix(accuracy=500.0, t_s=0.1)) is not None
