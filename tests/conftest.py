"""
Pytest configuration and shared fixtures for the location tracking tests.

Provides fresh metrics collectors, filters, scripted platforms, publishers
and display lock providers so every test runs against its own session.
"""

import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from location_core.domain import (
    DisplayLockHandle,
    DisplayLockProvider,
    LocationPublisher,
    SessionLifecycleManager,
)
from location_core.io import ReplayPlatform
from location_core.localization import SignalFilter
from location_core.metrics import MetricsCollector
from location_core.proto import LocationSnapshot, RawFix


# =============================================================================
# Helpers
# =============================================================================


BASE_LAT = 55.0
BASE_LNG = 12.0


def make_fix(lat: float = BASE_LAT, lng: float = BASE_LNG, accuracy: float = 5.0,
             t_s: float = 0.0) -> RawFix:
    """Build a fix with its timestamp given in seconds."""
    return RawFix(lat=lat, lng=lng, accuracy_m=accuracy, timestamp_ms=int(round(t_s * 1000)))


class FakeLockHandle(DisplayLockHandle):
    """Display lock handle that records releases."""

    def __init__(self, fail_release: bool = False):
        self.release_calls = 0
        self.fail_release = fail_release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        self.release_calls += 1
        if self.fail_release:
            raise RuntimeError("release refused")
        self._released = True


class FakeLockProvider(DisplayLockProvider):
    """Display lock provider with scriptable refusals."""

    def __init__(self, fail: bool = False, fail_release: bool = False):
        self.fail = fail
        self.fail_release = fail_release
        self.handles: List[FakeLockHandle] = []

    @property
    def held(self) -> List[FakeLockHandle]:
        return [h for h in self.handles if not h.released]

    def request(self) -> Optional[DisplayLockHandle]:
        if self.fail:
            raise PermissionError("NotAllowedError: page not visible")
        handle = FakeLockHandle(fail_release=self.fail_release)
        self.handles.append(handle)
        return handle


class SnapshotRecorder:
    """Subscriber that records every snapshot it receives."""

    def __init__(self):
        self.snapshots: List[LocationSnapshot] = []

    def __call__(self, snapshot: LocationSnapshot):
        self.snapshots.append(snapshot)

    @property
    def locations(self):
        return [s.location for s in self.snapshots if s.location is not None]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh metrics collector (isolated from the global one)."""
    return MetricsCollector()


@pytest.fixture
def signal_filter(metrics: MetricsCollector) -> SignalFilter:
    """Signal filter with default configuration."""
    return SignalFilter(metrics=metrics)


@pytest.fixture
def platform() -> ReplayPlatform:
    """Scripted positioning platform."""
    return ReplayPlatform()


@pytest.fixture
def recorder() -> SnapshotRecorder:
    return SnapshotRecorder()


@pytest.fixture
def publisher(metrics: MetricsCollector, recorder: SnapshotRecorder) -> LocationPublisher:
    """Publisher with a recording subscriber attached."""
    pub = LocationPublisher(metrics=metrics)
    pub.subscribe(recorder)
    return pub


@pytest.fixture
def lock_provider() -> FakeLockProvider:
    return FakeLockProvider()


@pytest.fixture
def manager(platform, publisher, lock_provider, metrics) -> SessionLifecycleManager:
    """Session manager wired to the scripted platform; stopped on teardown."""
    mgr = SessionLifecycleManager(platform, publisher, lock_provider=lock_provider, metrics=metrics)
    yield mgr
    mgr.stop()
