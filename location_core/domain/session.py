"""
Tracking session lifecycle.

A TrackingSession binds one PositionSource to one SignalFilter (and so to
one FilterState) and publishes accepted output. The SessionLifecycleManager
creates sessions, owns the display lock, and restarts positioning when the
host application returns to the foreground.

State machine:

    STOPPED -> STARTING -> ACTIVE <-> SUSPENDED
                              \\          /
                               -> STOPPED

Teardown releases the display lock and cancels the positioning subscription
on every exit path.
"""

import logging
from enum import Enum
from typing import Optional

from location_core.domain.display_lock import (
    DisplayLockHandle,
    DisplayLockProvider,
    NullDisplayLockProvider,
)
from location_core.domain.publisher import LocationPublisher
from location_core.io.platform import (
    ONE_SHOT_OPTIONS,
    WATCH_OPTIONS,
    PositioningPlatform,
    PositionOptions,
)
from location_core.io.position_source import PositionSource
from location_core.localization.signal_filter import SignalFilter, SignalFilterConfig
from location_core.metrics import MetricsCollector, get_metrics
from location_core.proto.fix import RawFix
from location_core.proto.position_error import PositionError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle state of a tracking session."""

    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class TrackingSession:
    """
    One tracking run.

    Attributes:
        session_id: Sequence number assigned by the manager
        source: Position source whose stream feeds this session
        signal_filter: Filter owning this session's FilterState
        publisher: Destination for accepted locations and errors
        display_lock: Held lock handle, None when no lock is held
        state: Current SessionState
    """

    def __init__(self, session_id: int, source: PositionSource,
                 signal_filter: SignalFilter, publisher: LocationPublisher):
        self.session_id = session_id
        self.source = source
        self.signal_filter = signal_filter
        self.publisher = publisher
        self.display_lock: Optional[DisplayLockHandle] = None
        self.state = SessionState.STOPPED

        self.source.stream.attach(self._on_fix, self._on_error)

    @property
    def filter_state(self):
        return self.signal_filter.state

    def _on_fix(self, fix: RawFix, forced: bool):
        location = self.signal_filter.accept(fix, forced=forced)
        if location is None:
            return
        self.publisher.publish_location(location, self.signal_filter.last_accuracy_m)

    def _on_error(self, error: PositionError):
        self.publisher.publish_error(str(error))

    def __repr__(self) -> str:
        return f"TrackingSession(id={self.session_id}, state={self.state.value})"


class SessionLifecycleManager:
    """
    Start, suspend, resume and tear down tracking sessions.

    Usage:
        manager = SessionLifecycleManager(platform, publisher, lock_provider)

        with manager:                       # start() ... stop()
            manager.on_visibility_change(False)
            manager.on_visibility_change(True)   # lock + forced refresh

    Notes:
        - The display lock is acquired and released only here; failures are
          logged and otherwise ignored
        - Every start() creates a new TrackingSession with fresh filter
          state; sessions are never shared
    """

    def __init__(
        self,
        platform: PositioningPlatform,
        publisher: LocationPublisher,
        lock_provider: Optional[DisplayLockProvider] = None,
        filter_config: Optional[SignalFilterConfig] = None,
        watch_options: PositionOptions = WATCH_OPTIONS,
        one_shot_options: PositionOptions = ONE_SHOT_OPTIONS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.platform = platform
        self.publisher = publisher
        self.lock_provider = lock_provider or NullDisplayLockProvider()
        self.filter_config = filter_config or SignalFilterConfig()
        self.watch_options = watch_options
        self.one_shot_options = one_shot_options
        self.metrics = metrics or get_metrics()

        self._session: Optional[TrackingSession] = None
        self._session_seq = 0

    @property
    def session(self) -> Optional[TrackingSession]:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.STOPPED
        return self._session.state

    def start(self) -> TrackingSession:
        """
        Start tracking. Returns the running session if already started.
        """
        if self._session is not None:
            return self._session

        self._session_seq += 1
        source = PositionSource(
            self.platform,
            watch_options=self.watch_options,
            one_shot_options=self.one_shot_options,
            metrics=self.metrics,
        )
        signal_filter = SignalFilter(self.filter_config, metrics=self.metrics)
        session = TrackingSession(self._session_seq, source, signal_filter, self.publisher)
        session.state = SessionState.STARTING
        self._session = session

        try:
            session.display_lock = self._acquire_display_lock()
            source.start()
        except BaseException:
            self._session = None
            self._teardown(session)
            raise

        session.state = SessionState.ACTIVE
        self.metrics.increment('sessions_started')
        logger.info(f"Tracking session {session.session_id} active")
        return session

    def stop(self):
        """Tear down the current session. Safe to call repeatedly."""
        session, self._session = self._session, None
        if session is None:
            return
        self._teardown(session)
        logger.info(f"Tracking session {session.session_id} stopped")

    def restart_session(self) -> TrackingSession:
        """Discard the current session and start a fresh one."""
        self.stop()
        return self.start()

    def on_visibility_change(self, visible: bool):
        """
        Handle the host application's foreground/background signal.

        Args:
            visible: True when the application returned to the foreground
        """
        session = self._session
        if session is None:
            return

        if not visible:
            if session.state is SessionState.ACTIVE:
                session.state = SessionState.SUSPENDED
                logger.debug(f"Tracking session {session.session_id} suspended")
            return

        if session.state is not SessionState.SUSPENDED:
            return

        # The platform may have dropped the lock while backgrounded
        self._release_display_lock(session)
        session.display_lock = self._acquire_display_lock()

        # Positioning can stall silently in background; the restart's
        # one-shot fix bypasses the throttle
        session.source.restart()
        session.state = SessionState.ACTIVE
        self.metrics.increment('sessions_resumed')
        logger.info("App resumed, forced GPS refresh")

    def _teardown(self, session: TrackingSession):
        try:
            session.source.close()
        finally:
            self._release_display_lock(session)
            session.signal_filter.reset()
            session.state = SessionState.STOPPED

    def _acquire_display_lock(self) -> Optional[DisplayLockHandle]:
        try:
            handle = self.lock_provider.request()
        except Exception as e:
            logger.warning(f"Display lock unavailable: {e}")
            self.metrics.increment('display_lock_failures')
            return None
        return handle

    def _release_display_lock(self, session: TrackingSession):
        handle, session.display_lock = session.display_lock, None
        if handle is None:
            return
        try:
            handle.release()
        except Exception as e:
            logger.warning(f"Display lock release failed: {e}")
            self.metrics.increment('display_lock_failures')

    def __enter__(self) -> 'SessionLifecycleManager':
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.stop()
        return False
