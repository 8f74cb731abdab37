"""
Position Source: continuous fix subscription plus one-shot bootstrap.

Wraps a PositioningPlatform and exposes its deliveries as a cancellable
FixStream with a single attached handler.

Usage:
    source = PositionSource(platform)
    source.stream.attach(on_fix, on_error)   # on_fix(fix, forced)
    source.start()
    ...
    source.restart()   # after returning to foreground
    source.close()     # teardown, safe to call repeatedly
"""

import logging
import threading
from typing import Callable, Optional

from location_core.io.platform import (
    ONE_SHOT_OPTIONS,
    WATCH_OPTIONS,
    PositioningPlatform,
    PositionOptions,
)
from location_core.metrics import MetricsCollector, get_metrics
from location_core.proto.fix import RawFix
from location_core.proto.position_error import PositionError, PositionErrorCode

logger = logging.getLogger(__name__)

FixHandler = Callable[[RawFix, bool], None]
ErrorHandler = Callable[[PositionError], None]


class FixStream:
    """
    Stream of RawFix events with exactly one handler.

    Deliveries are serialized: the handler for fix n+1 never starts before
    the handler for fix n has returned. close() is synchronous; once it
    returns no further handler call begins.
    """

    def __init__(self):
        # Reentrant so a handler may stop or close its own stream
        self.delivery_lock = threading.RLock()
        self._on_fix: Optional[FixHandler] = None
        self._on_error: Optional[ErrorHandler] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_handler(self) -> bool:
        return self._on_fix is not None

    def attach(self, on_fix: FixHandler, on_error: Optional[ErrorHandler] = None):
        """
        Attach the stream's handler.

        Raises:
            RuntimeError: If the stream is closed or already has a handler
        """
        with self.delivery_lock:
            if self._closed:
                raise RuntimeError("Cannot attach to a closed FixStream")
            if self._on_fix is not None:
                raise RuntimeError("FixStream already has a handler attached")
            self._on_fix = on_fix
            self._on_error = on_error

    def emit(self, fix: RawFix, forced: bool = False) -> bool:
        """
        Deliver a fix to the handler.

        Returns:
            True if delivered, False if closed or no handler is attached
        """
        with self.delivery_lock:
            if self._closed or self._on_fix is None:
                return False
            self._on_fix(fix, forced)
            return True

    def fail(self, error: PositionError) -> bool:
        """Deliver an error to the handler's error channel."""
        with self.delivery_lock:
            if self._closed or self._on_error is None:
                return False
            self._on_error(error)
            return True

    def close(self):
        """Detach the handler and refuse further deliveries."""
        with self.delivery_lock:
            self._closed = True
            self._on_fix = None
            self._on_error = None


class PositionSource:
    """
    Continuous positioning subscription with a forced first fix.

    Features:
    - start() opens the watch and issues one immediate one-shot request;
      the one-shot fix is delivered with forced=True
    - stop() is idempotent; deliveries from a stopped subscription
      (including a late one-shot result) are dropped
    - restart() flushes a subscription that may have stalled in background
    - Watch errors go to the error channel; the watch keeps running
    """

    def __init__(
        self,
        platform: PositioningPlatform,
        watch_options: PositionOptions = WATCH_OPTIONS,
        one_shot_options: PositionOptions = ONE_SHOT_OPTIONS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.platform = platform
        self.watch_options = watch_options
        self.one_shot_options = one_shot_options
        self.metrics = metrics or get_metrics()
        self.stream = FixStream()

        self._watch_id: Optional[int] = None
        # Bumped on every start/stop so stale callbacks can be recognised
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self._watch_id is not None

    def start(self):
        """Open the continuous watch and request an immediate fix."""
        with self.stream.delivery_lock:
            if self.stream.closed:
                logger.warning("PositionSource.start() called after close; ignoring")
                return
            if self.is_running:
                return

            if not self.platform.is_supported:
                logger.warning("Positioning not supported on this platform")
                self.metrics.increment('position_errors')
                self.stream.fail(PositionError(PositionErrorCode.UNSUPPORTED))
                return

            self._generation += 1
            generation = self._generation

            self.platform.get_current_position(
                lambda fix: self._deliver(generation, fix, forced=True),
                lambda error: self._one_shot_failed(generation, error),
                self.one_shot_options,
            )
            self._watch_id = self.platform.watch_position(
                lambda fix: self._deliver(generation, fix, forced=False),
                lambda error: self._report_error(generation, error),
                self.watch_options,
            )
            logger.debug(f"Position watch {self._watch_id} started (generation {generation})")

    def stop(self):
        """Cancel the continuous watch. Safe to call when already stopped."""
        with self.stream.delivery_lock:
            self._generation += 1
            if self._watch_id is None:
                return
            watch_id, self._watch_id = self._watch_id, None
            self.platform.clear_watch(watch_id)
            logger.debug(f"Position watch {watch_id} cleared")

    def restart(self):
        """Stop and start again; the new one-shot fix is forced."""
        self.stop()
        self.start()

    def close(self):
        """Stop and close the stream. Idempotent."""
        self.stop()
        self.stream.close()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self.stream.closed

    def _deliver(self, generation: int, fix: RawFix, forced: bool):
        with self.stream.delivery_lock:
            if not self._is_current(generation):
                self.metrics.increment_drop('stale_delivery')
                return
            self.stream.emit(fix, forced)

    def _report_error(self, generation: int, error: PositionError):
        with self.stream.delivery_lock:
            if not self._is_current(generation):
                return
            logger.warning(f"Position error ({error.code.name}): {error.message}")
            self.metrics.increment('position_errors')
            self.stream.fail(error)

    def _one_shot_failed(self, generation: int, error: PositionError):
        if generation == self._generation:
            logger.warning(f"Single-shot fix failed ({error.code.name}): {error.message}")
