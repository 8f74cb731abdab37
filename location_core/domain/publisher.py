"""
Location Publisher.

Holds the latest accepted output and notifies subscribers synchronously.
Consumers include map rendering, distance-to-task checks and the peer
location broadcast sink.
"""

import logging
import threading
from typing import Callable, List, Optional

from location_core.metrics import MetricsCollector, get_metrics
from location_core.proto.fix import LocationSnapshot, SmoothedLocation

logger = logging.getLogger(__name__)

Subscriber = Callable[[LocationSnapshot], None]
BroadcastSink = Callable[[SmoothedLocation], None]


class LocationPublisher:
    """
    Publish/subscribe holder for {location, accuracy, error}.

    Usage:
        publisher = LocationPublisher(broadcast=peer_sender)
        unsubscribe = publisher.subscribe(lambda snap: render(snap.location))

        publisher.publish_location(SmoothedLocation(55.0, 12.0), accuracy=5.0)
        publisher.publish_error("User denied Geolocation")

    Notes:
        - Subscribers are called in subscription order on the publishing
          thread; a failing subscriber is logged and skipped
        - An error update leaves location and accuracy unchanged
        - A location update leaves the last error in place
    """

    def __init__(self, broadcast: Optional[BroadcastSink] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.broadcast = broadcast
        self.metrics = metrics or get_metrics()
        self._snapshot = LocationSnapshot()
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> LocationSnapshot:
        return self._snapshot

    @property
    def location(self) -> Optional[SmoothedLocation]:
        return self._snapshot.location

    @property
    def accuracy(self) -> Optional[float]:
        return self._snapshot.accuracy

    @property
    def error(self) -> Optional[str]:
        return self._snapshot.error

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        Returns:
            Function that removes the subscription (safe to call twice)
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish_location(self, location: SmoothedLocation, accuracy: Optional[float]):
        """Store a newly accepted location and notify everyone."""
        with self._lock:
            self._snapshot = LocationSnapshot(
                location=location,
                accuracy=accuracy,
                error=self._snapshot.error,
            )
            snapshot = self._snapshot

        self.metrics.increment('locations_published')
        self._notify(snapshot)
        self._broadcast(location)

    def publish_error(self, message: str):
        """Store an error message; location and accuracy are kept."""
        with self._lock:
            self._snapshot = LocationSnapshot(
                location=self._snapshot.location,
                accuracy=self._snapshot.accuracy,
                error=message,
            )
            snapshot = self._snapshot

        self._notify(snapshot)

    def _notify(self, snapshot: LocationSnapshot):
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Location subscriber {callback!r} failed")

    def _broadcast(self, location: SmoothedLocation):
        if self.broadcast is None:
            return
        try:
            self.broadcast(location)
        except Exception:
            logger.exception("Peer location broadcast failed")
