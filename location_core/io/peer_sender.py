"""
Peer Location Sender.

Broadcast sink for published locations: forwards each smoothed location to
a peer relay over TCP using the same length-prefixed JSON framing as the
fix forwarder. Sending is best effort and never raises.

Calling the sender only stores the latest location; a daemon worker thread
connects and sends. The fix delivery thread never waits on the network.
"""

import logging
import socket
import threading
import time
from typing import Optional

from location_core.io.network_platform import encode_message
from location_core.proto.fix import SmoothedLocation

logger = logging.getLogger(__name__)


class PeerLocationSender:
    """
    Send smoothed locations to a peer relay.

    Usage:
        sender = PeerLocationSender("127.0.0.1", 8766, player_id="team-7")
        publisher = LocationPublisher(broadcast=sender)
        ...
        sender.stop()

    The instance is callable so it can be passed directly as the
    publisher's broadcast sink. Locations that arrive while a send is in
    progress replace each other; only the newest one is sent next.

    A failed send drops the connection. Reconnects are attempted at most
    once per reconnect_interval_s.
    """

    def __init__(self, host: str, port: int, player_id: str = "",
                 connect_timeout_s: float = 5.0, reconnect_interval_s: float = 2.0):
        self.host = host
        self.port = port
        self.player_id = player_id
        self.connect_timeout_s = connect_timeout_s
        self.reconnect_interval_s = reconnect_interval_s
        self.socket: Optional[socket.socket] = None
        self.sent_count = 0

        self._last_connect_failure: Optional[float] = None
        self._pending: Optional[SmoothedLocation] = None
        self._condition = threading.Condition()
        self._running = False
        self._worker: Optional[threading.Thread] = None

    @property
    def connected(self) -> bool:
        return self.socket is not None

    def connect(self) -> bool:
        """Connect to the peer relay."""
        try:
            self.socket = socket.create_connection((self.host, self.port), timeout=self.connect_timeout_s)
        except OSError as e:
            logger.warning(f"Peer relay {self.host}:{self.port} unreachable: {e}")
            self.socket = None
            self._last_connect_failure = time.monotonic()
            return False

        self._last_connect_failure = None
        logger.info(f"Connected to peer relay {self.host}:{self.port}")
        return True

    def disconnect(self):
        if self.socket is not None:
            try:
                self.socket.close()
            except OSError:
                pass
            self.socket = None

    def send_location(self, location: SmoothedLocation) -> bool:
        """
        Send one location, blocking until written.

        Returns:
            True if the message was written to the socket
        """
        if not self.connected:
            if self._in_reconnect_backoff():
                return False
            if not self.connect():
                return False

        message = {
            "type": "peer_location",
            "player_id": self.player_id,
            "lat": location.lat,
            "lng": location.lng,
            "sent_at": int(time.time() * 1000),
        }

        try:
            self.socket.sendall(encode_message(message))
        except OSError as e:
            logger.error(f"Failed to send peer location: {e}")
            self.disconnect()
            return False

        self.sent_count += 1
        return True

    def __call__(self, location: SmoothedLocation) -> None:
        """Queue a location for sending without blocking."""
        with self._condition:
            self._pending = location
            if self._worker is None:
                self._running = True
                self._worker = threading.Thread(target=self._send_loop, daemon=True)
                self._worker.start()
            self._condition.notify()

    def stop(self, timeout_s: float = 2.0):
        """Stop the worker thread and close the connection."""
        with self._condition:
            self._running = False
            self._pending = None
            worker, self._worker = self._worker, None
            self._condition.notify()

        if worker is not None:
            worker.join(timeout_s)
            if worker.is_alive():
                logger.warning("Peer sender worker still busy at shutdown")
        self.disconnect()

    def _send_loop(self):
        while True:
            with self._condition:
                while self._pending is None and self._running:
                    self._condition.wait()
                if not self._running or self._worker is not threading.current_thread():
                    return
                location, self._pending = self._pending, None
            self.send_location(location)

    def _in_reconnect_backoff(self) -> bool:
        if self._last_connect_failure is None:
            return False
        return time.monotonic() - self._last_connect_failure < self.reconnect_interval_s
