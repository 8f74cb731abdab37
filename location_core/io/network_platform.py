"""
Network Positioning Platform.

Receives fixes from a device-side forwarder over TCP. Each message is a
4-byte big-endian length prefix followed by UTF-8 JSON:

    {"type": "fix", "lat": 55.0, "lng": 12.0, "accuracy": 5.0, "timestamp_ms": 1700000000000}
    {"type": "error", "code": "PERMISSION_DENIED", "message": "User denied Geolocation"}

Malformed messages are logged and dropped; the connection stays open.
"""

import json
import logging
import socket
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from location_core.io.platform import (
    ErrorCallback,
    FixCallback,
    PositioningPlatform,
    PositionOptions,
)
from location_core.metrics import MetricsCollector, get_metrics
from location_core.proto.fix import RawFix
from location_core.proto.position_error import PositionError, PositionErrorCode

logger = logging.getLogger(__name__)

LENGTH_PREFIX_BYTES = 4


def encode_message(message: dict) -> bytes:
    """Frame a message with its length prefix."""
    payload = json.dumps(message).encode('utf-8')
    return len(payload).to_bytes(LENGTH_PREFIX_BYTES, byteorder='big') + payload


def decode_frames(buffer: bytes) -> Tuple[List[bytes], bytes]:
    """
    Split complete frames off the front of a receive buffer.

    Returns:
        (complete payloads, remaining partial buffer)
    """
    frames = []
    while len(buffer) >= LENGTH_PREFIX_BYTES:
        msg_length = int.from_bytes(buffer[:LENGTH_PREFIX_BYTES], byteorder='big')
        end = LENGTH_PREFIX_BYTES + msg_length
        if len(buffer) < end:
            break
        frames.append(buffer[LENGTH_PREFIX_BYTES:end])
        buffer = buffer[end:]
    return frames, buffer


class FixReceiver:
    """TCP server accepting forwarder connections and decoding messages."""

    def __init__(self, host: str, port: int, message_callback: Callable[[Dict], None],
                 metrics: Optional[MetricsCollector] = None):
        """
        Args:
            host: Listen address
            port: Listen port (0 picks a free port)
            message_callback: Called with every decoded JSON object
        """
        self.host = host
        self.port = port
        self.message_callback = message_callback
        self.metrics = metrics or get_metrics()
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.clients: List[socket.socket] = []
        self._clients_lock = threading.Lock()
        self.accept_thread: Optional[threading.Thread] = None

    @property
    def bound_port(self) -> Optional[int]:
        if self.server_socket is None:
            return None
        return self.server_socket.getsockname()[1]

    def start(self) -> bool:
        """Start listening. Returns False if the socket could not be bound."""
        try:
            self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server_socket.bind((self.host, self.port))
            self.server_socket.listen(5)
            self.server_socket.settimeout(1.0)
        except OSError as e:
            logger.error(f"Failed to start fix receiver on {self.host}:{self.port}: {e}")
            self.server_socket = None
            return False

        self.running = True
        self.accept_thread = threading.Thread(target=self._accept_loop, daemon=True)
        self.accept_thread.start()

        logger.info(f"Fix receiver listening on {self.host}:{self.bound_port}")
        return True

    def stop(self):
        """Close every client connection and the listening socket."""
        self.running = False

        with self._clients_lock:
            clients, self.clients = self.clients, []
        for client in clients:
            _close_quietly(client)

        if self.server_socket:
            _close_quietly(self.server_socket)
            self.server_socket = None

        logger.info("Fix receiver stopped")

    def _accept_loop(self):
        while self.running:
            try:
                client_socket, address = self.server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:
                    logger.error(f"Accept failed: {e}")
                break

            logger.info(f"Forwarder connected: {address}")
            with self._clients_lock:
                self.clients.append(client_socket)

            threading.Thread(
                target=self._handle_client,
                args=(client_socket, address),
                daemon=True,
            ).start()

    def _handle_client(self, client_socket: socket.socket, address):
        buffer = b''
        client_socket.settimeout(1.0)

        try:
            while self.running:
                try:
                    data = client_socket.recv(4096)
                except socket.timeout:
                    continue

                if not data:
                    logger.info(f"Forwarder disconnected: {address}")
                    break

                frames, buffer = decode_frames(buffer + data)
                for frame in frames:
                    self._dispatch(frame)
        except OSError as e:
            if self.running:
                logger.error(f"Connection error from {address}: {e}")
        finally:
            with self._clients_lock:
                if client_socket in self.clients:
                    self.clients.remove(client_socket)
            _close_quietly(client_socket)

    def _dispatch(self, frame: bytes):
        try:
            message = json.loads(frame.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Dropping undecodable message: {e}")
            self.metrics.increment_drop('malformed_message')
            return

        if not isinstance(message, dict):
            logger.warning(f"Dropping non-object message: {message!r}")
            self.metrics.increment_drop('malformed_message')
            return

        self.message_callback(message)


class NetworkPlatform(PositioningPlatform):
    """
    Positioning platform backed by a TCP fix forwarder.

    Features:
    - Watches receive every fix; a watch that sees no fix within its
      timeout reports TIMEOUT and keeps waiting
    - One-shot requests resolve with the next fix or fail with TIMEOUT
    - maximum_age_ms > 0 lets a one-shot request reuse a recent fix
    - Callbacks run on receiver threads, outside the platform lock
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8765,
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.time):
        self.metrics = metrics or get_metrics()
        self.receiver = FixReceiver(host, port, self.handle_message, self.metrics)
        self._clock = clock
        self._lock = threading.Lock()

        self._watches: Dict[int, Tuple[FixCallback, ErrorCallback, PositionOptions]] = {}
        self._watch_timers: Dict[int, threading.Timer] = {}
        self._one_shots: Dict[int, Tuple[FixCallback, ErrorCallback, threading.Timer]] = {}
        self._next_id = 1

        self._last_fix: Optional[RawFix] = None
        self._last_fix_received_at = 0.0

    def start(self) -> bool:
        return self.receiver.start()

    def stop(self):
        self.receiver.stop()
        with self._lock:
            timers = list(self._watch_timers.values())
            timers += [timer for _, _, timer in self._one_shots.values()]
            self._watch_timers.clear()
            self._one_shots.clear()
            self._watches.clear()
        for timer in timers:
            timer.cancel()

    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback,
                       options: PositionOptions) -> int:
        with self._lock:
            watch_id = self._take_id()
            self._watches[watch_id] = (on_fix, on_error, options)
            self._arm_watch_timer(watch_id, options)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        with self._lock:
            self._watches.pop(watch_id, None)
            timer = self._watch_timers.pop(watch_id, None)
        if timer is not None:
            timer.cancel()

    def get_current_position(self, on_fix: FixCallback, on_error: ErrorCallback,
                             options: PositionOptions) -> None:
        with self._lock:
            cached = self._cached_fix(options.maximum_age_ms)
            if cached is None:
                request_id = self._take_id()
                timer = threading.Timer(options.timeout_ms / 1000.0, self._expire_one_shot, args=(request_id,))
                timer.daemon = True
                self._one_shots[request_id] = (on_fix, on_error, timer)
                timer.start()

        if cached is not None:
            on_fix(cached)

    def handle_message(self, message: Dict):
        """Route one decoded forwarder message."""
        msg_type = message.get("type", "")

        if msg_type == "fix":
            try:
                fix = RawFix.from_dict(message)
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(f"Dropping malformed fix message: {e}")
                self.metrics.increment_drop('malformed_message')
                return
            self._handle_fix(fix)
        elif msg_type == "error":
            self._handle_error(PositionError.from_dict(message))
        else:
            logger.debug(f"Ignoring message type: {msg_type!r}")

    def _handle_fix(self, fix: RawFix):
        with self._lock:
            self._last_fix = fix
            self._last_fix_received_at = self._clock()

            one_shots = list(self._one_shots.values())
            self._one_shots.clear()

            watches = []
            for watch_id, (on_fix, _, options) in self._watches.items():
                watches.append(on_fix)
                self._arm_watch_timer(watch_id, options)

        for on_fix, _, timer in one_shots:
            timer.cancel()
            on_fix(fix)
        for on_fix in watches:
            on_fix(fix)

    def _handle_error(self, error: PositionError):
        with self._lock:
            handlers = [on_error for _, on_error, _ in self._watches.values()]
        for on_error in handlers:
            on_error(error)

    def _take_id(self) -> int:
        request_id = self._next_id
        self._next_id += 1
        return request_id

    def _cached_fix(self, maximum_age_ms: int) -> Optional[RawFix]:
        if maximum_age_ms <= 0 or self._last_fix is None:
            return None
        age_ms = (self._clock() - self._last_fix_received_at) * 1000.0
        return self._last_fix if age_ms <= maximum_age_ms else None

    def _arm_watch_timer(self, watch_id: int, options: PositionOptions):
        # Caller holds self._lock
        previous = self._watch_timers.pop(watch_id, None)
        if previous is not None:
            previous.cancel()
        if options.timeout_ms <= 0:
            return
        timer = threading.Timer(options.timeout_ms / 1000.0, self._watch_timed_out, args=(watch_id,))
        timer.daemon = True
        self._watch_timers[watch_id] = timer
        timer.start()

    def _watch_timed_out(self, watch_id: int):
        with self._lock:
            entry = self._watches.get(watch_id)
            if entry is None:
                return
            _, on_error, options = entry
            self._arm_watch_timer(watch_id, options)
        on_error(PositionError(PositionErrorCode.TIMEOUT))

    def _expire_one_shot(self, request_id: int):
        with self._lock:
            entry = self._one_shots.pop(request_id, None)
        if entry is not None:
            _, on_error, _ = entry
            on_error(PositionError(PositionErrorCode.TIMEOUT))


def _close_quietly(sock: socket.socket):
    try:
        sock.close()
    except OSError:
        pass
