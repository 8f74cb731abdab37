"""
Location tracking service.

Runs one tracking session against a positioning platform and prints every
published location. Fixes come either from a TCP forwarder (network mode)
or from a JSON replay file (replay mode).

Signals:
    SIGINT / SIGTERM  stop
    SIGUSR1           simulate app going to background
    SIGUSR2           simulate app returning to foreground
"""

import sys
import time
import signal
import logging
import argparse
from typing import Optional

import config
from location_core.domain import (
    InhibitDisplayLockProvider,
    LocationPublisher,
    NullDisplayLockProvider,
    SessionLifecycleManager,
)
from location_core.io import (
    NetworkPlatform,
    PeerLocationSender,
    PositionOptions,
    ReplayPlatform,
    load_fixes,
)
from location_core.localization import format_distance, distance_between
from location_core.metrics import get_metrics
from location_core.proto import LocationSnapshot

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


def build_options():
    """Watch and one-shot options from TRACKING_CONFIG."""
    tracking = config.TRACKING_CONFIG
    watch = PositionOptions(
        enable_high_accuracy=tracking["enable_high_accuracy"],
        maximum_age_ms=tracking["maximum_age_ms"],
        timeout_ms=tracking["watch_timeout_ms"],
    )
    one_shot = PositionOptions(
        enable_high_accuracy=tracking["enable_high_accuracy"],
        maximum_age_ms=tracking["maximum_age_ms"],
        timeout_ms=tracking["one_shot_timeout_ms"],
    )
    return watch, one_shot


class ConsolePrinter:
    """Subscriber that prints published locations."""

    def __init__(self):
        self.count = 0
        self._previous = None
        self._last_error = None

    def __call__(self, snapshot: LocationSnapshot):
        if snapshot.error != self._last_error:
            self._last_error = snapshot.error
            print(f"[Location] error: {snapshot.error}")

        location = snapshot.location
        if location is None:
            return

        point = (location.lat, location.lng)
        if point == self._previous:
            return

        moved = distance_between(self._previous, point) if self._previous else 0.0
        self._previous = point
        self.count += 1
        print(f"[Location] #{self.count} ({location.lat:.6f}, {location.lng:.6f}) "
              f"±{snapshot.accuracy:.0f}m, moved {format_distance(moved)}")


class LocationTrackingService:
    """Wires platform, session manager and publisher together."""

    def __init__(self, mode: str, replay_file: Optional[str] = None):
        self.mode = mode
        self.replay_file = replay_file
        self.running = False

        if mode == "network":
            self.platform = NetworkPlatform(
                host=config.SERVER_CONFIG["host"],
                port=config.SERVER_CONFIG["port"],
            )
        else:
            self.platform = ReplayPlatform()

        self.peer_sender = None
        if config.PEER_CONFIG["enabled"]:
            self.peer_sender = PeerLocationSender(
                host=config.PEER_CONFIG["host"],
                port=config.PEER_CONFIG["port"],
                player_id=config.PEER_CONFIG["player_id"],
            )

        self.publisher = LocationPublisher(broadcast=self.peer_sender)
        if config.OUTPUT_CONFIG["enable_console_print"]:
            self.publisher.subscribe(ConsolePrinter())

        if config.DISPLAY_LOCK_CONFIG["enabled"]:
            lock_provider = InhibitDisplayLockProvider()
        else:
            lock_provider = NullDisplayLockProvider()

        watch_options, one_shot_options = build_options()
        self.manager = SessionLifecycleManager(
            self.platform,
            self.publisher,
            lock_provider=lock_provider,
            watch_options=watch_options,
            one_shot_options=one_shot_options,
        )

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        if hasattr(signal, "SIGUSR1"):
            signal.signal(signal.SIGUSR1, lambda signum, frame: self.manager.on_visibility_change(False))
            signal.signal(signal.SIGUSR2, lambda signum, frame: self.manager.on_visibility_change(True))

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.running = False

    def run(self) -> int:
        """Run until stopped (network) or until the replay ends."""
        if self.mode == "network" and not self.platform.start():
            logger.error("Failed to start fix receiver")
            return 1

        self.running = True
        try:
            with self.manager:
                if self.mode == "network":
                    logger.info("Tracking started, waiting for fixes...")
                    while self.running:
                        time.sleep(0.5)
                else:
                    fixes = load_fixes(self.replay_file)
                    self.platform.replay(
                        fixes,
                        interval_s=config.REPLAY_CONFIG["interval_s"],
                        should_continue=lambda: self.running,
                    )
        finally:
            self.running = False
            if self.mode == "network":
                self.platform.stop()
            if self.peer_sender is not None:
                self.peer_sender.stop()
            if config.OUTPUT_CONFIG["print_metrics_on_exit"]:
                get_metrics().print_summary()

        return 0


def main():
    parser = argparse.ArgumentParser(description='Location tracking service')
    parser.add_argument('--mode', '-m', choices=['network', 'replay'], default='network',
                        help='Fix source')
    parser.add_argument('--replay-file', '-f', type=str, default=None,
                        help='JSON list of fixes (replay mode)')
    parser.add_argument('--interval', '-i', type=float, default=None,
                        help='Seconds between replayed fixes')
    parser.add_argument('--host', '-H', type=str, default=None,
                        help='Listen address (network mode)')
    parser.add_argument('--port', '-p', type=int, default=None,
                        help='Listen port (network mode)')
    parser.add_argument('--peer', type=str, default=None,
                        help='Peer relay HOST:PORT for location broadcast')
    parser.add_argument('--display-lock', action='store_true',
                        help='Hold a systemd-inhibit lock while tracking')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.mode == 'replay' and not args.replay_file:
        parser.error("--replay-file is required in replay mode")

    if args.host:
        config.SERVER_CONFIG["host"] = args.host
    if args.port:
        config.SERVER_CONFIG["port"] = args.port
    if args.interval is not None:
        config.REPLAY_CONFIG["interval_s"] = args.interval
    if args.peer:
        host, _, port = args.peer.rpartition(':')
        config.PEER_CONFIG.update(enabled=True, host=host or "127.0.0.1", port=int(port))
    if args.display_lock:
        config.DISPLAY_LOCK_CONFIG["enabled"] = True

    service = LocationTrackingService(args.mode, args.replay_file)
    sys.exit(service.run())


if __name__ == "__main__":
    main()
