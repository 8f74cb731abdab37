"""
Location tracking service configuration.
"""

# Fix forwarder listener (network mode)
SERVER_CONFIG = {
    "host": "0.0.0.0",        # Listen on all interfaces
    "port": 8765,             # Forwarder port
}

# Peer location relay (broadcast of published locations)
PEER_CONFIG = {
    "enabled": False,         # Off for local testing
    "host": "127.0.0.1",
    "port": 8766,
    "player_id": "local",
}

# Positioning request options
TRACKING_CONFIG = {
    "watch_timeout_ms": 10000,     # Continuous subscription deadline
    "one_shot_timeout_ms": 5000,   # Immediate bootstrap fix deadline
    "maximum_age_ms": 0,           # Never reuse cached fixes
    "enable_high_accuracy": True,
}

# Display lock
DISPLAY_LOCK_CONFIG = {
    "enabled": False,              # Spawn systemd-inhibit while tracking
}

# Replay mode
REPLAY_CONFIG = {
    "interval_s": 1.0,             # Delay between replayed fixes
}

# Console output
OUTPUT_CONFIG = {
    "enable_console_print": True,
    "print_metrics_on_exit": True,
}

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
