"""
I/O Module: Positioning platforms, fix streams, peer broadcast.

- PositioningPlatform: continuous watch + one-shot request interface
- PositionSource / FixStream: cancellable single-handler fix stream
- ReplayPlatform: scripted platform (tests, file replay)
- NetworkPlatform: TCP fix forwarder with length-prefixed JSON
- PeerLocationSender: best-effort TCP sink for published locations
"""

from .platform import (
    ONE_SHOT_OPTIONS,
    WATCH_OPTIONS,
    PositioningPlatform,
    PositionOptions,
)
from .position_source import FixStream, PositionSource
from .replay_platform import ReplayPlatform, load_fixes
from .network_platform import (
    FixReceiver,
    NetworkPlatform,
    decode_frames,
    encode_message,
)
from .peer_sender import PeerLocationSender

__all__ = [
    'ONE_SHOT_OPTIONS',
    'WATCH_OPTIONS',
    'PositioningPlatform',
    'PositionOptions',
    'FixStream',
    'PositionSource',
    'ReplayPlatform',
    'load_fixes',
    'FixReceiver',
    'NetworkPlatform',
    'decode_frames',
    'encode_message',
    'PeerLocationSender',
]
