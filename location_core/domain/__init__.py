"""
Domain Module: Session lifecycle and location publishing.

Implements:
- Tracking session state machine (start, suspend, resume, teardown)
- Best-effort display lock ownership
- Publish/subscribe of the smoothed location
"""

from .display_lock import (
    DisplayLockHandle,
    DisplayLockProvider,
    InhibitDisplayLockProvider,
    NullDisplayLockProvider,
    ProcessDisplayLock,
)
from .publisher import LocationPublisher
from .session import (
    SessionLifecycleManager,
    SessionState,
    TrackingSession,
)

__all__ = [
    'DisplayLockHandle',
    'DisplayLockProvider',
    'InhibitDisplayLockProvider',
    'NullDisplayLockProvider',
    'ProcessDisplayLock',
    'LocationPublisher',
    'SessionLifecycleManager',
    'SessionState',
    'TrackingSession',
]
