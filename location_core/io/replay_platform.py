"""
Replay Positioning Platform.

Scripted platform used by the test suite and by the CLI replay mode. Fixes
are pushed explicitly and delivered synchronously on the caller's thread.
"""

import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Tuple, Union

from location_core.io.platform import (
    ErrorCallback,
    FixCallback,
    PositioningPlatform,
    PositionOptions,
)
from location_core.proto.fix import RawFix
from location_core.proto.position_error import PositionError, PositionErrorCode

logger = logging.getLogger(__name__)


class ReplayPlatform(PositioningPlatform):
    """
    Platform driven by explicit pushes.

    Usage:
        platform = ReplayPlatform()
        source = PositionSource(platform)
        source.start()

        platform.push_fix(RawFix(55.0, 12.0, 5.0, 0))  # one-shot + watch
        platform.push_watch_fix(...)                   # watch only
        platform.push_error(PositionError(PositionErrorCode.TIMEOUT))
    """

    def __init__(self, supported: bool = True, permission_denied: bool = False):
        self.supported = supported
        self.permission_denied = permission_denied

        self._watches: Dict[int, Tuple[FixCallback, ErrorCallback]] = {}
        self._one_shots: List[Tuple[FixCallback, ErrorCallback]] = []
        self._next_watch_id = 1

        self.watch_options: List[PositionOptions] = []
        self.one_shot_options: List[PositionOptions] = []
        self.cleared_watches: List[int] = []

    @property
    def is_supported(self) -> bool:
        return self.supported

    @property
    def active_watch_count(self) -> int:
        return len(self._watches)

    @property
    def pending_one_shot_count(self) -> int:
        return len(self._one_shots)

    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback,
                       options: PositionOptions) -> int:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watches[watch_id] = (on_fix, on_error)
        self.watch_options.append(options)

        if self.permission_denied:
            on_error(PositionError(PositionErrorCode.PERMISSION_DENIED))
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        if self._watches.pop(watch_id, None) is not None:
            self.cleared_watches.append(watch_id)

    def get_current_position(self, on_fix: FixCallback, on_error: ErrorCallback,
                             options: PositionOptions) -> None:
        self.one_shot_options.append(options)
        if self.permission_denied:
            on_error(PositionError(PositionErrorCode.PERMISSION_DENIED))
            return
        self._one_shots.append((on_fix, on_error))

    def push_fix(self, fix: RawFix) -> int:
        """
        Deliver a fix to pending one-shot requests, then to every watch.

        Returns:
            Number of callbacks invoked
        """
        return self.push_one_shot_fix(fix) + self.push_watch_fix(fix)

    def push_one_shot_fix(self, fix: RawFix) -> int:
        """Resolve every pending one-shot request with `fix`."""
        pending, self._one_shots = self._one_shots, []
        for on_fix, _ in pending:
            on_fix(fix)
        return len(pending)

    def push_watch_fix(self, fix: RawFix) -> int:
        """Deliver `fix` to every active watch only."""
        watches = list(self._watches.values())
        for on_fix, _ in watches:
            on_fix(fix)
        return len(watches)

    def push_error(self, error: PositionError) -> int:
        """Deliver an error to every active watch."""
        watches = list(self._watches.values())
        for _, on_error in watches:
            on_error(error)
        return len(watches)

    def expire_one_shots(self) -> int:
        """Fail every pending one-shot request with TIMEOUT."""
        pending, self._one_shots = self._one_shots, []
        for _, on_error in pending:
            on_error(PositionError(PositionErrorCode.TIMEOUT))
        return len(pending)

    def replay(self, fixes: Iterable[RawFix], interval_s: float = 0.0,
               should_continue: Callable[[], bool] = lambda: True) -> int:
        """
        Push fixes in order, optionally pacing them.

        Returns:
            Number of fixes pushed
        """
        count = 0
        for fix in fixes:
            if not should_continue():
                break
            self.push_fix(fix)
            count += 1
            if interval_s > 0:
                time.sleep(interval_s)
        return count


def load_fixes(path: Union[str, Path]) -> List[RawFix]:
    """
    Load a replay file.

    The file holds a JSON list of objects with 'lat', 'lng', 'accuracy' and
    'timestamp_ms'. Entries that are not objects or lack a finite
    timestamp are skipped.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    fixes = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping replay entry {i}: not an object")
            continue
        try:
            fixes.append(RawFix.from_dict(entry))
        except ValueError as e:
            logger.warning(f"Skipping replay entry {i}: {e}")

    logger.info(f"Loaded {len(fixes)} fixes from {path}")
    return fixes
