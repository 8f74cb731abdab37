"""Positioning platform interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from location_core.proto.fix import RawFix
from location_core.proto.position_error import PositionError

FixCallback = Callable[[RawFix], None]
ErrorCallback = Callable[[PositionError], None]


@dataclass(frozen=True)
class PositionOptions:
    """
    Options for a position request.

    Attributes:
        enable_high_accuracy: Ask for the most accurate source available
        maximum_age_ms: Maximum age of a cached fix (0 = never use cache)
        timeout_ms: Deadline for a fix before TIMEOUT is reported
    """

    enable_high_accuracy: bool = True
    maximum_age_ms: int = 0
    timeout_ms: int = 10000


WATCH_OPTIONS = PositionOptions(enable_high_accuracy=True, maximum_age_ms=0, timeout_ms=10000)
ONE_SHOT_OPTIONS = PositionOptions(enable_high_accuracy=True, maximum_age_ms=0, timeout_ms=5000)


class PositioningPlatform(ABC):
    """
    Device positioning capability.

    Implementations deliver callbacks one at a time per watch, but may call
    back from their own threads.
    """

    @property
    def is_supported(self) -> bool:
        """Whether the device offers positioning at all."""
        return True

    @abstractmethod
    def watch_position(
        self,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        options: PositionOptions,
    ) -> int:
        """
        Open a continuous subscription.

        Returns:
            Watch ID for clear_watch()
        """

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Cancel a continuous subscription. Unknown IDs are ignored."""

    @abstractmethod
    def get_current_position(
        self,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        options: PositionOptions,
    ) -> None:
        """Request a single fix; exactly one of the callbacks fires."""
