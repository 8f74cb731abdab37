"""
Positioning Error Schema.

Errors reported by the positioning platform. All codes are non-fatal: they
are surfaced to subscribers as a message while the continuous subscription
keeps running and can recover on its own.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict


class PositionErrorCode(IntEnum):
    """Positioning failure codes (first three follow the W3C numbering)."""

    PERMISSION_DENIED = 1     # Positioning access denied
    POSITION_UNAVAILABLE = 2  # No signal / internal source failure
    TIMEOUT = 3               # No fix within the platform deadline
    UNSUPPORTED = 4           # Device lacks positioning capability


DEFAULT_MESSAGES = {
    PositionErrorCode.PERMISSION_DENIED: "User denied Geolocation",
    PositionErrorCode.POSITION_UNAVAILABLE: "Position unavailable",
    PositionErrorCode.TIMEOUT: "Timeout expired",
    PositionErrorCode.UNSUPPORTED: "Geolocation not supported",
}


@dataclass(frozen=True)
class PositionError:
    """
    Error reported on the positioning error channel.

    Attributes:
        code: Failure code
        message: Human readable message (shown to subscribers)
    """

    code: PositionErrorCode
    message: str = ""

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, 'message', DEFAULT_MESSAGES[self.code])

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PositionError':
        """
        Build an error from a wire message.

        Accepts the code either by name ('TIMEOUT') or by number (3).
        Unknown codes map to POSITION_UNAVAILABLE.
        """
        raw_code = data.get('code')
        try:
            if isinstance(raw_code, str):
                code = PositionErrorCode[raw_code.upper()]
            else:
                code = PositionErrorCode(int(raw_code))
        except (KeyError, ValueError, TypeError):
            code = PositionErrorCode.POSITION_UNAVAILABLE
        return cls(code=code, message=str(data.get('message') or ""))
