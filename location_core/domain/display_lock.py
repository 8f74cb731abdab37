"""
Display lock providers.

A display lock keeps the device awake while tracking. It is a battery-life
optimization only: providers may return None (no lock available) or raise,
and the session manager treats both as "tracking without a lock".
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class DisplayLockHandle(ABC):
    """A held display lock."""

    @property
    @abstractmethod
    def released(self) -> bool:
        """Whether release() has completed."""

    @abstractmethod
    def release(self) -> None:
        """Release the lock. Calling it again is a no-op."""


class DisplayLockProvider(ABC):
    """Source of display locks."""

    @abstractmethod
    def request(self) -> Optional[DisplayLockHandle]:
        """
        Request a display lock without blocking.

        Returns:
            Handle, or None when the platform offers no lock

        Raises:
            Any exception on refusal; callers treat it as "no lock"
        """


class NullDisplayLockProvider(DisplayLockProvider):
    """Provider for platforms without a display lock."""

    def request(self) -> Optional[DisplayLockHandle]:
        return None


class ProcessDisplayLock(DisplayLockHandle):
    """Lock held for as long as a child process is alive."""

    def __init__(self, process: subprocess.Popen, wait_timeout_s: float = 2.0):
        self.process = process
        self.wait_timeout_s = wait_timeout_s
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=self.wait_timeout_s)
            except subprocess.TimeoutExpired:
                logger.warning(f"Inhibitor pid {self.process.pid} ignored SIGTERM, killing")
                self.process.kill()
                self.process.wait()
        logger.info("Display lock released")


class InhibitDisplayLockProvider(DisplayLockProvider):
    """
    Display lock via `systemd-inhibit`.

    Spawns an inhibitor process that blocks idle/sleep until terminated.
    Spawning does not wait for the child.
    """

    DEFAULT_COMMAND = (
        'systemd-inhibit',
        '--what=idle:sleep',
        '--who=location-core',
        '--why=Location tracking active',
        '--mode=block',
        'sleep', 'infinity',
    )

    def __init__(self, command: Optional[Sequence[str]] = None):
        self.command: List[str] = list(command or self.DEFAULT_COMMAND)

    def request(self) -> Optional[DisplayLockHandle]:
        process = subprocess.Popen(
            self.command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        logger.info(f"Display lock active (pid {process.pid})")
        return ProcessDisplayLock(process)
