"""Capture permission capability used during startup."""

from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


class CapturePermission(ABC):
    """Access to the capture device, as granted by the host environment."""

    @abstractmethod
    async def is_granted(self) -> bool:
        ...

    @abstractmethod
    async def request(self) -> bool:
        """Ask for permission once. Returns whether it was granted."""
        ...


class StaticCapturePermission(CapturePermission):
    """Permission fixed by configuration; requesting it does not change it."""

    def __init__(self, granted: bool = True):
        self.granted = granted
        self.requests = 0

    async def is_granted(self) -> bool:
        return self.granted

    async def request(self) -> bool:
        self.requests += 1
        logger.info(f"Capture permission requested: {'granted' if self.granted else 'denied'}")
        return self.granted
