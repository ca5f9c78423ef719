"""
Capture collaborator interface.

A capture source produces exactly one ImageHandle per call. Live camera
frames and gallery picks are interchangeable from the pipeline's view;
only ``source`` tells them apart.
"""

from abc import ABC, abstractmethod

from plantid.models.domain import ImageHandle
from plantid.models.enums import AcquisitionSource


class CaptureSource(ABC):
    """One pending acquisition."""

    source: AcquisitionSource = AcquisitionSource.CAMERA

    @abstractmethod
    async def acquire_image(self) -> ImageHandle:
        """
        Acquire the image.

        Raises:
            CaptureError: If no usable image could be obtained
        """
        ...
