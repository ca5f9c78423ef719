"""
Capture sources backed by Pillow.

Handles:
- Base64 frames from a camera or an uploaded gallery image
- Gallery picks addressed by file path

Images are decoded and verified only; no resizing or normalization
happens here.
"""

import asyncio
import base64
import binascii
import hashlib
import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from plantid.capture.base import CaptureSource
from plantid.core.errors import CaptureError
from plantid.models.domain import ImageHandle
from plantid.models.enums import AcquisitionSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024


def _open_image(data: bytes) -> Image.Image:
    """Decode image bytes, raising CaptureError on anything unreadable."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise CaptureError(f"Unreadable image: {e}") from e
    return image


class EncodedImageSource(CaptureSource):
    """
    Image delivered as base64 text (optionally a data URL).

    Usage:
        source = EncodedImageSource(frame_b64, source=AcquisitionSource.CAMERA)
        handle = await source.acquire_image()
    """

    def __init__(
        self,
        data: str,
        source: AcquisitionSource = AcquisitionSource.CAMERA,
        max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    ):
        self.data = data
        self.source = source
        self.max_bytes = max_bytes

    async def acquire_image(self) -> ImageHandle:
        return await asyncio.to_thread(self._decode)

    def _decode(self) -> ImageHandle:
        data = self.data or ""
        # Remove data URL prefix if present
        if "," in data:
            data = data.split(",", 1)[1]

        try:
            image_bytes = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CaptureError(f"Invalid base64 image data: {e}") from e

        if not image_bytes:
            raise CaptureError("Empty image")
        if len(image_bytes) > self.max_bytes:
            raise CaptureError(f"Image exceeds {self.max_bytes // (1024 * 1024)}MB limit")

        image = _open_image(image_bytes)
        digest = hashlib.sha1(image_bytes).hexdigest()[:16]
        logger.debug(f"Decoded {self.source.value} image {image.size} {image.format}")
        return ImageHandle(
            uri=f"memory://{self.source.value}/{digest}",
            source=self.source,
            width=image.width,
            height=image.height,
            format=image.format,
            image=image,
        )


class FileImageSource(CaptureSource):
    """
    Gallery pick of an image file on disk.

    With ``root`` set, relative paths are taken from it and the resolved
    path must stay inside it, symlinks included.
    """

    def __init__(
        self,
        path: str | Path,
        source: AcquisitionSource = AcquisitionSource.GALLERY,
        max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        root: str | Path | None = None,
    ):
        self.root = Path(root).resolve() if root is not None else None
        self.path = self.root / path if self.root is not None else Path(path)
        self.source = source
        self.max_bytes = max_bytes

    async def acquire_image(self) -> ImageHandle:
        return await asyncio.to_thread(self._load)

    def _check_root(self) -> None:
        if self.root is None:
            return
        # Checked before touching the file so outside paths reveal nothing
        if not self.path.resolve().is_relative_to(self.root):
            raise CaptureError("Image must be inside the gallery directory")

    def _load(self) -> ImageHandle:
        self._check_root()
        if not self.path.is_file():
            raise CaptureError(f"Image not found: {self.path}")
        try:
            size = self.path.stat().st_size
            if size > self.max_bytes:
                raise CaptureError(f"Image exceeds {self.max_bytes // (1024 * 1024)}MB limit")
            data = self.path.read_bytes()
        except OSError as e:
            raise CaptureError(f"Could not read {self.path}: {e}") from e

        image = _open_image(data)
        return ImageHandle(
            uri=self.path.resolve().as_uri(),
            source=self.source,
            width=image.width,
            height=image.height,
            format=image.format,
            image=image,
        )
