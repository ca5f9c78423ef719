# Capture module
from plantid.capture.base import CaptureSource
from plantid.capture.permission import CapturePermission, StaticCapturePermission
from plantid.capture.sources import EncodedImageSource, FileImageSource

__all__ = [
    "CaptureSource",
    "CapturePermission",
    "StaticCapturePermission",
    "EncodedImageSource",
    "FileImageSource",
]
