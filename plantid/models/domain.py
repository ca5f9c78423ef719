"""
Core value types shared by the classifier, storage and pipeline.

These are plain dataclasses; the pydantic schemas in ``schemas.py`` are
the presentation-facing view of the same data.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from plantid.models.enums import AcquisitionSource


@dataclass(frozen=True)
class Prediction:
    """
    One (label, confidence) guess from the classifier.

    Attributes:
        species_label: Predicted species label
        confidence: Confidence score (0-1), not necessarily calibrated
    """
    species_label: str
    confidence: float

    def __post_init__(self):
        if not self.species_label:
            raise ValueError("species_label must be non-empty")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class HistoryRecord:
    """A persisted identification. Never mutated after creation."""
    id: int
    species_label: str
    confidence: float
    created_at: datetime


@dataclass
class ImageHandle:
    """
    Opaque reference to an acquired image.

    ``image`` holds the decoded PIL image when the source decoded one;
    it is excluded from repr and comparisons.
    """
    uri: str
    source: AcquisitionSource
    width: int = 0
    height: int = 0
    format: Optional[str] = None
    image: Optional[Any] = field(default=None, repr=False, compare=False)

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)
