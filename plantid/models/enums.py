"""
Enumerations for the plant identification core.

These enums name every state the pipeline and screen model can be in;
transitions are validated against them rather than against ad-hoc flags.
"""

from enum import Enum


class RunStatus(str, Enum):
    """Lifecycle of a single capture→classify→persist run."""
    IDLE = "idle"
    CAPTURING = "capturing"
    CLASSIFYING = "classifying"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (RunStatus.CAPTURING, RunStatus.CLASSIFYING, RunStatus.PERSISTING)

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.DONE, RunStatus.FAILED)


class ScreenState(str, Enum):
    """Screens the presentation layer can show."""
    CAPTURE = "capture"
    RESULTS = "results"
    HISTORY = "history"


class AcquisitionSource(str, Enum):
    """Where an image came from. Both are equivalent to the pipeline."""
    CAMERA = "camera"
    GALLERY = "gallery"


class InitStep(str, Enum):
    """Startup steps, in execution order."""
    CAPTURE_PERMISSION = "capture_permission"
    STORAGE_SCHEMA = "storage_schema"
    CLASSIFIER_READINESS = "classifier_readiness"


class ConfidenceLevel(str, Enum):
    """Human-readable confidence levels for display."""
    VERY_HIGH = "very_high"      # >= 0.95
    HIGH = "high"                # >= 0.85
    MODERATE = "moderate"        # >= 0.70
    LOW = "low"                  # >= 0.50
    VERY_LOW = "very_low"        # < 0.50

    @classmethod
    def from_score(cls, score: float) -> "ConfidenceLevel":
        """Convert a numeric confidence score to a level."""
        if score >= 0.95:
            return cls.VERY_HIGH
        elif score >= 0.85:
            return cls.HIGH
        elif score >= 0.70:
            return cls.MODERATE
        elif score >= 0.50:
            return cls.LOW
        else:
            return cls.VERY_LOW
