"""
Error taxonomy for the identification core.

Every error carries a short, user-facing ``message``; the API layer turns
these into JSON error bodies and the screen model shows them in place.
"""

from typing import Optional


class PlantIdError(Exception):
    """Base class for all errors raised by the core."""

    code: str = "plant_id_error"
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# === Capture ===

class CaptureError(PlantIdError):
    """The capture collaborator could not produce an image."""
    code = "capture_error"
    default_message = "Failed to capture image"


# === Classifier ===

class ClassifierUnavailable(PlantIdError):
    """Classifier invoked before it reported readiness."""
    code = "classifier_unavailable"
    default_message = "Classifier is not ready"


class ClassifierError(PlantIdError):
    """Internal classifier failure, including contract violations."""
    code = "classifier_error"
    default_message = "Classifier failed"


class ClassificationError(PlantIdError):
    """A pipeline run could not obtain predictions."""
    code = "classification_error"
    default_message = "Failed to identify the plant"


# === Storage ===

class StorageError(PlantIdError):
    code = "storage_error"
    default_message = "Storage operation failed"


class StorageWriteError(StorageError):
    code = "storage_write_error"
    default_message = "Failed to write to history"


class StorageReadError(StorageError):
    code = "storage_read_error"
    default_message = "Failed to load history"


class PersistenceError(PlantIdError):
    """A pipeline run classified the image but could not save the result."""
    code = "persistence_error"
    default_message = "Identification was not saved to history"


# === Pipeline / screens ===

class PipelineBusy(PlantIdError):
    """An identification is already in progress."""
    code = "pipeline_busy"
    default_message = "An identification is already in progress"


class InvalidRunTransition(PlantIdError):
    code = "invalid_run_transition"
    default_message = "Illegal pipeline run transition"


class ScreenTransitionError(PlantIdError):
    code = "screen_transition_error"
    default_message = "That screen is not available right now"


# === Startup ===

class InitializationError(PlantIdError):
    """
    A startup step failed.

    Attributes:
        step: The initialization step that failed (an ``InitStep`` value)
    """
    code = "initialization_error"
    default_message = "Failed to initialize app"

    def __init__(self, step, message: Optional[str] = None):
        self.step = step
        super().__init__(message)

    def __str__(self) -> str:
        step = getattr(self.step, "value", self.step)
        return f"{step}: {self.message}"
