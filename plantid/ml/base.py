"""
Base class and contract for species classifiers.

All classifiers inherit from BaseSpeciesClassifier so the pipeline can
swap the reference implementation for a real model without changes.

Contract enforced here for every implementation:
1. classify() before readiness raises ClassifierUnavailable
2. Any internal failure surfaces as ClassifierError
3. Results are non-empty, at most top_k long, sorted by confidence
   descending, every confidence in [0, 1]
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
import logging
import time

from plantid.core.errors import ClassifierError, ClassifierUnavailable
from plantid.models.domain import ImageHandle, Prediction

logger = logging.getLogger(__name__)


@dataclass
class ModelInfo:
    """Information about a loaded model."""
    name: str
    version: str
    architecture: str
    num_classes: int
    class_names: list[str]
    top_k: int
    loaded_at: float = field(default_factory=time.time)


def validate_predictions(predictions: list[Prediction], top_k: int) -> list[Prediction]:
    """
    Check a classifier output against the ranking contract.

    Raises:
        ClassifierError: If the output is empty, too long, or not sorted
    """
    if not predictions:
        raise ClassifierError("Classifier returned no predictions")
    if len(predictions) > top_k:
        raise ClassifierError(
            f"Classifier returned {len(predictions)} predictions, expected at most {top_k}"
        )
    for pred in predictions:
        if not isinstance(pred, Prediction):
            raise ClassifierError(f"Unexpected prediction type: {type(pred).__name__}")
    for higher, lower in zip(predictions, predictions[1:]):
        if lower.confidence > higher.confidence:
            raise ClassifierError("Predictions are not sorted by confidence")
    return predictions


class BaseSpeciesClassifier(ABC):
    """
    Abstract base class for species classifiers.

    Subclasses must implement:
        - load_model(): Prepare the model for inference
        - _predict(): Produce ranked predictions for one image
        - get_model_info(): Return information about the loaded model
    """

    def __init__(self, top_k: int = 3):
        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self.top_k = top_k
        self._is_loaded = False
        self._model_info: Optional[ModelInfo] = None

    @abstractmethod
    def load_model(self) -> None:
        """Load the model and populate self._model_info."""
        pass

    @abstractmethod
    def _predict(self, image: ImageHandle) -> list[Prediction]:
        """Run inference on one image. Called only once loaded."""
        pass

    @abstractmethod
    def get_model_info(self) -> ModelInfo:
        """Return information about the loaded model."""
        pass

    @property
    def is_loaded(self) -> bool:
        """Check if model is loaded and ready for inference."""
        return self._is_loaded

    def ensure_loaded(self) -> None:
        """Ensure model is loaded, loading if necessary."""
        if not self._is_loaded:
            logger.info(f"Loading model: {self.__class__.__name__}")
            self.load_model()
            self._is_loaded = True

    def classify(self, image: ImageHandle) -> list[Prediction]:
        """
        Classify one image.

        Args:
            image: Handle produced by a capture source

        Returns:
            Predictions sorted by confidence, best first

        Raises:
            ClassifierUnavailable: If called before the model is loaded
            ClassifierError: On any internal failure
        """
        if not self._is_loaded:
            raise ClassifierUnavailable()

        start = time.perf_counter()
        try:
            predictions = list(self._predict(image))
        except ClassifierError:
            raise
        except Exception as e:
            logger.error(f"{self.__class__.__name__} failed: {e}")
            raise ClassifierError(f"Classifier failed: {e}") from e

        validate_predictions(predictions, self.top_k)
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Classified {image.uri} in {elapsed:.2f}ms: "
            f"{predictions[0].species_label} ({predictions[0].confidence:.3f})"
        )
        return predictions
