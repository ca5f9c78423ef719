"""
Species Classifier Module

Reference species classifier used until a real model is plugged in.

It does not look at pixels. It synthesizes a result with the same shape a
trained top-k softmax head would produce:

- one dominant prediction (confidence 0.85-0.95)
- K-1 secondary predictions in strictly lower, non-overlapping bands
- secondary labels taken cyclically after the dominant label

Because the bands never overlap, the ranking invariant holds by
construction. Randomness comes from a numpy Generator so a fixed seed
gives reproducible runs.
"""

import logging
import time
from typing import Optional, Sequence

import numpy as np

from plantid.core.config import CONFIDENCE_BANDS, SPECIES_NAMES
from plantid.ml.base import BaseSpeciesClassifier, ModelInfo
from plantid.models.domain import ImageHandle, Prediction

logger = logging.getLogger(__name__)


class SimulatedSpeciesClassifier(BaseSpeciesClassifier):
    """
    Stand-in classifier satisfying the full classifier contract.

    Usage:
        classifier = SimulatedSpeciesClassifier(seed=7)
        classifier.ensure_loaded()
        predictions = classifier.classify(handle)
    """

    VERSION = "0.1.0-simulated"

    def __init__(
        self,
        labels: Optional[Sequence[str]] = None,
        top_k: int = 3,
        seed: Optional[int] = None,
        load_delay_seconds: float = 0.0,
    ):
        """
        Initialize the classifier.

        Args:
            labels: Label set; defaults to SPECIES_NAMES
            top_k: Number of predictions to return (1-3)
            seed: Seed for the random generator
            load_delay_seconds: Simulated model load time
        """
        if top_k > len(CONFIDENCE_BANDS):
            raise ValueError(f"top_k must be at most {len(CONFIDENCE_BANDS)}")
        super().__init__(top_k=top_k)
        self.labels = list(labels or SPECIES_NAMES)
        if len(self.labels) < top_k:
            raise ValueError("Label set is smaller than top_k")
        self.seed = seed
        self.load_delay_seconds = load_delay_seconds
        self._rng = np.random.default_rng(seed)

    def load_model(self) -> None:
        """Simulate loading model weights."""
        if self.load_delay_seconds:
            time.sleep(self.load_delay_seconds)
        self._model_info = ModelInfo(
            name="simulated_species_classifier",
            version=self.VERSION,
            architecture="synthetic-top-k",
            num_classes=len(self.labels),
            class_names=self.labels,
            top_k=self.top_k,
        )
        logger.info(f"Simulated classifier ready ({len(self.labels)} classes)")

    def _predict(self, image: ImageHandle) -> list[Prediction]:
        n = len(self.labels)
        index = int(self._rng.integers(n))

        predictions = []
        for rank in range(self.top_k):
            low, high = CONFIDENCE_BANDS[rank]
            confidence = float(self._rng.uniform(low, high))
            predictions.append(
                Prediction(species_label=self.labels[(index + rank) % n], confidence=confidence)
            )
        return predictions

    def get_model_info(self) -> ModelInfo:
        """Get model information."""
        if self._model_info is None:
            self.ensure_loaded()
        return self._model_info
