# ML module initialization
from plantid.ml.base import BaseSpeciesClassifier, ModelInfo, validate_predictions
from plantid.ml.species_classifier import SimulatedSpeciesClassifier

__all__ = [
    "BaseSpeciesClassifier",
    "ModelInfo",
    "validate_predictions",
    "SimulatedSpeciesClassifier",
]
