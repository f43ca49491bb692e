"""Embedding comparison with model-specific metrics and thresholds."""
from typing import Callable, Dict, Optional

import numpy as np

from faceverify.core.config import settings
from faceverify.core.exceptions import ConfigurationError, IncomparableEmbeddingsError, ShapeMismatchError
from faceverify.core.profiles import ModelProfile, get_profile
from faceverify.domain.entities.face import Embedding
from faceverify.domain.value_objects.recognition import VerificationResult


# np.sum over elementwise products keeps every metric exactly symmetric in its arguments
def _norm(vector: np.ndarray) -> float:
    return float(np.sqrt(np.sum(vector * vector)))


def _l2_normalize(vector: np.ndarray) -> np.ndarray:
    norm = _norm(vector)
    if norm == 0:
        return vector
    return vector / norm


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    denominator = _norm(a) * _norm(b)
    if denominator == 0:
        return 1.0
    return 1.0 - float(np.sum(a * b)) / denominator


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    return _norm(a - b)


def euclidean_l2_distance(a: np.ndarray, b: np.ndarray) -> float:
    return euclidean_distance(_l2_normalize(a), _l2_normalize(b))


METRICS: Dict[str, Callable[[np.ndarray, np.ndarray], float]] = {
    "cosine": cosine_distance,
    "euclidean": euclidean_distance,
    "euclidean_l2": euclidean_l2_distance,
}


class FaceMatcher:
    """
    Compares embeddings and applies the model's calibrated threshold.

    Distances are computed in float64 and clamped at zero, so comparing an
    embedding with itself gives exactly 0 and argument order never matters.
    """

    def __init__(self, metric: Optional[str] = None, profiles: Optional[Dict[str, ModelProfile]] = None) -> None:
        self.metric = metric or settings.DISTANCE_METRIC
        if self.metric not in METRICS:
            raise ConfigurationError(
                f"Unsupported distance metric: {self.metric}",
                details={"metric": self.metric, "available": sorted(METRICS)},
            )
        self._distance = METRICS[self.metric]
        self._profiles = dict(profiles or {})

    def profile_for(self, model_name: str) -> ModelProfile:
        if model_name not in self._profiles:
            self._profiles[model_name] = get_profile(model_name)
        return self._profiles[model_name]

    def threshold_for(self, model_name: str) -> float:
        return self.profile_for(model_name).threshold_for(self.metric)

    def distance(self, a: Embedding, b: Embedding) -> float:
        """
        Distance between two embeddings of the same model.

        Raises:
            IncomparableEmbeddingsError: If the embeddings carry different model tags
            ShapeMismatchError: If the vectors differ in length
        """
        if a.model_name != b.model_name:
            raise IncomparableEmbeddingsError(
                f"Cannot compare {a.model_name} embedding with {b.model_name} embedding",
                details={"models": sorted({a.model_name, b.model_name})},
            )
        if a.dimension != b.dimension:
            raise ShapeMismatchError(
                "Embeddings of the same model differ in length",
                details={"model": a.model_name, "dimensions": sorted({a.dimension, b.dimension})},
            )
        value = self._distance(a.vector.astype(np.float64), b.vector.astype(np.float64))
        return max(0.0, value)

    def compare(self, a: Embedding, b: Embedding) -> VerificationResult:
        """
        Decide whether two embeddings belong to the same identity.

        Raises:
            IncomparableEmbeddingsError: If the embeddings carry different model tags
            ConfigurationError: If the model has no threshold for the configured metric
        """
        distance = self.distance(a, b)
        threshold = self.threshold_for(a.model_name)
        return VerificationResult(
            distance=distance,
            threshold=threshold,
            verified=distance <= threshold,
            model_name=a.model_name,
            metric=self.metric,
        )
