"""Recognition model profiles.

Every model-specific constant the pipeline needs lives here as data: the
canonical input size, the pixel normalization, the channel order and tensor
layout the network was trained with, the embedding length and the calibrated
decision threshold for each distance metric. Supporting a new model means
adding a profile, either below or in the JSON file named by
``MODEL_PROFILES_FILE``.

Thresholds follow the values published for each model family (cosine,
euclidean and euclidean_l2 distances).
"""
import json
from pathlib import Path
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from faceverify.core.config import settings
from faceverify.core.exceptions import ConfigurationError

DistanceMetric = Literal["cosine", "euclidean", "euclidean_l2"]


class ModelProfile(BaseModel):
    """Configuration record for one recognition model."""
    name: str = Field(..., description="Model identifier carried by every embedding it produces")
    model_file: str = Field(..., description="Model path relative to MODEL_CACHE_DIR")
    embedding_dim: int = Field(..., gt=0, description="Length of the embedding vector")
    input_size: Tuple[int, int] = Field(..., description="Canonical (width, height) of the face crop")
    mean: Tuple[float, float, float] = Field((127.5, 127.5, 127.5), description="Per-channel mean")
    std: Tuple[float, float, float] = Field((127.5, 127.5, 127.5), description="Per-channel scale")
    input_color_order: Literal["rgb", "bgr"] = Field("rgb", description="Channel order the model expects")
    layout: Literal["nchw", "nhwc"] = Field("nchw", description="Tensor layout the model expects")
    normalize_embedding: bool = Field(False, description="L2-normalize the raw model output")
    thresholds: Dict[str, float] = Field(..., description="Decision threshold per distance metric")

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    def threshold_for(self, metric: str) -> float:
        """Return the calibrated threshold for ``metric``.

        Raises:
            ConfigurationError: If the profile has no threshold for the metric
        """
        try:
            return self.thresholds[metric]
        except KeyError:
            raise ConfigurationError(
                f"Model {self.name} has no calibrated threshold for metric {metric}",
                details={"model": self.name, "metric": metric},
            )


DEFAULT_PROFILES: Dict[str, ModelProfile] = {
    profile.name: profile
    for profile in (
        ModelProfile(
            name="ArcFace",
            model_file="buffalo_l/w600k_r50.onnx",
            embedding_dim=512,
            input_size=(112, 112),
            thresholds={"cosine": 0.68, "euclidean": 4.15, "euclidean_l2": 1.13},
        ),
        ModelProfile(
            name="Facenet",
            model_file="facenet/facenet128.onnx",
            embedding_dim=128,
            input_size=(160, 160),
            std=(128.0, 128.0, 128.0),
            thresholds={"cosine": 0.40, "euclidean": 10.0, "euclidean_l2": 0.80},
        ),
        ModelProfile(
            name="Facenet512",
            model_file="facenet/facenet512.onnx",
            embedding_dim=512,
            input_size=(160, 160),
            std=(128.0, 128.0, 128.0),
            thresholds={"cosine": 0.30, "euclidean": 23.56, "euclidean_l2": 1.04},
        ),
    )
}


def load_profiles(profiles_file: Optional[str] = None) -> Dict[str, ModelProfile]:
    """Return the built-in profiles merged with those defined in ``profiles_file``.

    The file holds a JSON list of profile objects; a profile whose name matches
    a built-in one replaces it.

    Raises:
        ConfigurationError: If the file cannot be read or a profile is invalid
    """
    profiles = dict(DEFAULT_PROFILES)
    if not profiles_file:
        return profiles

    path = Path(profiles_file)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        for item in raw:
            profile = ModelProfile.model_validate(item)
            profiles[profile.name] = profile
    except (OSError, ValueError, TypeError, ValidationError) as e:
        raise ConfigurationError(
            f"Failed to load model profiles from {path}: {e}",
            details={"path": str(path)},
        )
    return profiles


def get_profile(name: Optional[str] = None, profiles_file: Optional[str] = None) -> ModelProfile:
    """Look up a model profile by name, defaulting to ``RECOGNITION_MODEL``."""
    name = name or settings.RECOGNITION_MODEL
    profiles = load_profiles(profiles_file or settings.MODEL_PROFILES_FILE)
    if name not in profiles:
        raise ConfigurationError(
            f"Unknown recognition model: {name}",
            details={"model": name, "available": sorted(profiles)},
        )
    return profiles[name]
