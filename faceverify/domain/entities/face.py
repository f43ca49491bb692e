"""Core face domain entities."""
from typing import List, Literal, Optional, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

LANDMARK_NAMES = ("left_eye", "right_eye", "nose", "mouth_left", "mouth_right")


def _read_only(array: np.ndarray) -> np.ndarray:
    """Return ``array`` with its writeable flag cleared."""
    array.flags.writeable = False
    return array


class PixelBuffer(BaseModel):
    """Decoded image held as a read-only (height, width, channels) uint8 array."""
    pixels: np.ndarray = Field(..., description="Row-major pixel data")
    channel_order: Literal["bgr", "rgb"] = Field("bgr", description="Order of the colour channels")
    source: Optional[str] = Field(None, description="Reference of the image the pixels came from")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("pixels")
    @classmethod
    def validate_pixels(cls, v: np.ndarray) -> np.ndarray:
        """Require a 2D or 3D uint8 array and freeze a private copy of it."""
        if not isinstance(v, np.ndarray):
            raise ValueError("pixels must be a numpy array")
        if v.ndim == 2:
            v = v[:, :, np.newaxis]
        if v.ndim != 3 or v.size == 0:
            raise ValueError(f"pixels must have shape (height, width, channels), got {v.shape}")
        if v.dtype != np.uint8:
            raise ValueError(f"pixels must be uint8, got {v.dtype}")
        return _read_only(np.ascontiguousarray(v).copy())

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])


class Landmark(BaseModel):
    """Named anatomical point in source-image pixel coordinates."""
    name: str = Field(..., description="One of left_eye, right_eye, nose, mouth_left, mouth_right")
    x: float
    y: float

    model_config = ConfigDict(frozen=True)


class BoundingBox(BaseModel):
    """Face bounding box in pixel coordinates."""
    x: float = Field(..., description="Left coordinate of the bounding box")
    y: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., ge=0, description="Width of the bounding box")
    height: float = Field(..., ge=0, description="Height of the bounding box")

    model_config = ConfigDict(frozen=True)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def clip(self, image_width: int, image_height: int) -> "BoundingBox":
        """Return the part of this box that lies inside an image of the given size."""
        x1 = min(max(self.x, 0.0), float(image_width))
        y1 = min(max(self.y, 0.0), float(image_height))
        x2 = min(max(self.x + self.width, 0.0), float(image_width))
        y2 = min(max(self.y + self.height, 0.0), float(image_height))
        return BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


class FaceRegion(BaseModel):
    """Detected face: bounding box, landmarks and detection confidence."""
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    landmarks: List[Landmark] = Field(default_factory=list, description="Landmarks in canonical order")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score of the detection")

    model_config = ConfigDict(frozen=True)

    def landmark(self, name: str) -> Optional[Landmark]:
        """Return the landmark called ``name`` or None when the detector did not produce it."""
        for point in self.landmarks:
            if point.name == name:
                return point
        return None


class AlignedFace(BaseModel):
    """Face crop rotated upright and resized to the model's canonical size."""
    buffer: PixelBuffer
    model_name: str = Field(..., description="Model whose canonical size the crop matches")
    rotation_degrees: float = Field(0.0, description="Rotation applied to level the eyes, 0 when skipped")
    region: FaceRegion = Field(..., description="Detection the crop was taken from")

    model_config = ConfigDict(frozen=True, protected_namespaces=())


class NormalizedTensor(BaseModel):
    """Model-ready float32 tensor for a single face."""
    data: np.ndarray
    model_name: str

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, protected_namespaces=())

    @field_validator("data", mode="before")
    @classmethod
    def validate_data(cls, v: np.ndarray) -> np.ndarray:
        return _read_only(np.array(v, dtype=np.float32, copy=True, order="C"))


class Embedding(BaseModel):
    """Identity vector, comparable only with vectors of the same model."""
    vector: np.ndarray = Field(..., description="Face embedding vector")
    model_name: str = Field(..., description="Recognition model that produced the vector")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, protected_namespaces=())

    @field_validator("vector", mode="before")
    @classmethod
    def validate_vector(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Validate and convert the vector to a read-only 1D float32 array."""
        array = np.asarray(v, dtype=np.float32).reshape(-1)
        if array.size == 0:
            raise ValueError("embedding vector must not be empty")
        return _read_only(array.copy())

    @field_serializer("vector")
    def serialize_vector(self, vector: np.ndarray) -> List[float]:
        return vector.tolist()

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])
