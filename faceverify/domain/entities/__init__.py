"""Domain entities package."""
from .face import AlignedFace, BoundingBox, Embedding, FaceRegion, Landmark, NormalizedTensor, PixelBuffer

__all__ = [
    "AlignedFace",
    "BoundingBox",
    "Embedding",
    "FaceRegion",
    "Landmark",
    "NormalizedTensor",
    "PixelBuffer",
]
