"""Value objects package."""
from .recognition import (
    FaceMatch,
    FindMode,
    IndexBuildResult,
    IndexEntry,
    RepresentedFace,
    RepresentMode,
    RepresentResult,
    SearchResult,
    SkippedItem,
    VerificationResult,
)

__all__ = [
    "FaceMatch",
    "FindMode",
    "IndexBuildResult",
    "IndexEntry",
    "RepresentedFace",
    "RepresentMode",
    "RepresentResult",
    "SearchResult",
    "SkippedItem",
    "VerificationResult",
]
