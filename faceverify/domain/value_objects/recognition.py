"""Face verification and search value objects."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from faceverify.domain.entities.face import Embedding, FaceRegion


class RepresentMode(str, Enum):
    """Which faces ``represent`` returns embeddings for."""
    ALL = "all"
    TOP = "top"


class FindMode(str, Enum):
    """Whether ``find`` filters matches by the model threshold."""
    VERIFIED = "verified"
    RANKED = "ranked"


class VerificationResult(BaseModel):
    """Result of comparing two embeddings."""
    distance: float = Field(..., description="Distance between the two embeddings")
    threshold: float = Field(..., description="Model threshold the distance was judged against")
    verified: bool = Field(..., description="Whether distance <= threshold")
    model_name: str = Field(..., description="Recognition model both embeddings came from")
    metric: str = Field(..., description="Distance metric used")

    model_config = ConfigDict(protected_namespaces=())


class FaceMatch(BaseModel):
    """One entry of a ranked search result."""
    label: str = Field(..., description="Identity label of the matched entry")
    distance: float = Field(..., description="Distance between query and entry")
    threshold: float = Field(..., description="Model threshold")
    verified: bool = Field(..., description="Whether the entry is within the threshold")
    source: Optional[str] = Field(None, description="Reference image of the matched entry")


class IndexEntry(BaseModel):
    """Identity stored in the search index."""
    label: str
    embedding: Embedding
    source: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def model_name(self) -> str:
        return self.embedding.model_name


class SkippedItem(BaseModel):
    """Reference image that could not be indexed."""
    source: str = Field(..., description="Path of the skipped image")
    error_type: str = Field(..., description="Exception class that caused the skip")
    reason: str = Field(..., description="Error message")


class IndexBuildResult(BaseModel):
    """Entries built from a directory plus the items that were skipped."""
    entries: List[IndexEntry] = Field(default_factory=list)
    skipped: List[SkippedItem] = Field(default_factory=list)
    cancelled: bool = False


class RepresentedFace(BaseModel):
    """Embedding of one detected face together with its detection."""
    embedding: Embedding
    region: FaceRegion


class RepresentResult(BaseModel):
    """Embeddings for the faces found in one image."""
    faces: List[RepresentedFace] = Field(..., description="Faces in detection rank order")
    source: Optional[str] = Field(None, description="Reference of the input image")


class SearchResult(BaseModel):
    """Result of a find operation."""
    query: RepresentedFace = Field(..., description="Face that was searched for")
    matches: List[FaceMatch] = Field(..., description="Matches in non-decreasing distance order")
    mode: FindMode
