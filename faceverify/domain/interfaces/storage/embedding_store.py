"""Embedding store interface."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from faceverify.domain.entities.face import Embedding


class StoredEmbedding(BaseModel):
    """Labelled embedding kept by an embedding store."""
    label: str = Field(..., description="Identity label, not required to be unique")
    embedding: Embedding = Field(..., description="Stored embedding with its model tag")
    source: Optional[str] = Field(None, description="Reference image the embedding came from")
    created_at: Optional[datetime] = Field(None, description="When the embedding was stored")


class EmbeddingStore(ABC):
    """Interface for a pluggable label -> embedding collection."""

    @abstractmethod
    def list(self) -> List[StoredEmbedding]:
        """
        Return every stored embedding in insertion order.

        Raises:
            EmbeddingStoreError: If the store cannot be read
        """
        pass

    @abstractmethod
    def append(self, label: str, embedding: Embedding, source: Optional[str] = None) -> None:
        """
        Add one labelled embedding.

        Args:
            label: Identity label
            embedding: Embedding to store
            source: Optional reference image

        Raises:
            EmbeddingStoreError: If the write fails
        """
        pass
