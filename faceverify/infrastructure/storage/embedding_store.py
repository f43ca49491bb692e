"""Embedding store implementations.

``JsonLinesEmbeddingStore`` keeps one JSON record per line so that appends
never rewrite the file; ``InMemoryEmbeddingStore`` backs short-lived sessions.
"""
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from faceverify.core.config import settings
from faceverify.core.exceptions import EmbeddingStoreError
from faceverify.core.logging import get_logger
from faceverify.domain.entities.face import Embedding
from faceverify.domain.interfaces.storage.embedding_store import EmbeddingStore, StoredEmbedding

logger = get_logger(__name__)


class EmbeddingRecord(BaseModel):
    """On-disk representation of a stored embedding.

    Attributes:
        label: Identity label
        model_name: Recognition model the vector came from
        vector: Embedding values
        source: Reference image, if known
        created_at: ISO format timestamp of when the embedding was stored
    """
    label: str
    model_name: str
    vector: List[float]
    source: Optional[str] = None
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    model_config = ConfigDict(protected_namespaces=())

    @classmethod
    def from_embedding(cls, label: str, embedding: Embedding, source: Optional[str] = None) -> "EmbeddingRecord":
        return cls(
            label=label,
            model_name=embedding.model_name,
            vector=embedding.vector.tolist(),
            source=source,
        )

    def to_stored(self) -> StoredEmbedding:
        return StoredEmbedding(
            label=self.label,
            embedding=Embedding(vector=self.vector, model_name=self.model_name),
            source=self.source,
            created_at=datetime.fromisoformat(self.created_at),
        )


class JsonLinesEmbeddingStore(EmbeddingStore):
    """File-backed embedding store using the JSON Lines format."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or settings.EMBEDDING_STORE_PATH)
        self._lock = threading.Lock()

    def list(self) -> List[StoredEmbedding]:
        if not self.path.exists():
            return []

        stored: List[StoredEmbedding] = []
        try:
            with self._lock, self.path.open("r", encoding="utf-8") as f:
                for line_number, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        stored.append(EmbeddingRecord.model_validate_json(line).to_stored())
                    except (ValidationError, ValueError) as e:
                        raise EmbeddingStoreError(
                            f"Corrupt embedding record at line {line_number}: {e}",
                            details={"path": str(self.path), "line": line_number},
                        )
        except OSError as e:
            raise EmbeddingStoreError(
                f"Failed to read embedding store: {e}",
                details={"path": str(self.path)},
            )

        logger.debug("Loaded embeddings", path=str(self.path), count=len(stored))
        return stored

    def append(self, label: str, embedding: Embedding, source: Optional[str] = None) -> None:
        record = EmbeddingRecord.from_embedding(label, embedding, source)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(record.model_dump_json() + "\n")
        except OSError as e:
            logger.error(
                "Failed to store embedding",
                error=str(e),
                label=label,
                path=str(self.path),
            )
            raise EmbeddingStoreError(
                f"Failed to store embedding: {e}",
                details={"path": str(self.path), "label": label},
            )

        logger.debug("Stored embedding", label=label, model=embedding.model_name, source=source)


class InMemoryEmbeddingStore(EmbeddingStore):
    """Embedding store that lives only as long as the process."""

    def __init__(self) -> None:
        self._items: List[StoredEmbedding] = []
        self._lock = threading.Lock()

    def list(self) -> List[StoredEmbedding]:
        with self._lock:
            return list(self._items)

    def append(self, label: str, embedding: Embedding, source: Optional[str] = None) -> None:
        with self._lock:
            self._items.append(StoredEmbedding(
                label=label,
                embedding=embedding,
                source=source,
                created_at=datetime.now(timezone.utc),
            ))
