"""In-memory search index over labelled embeddings."""
import threading
from typing import Iterable, List, Optional, Tuple, Union

from faceverify.core.config import settings
from faceverify.core.exceptions import IncomparableEmbeddingsError
from faceverify.core.logging import get_logger
from faceverify.domain.entities.face import Embedding
from faceverify.domain.interfaces.storage.embedding_store import EmbeddingStore
from faceverify.domain.value_objects.recognition import FaceMatch, FindMode, IndexEntry
from faceverify.services.matching import FaceMatcher

logger = get_logger(__name__)


class SearchIndex:
    """
    Brute-force nearest-neighbour index.

    Entries are held in an immutable tuple snapshot. ``replace`` swaps in a new
    snapshot; a query reads the snapshot reference once at its start, so
    rebuilds never disturb queries already in flight.
    """

    def __init__(self, matcher: FaceMatcher, entries: Iterable[IndexEntry] = ()) -> None:
        self.matcher = matcher
        self._entries: Tuple[IndexEntry, ...] = tuple(entries)
        self._write_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[IndexEntry, ...]:
        return self._entries

    def replace(self, entries: Iterable[IndexEntry]) -> None:
        """Atomically replace every entry of the index."""
        snapshot = tuple(entries)
        with self._write_lock:
            self._entries = snapshot
        logger.info("Search index replaced", entries=len(snapshot))

    def load_from_store(self, store: EmbeddingStore) -> int:
        """Rebuild the index from every embedding in ``store``.

        Returns:
            Number of entries loaded

        Raises:
            EmbeddingStoreError: If the store cannot be read
        """
        entries = [
            IndexEntry(label=item.label, embedding=item.embedding, source=item.source)
            for item in store.list()
        ]
        self.replace(entries)
        return len(entries)

    def find(
        self,
        query: Embedding,
        model_name: Optional[str] = None,
        mode: Union[FindMode, str] = FindMode.VERIFIED,
        top_k: Optional[int] = None,
    ) -> List[FaceMatch]:
        """
        Rank the entries of the query's model by distance to the query.

        Args:
            query: Embedding to search for
            model_name: Model the caller expects to search; must match the query tag
            mode: ``verified`` drops entries above the model threshold,
                ``ranked`` keeps every entry
            top_k: Maximum number of matches (defaults to MAX_MATCHES, 0 for no limit)

        Returns:
            Matches in non-decreasing distance order, ties broken by label

        Raises:
            IncomparableEmbeddingsError: If ``model_name`` differs from the query's model
        """
        if model_name is not None and model_name != query.model_name:
            raise IncomparableEmbeddingsError(
                f"Query embedding is from {query.model_name}, not {model_name}",
                details={"query_model": query.model_name, "requested_model": model_name},
            )

        mode = FindMode(mode)
        top_k = settings.MAX_MATCHES if top_k is None else top_k
        snapshot = self._entries
        threshold = self.matcher.threshold_for(query.model_name)

        matches: List[FaceMatch] = []
        for entry in snapshot:
            if entry.model_name != query.model_name:
                continue
            distance = self.matcher.distance(query, entry.embedding)
            verified = distance <= threshold
            if mode is FindMode.VERIFIED and not verified:
                continue
            matches.append(FaceMatch(
                label=entry.label,
                distance=distance,
                threshold=threshold,
                verified=verified,
                source=entry.source,
            ))

        matches.sort(key=lambda match: (match.distance, match.label))
        if top_k > 0:
            matches = matches[:top_k]

        logger.debug(
            "Index search complete",
            model=query.model_name,
            scanned=len(snapshot),
            matches=len(matches),
            mode=mode.value,
        )
        return matches
