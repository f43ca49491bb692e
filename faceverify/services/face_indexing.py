"""Face indexing service for building the search index from reference images."""
import asyncio
from collections import Counter
from pathlib import Path
from typing import List, Optional, Tuple, Union

from faceverify.core.concurrency import CancellationToken, check_cancelled, run_blocking
from faceverify.core.config import settings
from faceverify.core.exceptions import ConfigurationError, FaceRecognitionError
from faceverify.core.logging import get_logger
from faceverify.core.utils.image import SUPPORTED_EXTENSIONS
from faceverify.domain.interfaces.storage.embedding_store import EmbeddingStore
from faceverify.domain.value_objects.recognition import (
    IndexBuildResult,
    IndexEntry,
    RepresentMode,
    SkippedItem,
)
from faceverify.services.pipeline import FacePipeline
from faceverify.services.search_index import SearchIndex

logger = get_logger(__name__)


class FaceIndexingService:
    """Service for indexing a directory of reference images.

    Every image is run through the pipeline with a bounded number of images
    in flight. An image that fails (corrupt file, no face, timeout...) becomes
    a skip record and the rest of the batch carries on.

    Example:
        ```python
        service = FaceIndexingService(pipeline, index, JsonLinesEmbeddingStore())
        result = await service.build_from_directory("photos/people")
        print(len(result.entries), [item.source for item in result.skipped])
        ```
    """

    def __init__(
        self,
        pipeline: FacePipeline,
        index: SearchIndex,
        store: EmbeddingStore,
        max_concurrency: Optional[int] = None,
        index_all_faces: Optional[bool] = None,
    ) -> None:
        """Initialize the face indexing service.

        Args:
            pipeline: Pipeline used to embed every reference image
            index: Index that receives the new snapshot
            store: Store the entries are persisted to
            max_concurrency: Maximum number of images processed at once
            index_all_faces: Index every detected face instead of only the top-ranked one
        """
        self.pipeline = pipeline
        self.index = index
        self.store = store
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENCY
        self.index_all_faces = settings.INDEX_ALL_FACES if index_all_faces is None else index_all_faces

    @staticmethod
    def label_for(root: Path, path: Path) -> str:
        """Identity label of ``path``: its folder relative to ``root``, or its stem for top-level files."""
        relative = path.relative_to(root)
        if len(relative.parts) > 1:
            return relative.parent.as_posix()
        return path.stem

    @classmethod
    def discover_images(cls, root: Union[str, Path]) -> List[Tuple[str, Path]]:
        """List ``(label, path)`` for every supported image under ``root``, sorted by path.

        Raises:
            ConfigurationError: If ``root`` is not a directory
        """
        root = Path(root)
        if not root.is_dir():
            raise ConfigurationError(
                f"Reference directory not found: {root}",
                details={"path": str(root)},
            )
        paths = sorted(
            p for p in root.rglob("*")
            if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
        )
        return [(cls.label_for(root, p), p) for p in paths]

    async def build_from_directory(
        self,
        path: Union[str, Path],
        persist: bool = True,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> IndexBuildResult:
        """Embed every reference image under ``path`` and swap the result into the index.

        Args:
            path: Directory of reference images
            persist: Append entries the embedding store does not hold yet
            cancel_token: Stops the build from starting new images
            timeout: Per-stage bound for decode and inference calls

        Returns:
            IndexBuildResult with the entries in path order and one skip
            record per failed or unprocessed image

        Raises:
            ConfigurationError: If ``path`` is not a directory
            EmbeddingStoreError: If persisting the entries fails
        """
        images = self.discover_images(path)
        logger.info(
            "Indexing reference images",
            path=str(path),
            images=len(images),
            max_concurrency=self.max_concurrency,
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(*(
            self._index_image(label, image_path, semaphore, cancel_token, timeout)
            for label, image_path in images
        ))

        entries: List[IndexEntry] = []
        skipped: List[SkippedItem] = []
        for outcome in outcomes:
            if isinstance(outcome, SkippedItem):
                skipped.append(outcome)
            else:
                entries.extend(outcome)

        cancelled = cancel_token is not None and cancel_token.cancelled
        if persist and entries:
            await run_blocking(self._persist, entries, stage="persist")
        self.index.replace(entries)

        logger.info(
            "Index build complete",
            path=str(path),
            entries=len(entries),
            skipped=len(skipped),
            cancelled=cancelled,
        )
        return IndexBuildResult(entries=entries, skipped=skipped, cancelled=cancelled)

    async def _index_image(
        self,
        label: str,
        image_path: Path,
        semaphore: asyncio.Semaphore,
        cancel_token: Optional[CancellationToken],
        timeout: Optional[float],
    ) -> Union[List[IndexEntry], SkippedItem]:
        source = str(image_path)
        async with semaphore:
            try:
                check_cancelled(cancel_token, "decode")
                result = await self.pipeline.extract_faces(
                    image_path,
                    mode=RepresentMode.ALL if self.index_all_faces else RepresentMode.TOP,
                    cancel_token=cancel_token,
                    timeout=timeout,
                )
            except FaceRecognitionError as e:
                logger.warning(
                    "Skipping reference image",
                    source=source,
                    label=label,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return SkippedItem(source=source, error_type=type(e).__name__, reason=str(e))

        logger.info("Indexed image", source=source, label=label, faces=len(result.faces))
        return [
            IndexEntry(label=label, embedding=face.embedding, source=source)
            for face in result.faces
        ]

    def _persist(self, entries: List[IndexEntry]) -> None:
        """Append the entries the store does not hold yet.

        Records are matched on (label, source, model); a rebuild of an already
        indexed directory therefore leaves the store as it was.
        """
        stored = Counter(
            (item.label, item.source, item.embedding.model_name) for item in self.store.list()
        )
        appended = 0
        for entry in entries:
            key = (entry.label, entry.source, entry.embedding.model_name)
            if stored[key] > 0:
                stored[key] -= 1
                continue
            self.store.append(entry.label, entry.embedding, entry.source)
            appended += 1
        logger.info("Persisted index entries", appended=appended, already_stored=len(entries) - appended)
