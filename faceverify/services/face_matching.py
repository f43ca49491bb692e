"""Face matching service for finding similar faces in the indexed collection."""
from typing import Optional, Union

from faceverify.core.concurrency import CancellationToken
from faceverify.core.exceptions import NoFaceDetectedError
from faceverify.core.logging import get_logger
from faceverify.core.utils.image import ImageSource, describe_source
from faceverify.domain.value_objects.recognition import FindMode, RepresentMode, SearchResult
from faceverify.services.pipeline import FacePipeline
from faceverify.services.search_index import SearchIndex

logger = get_logger(__name__)


class FaceMatchingService:
    """Service for matching a query face against the search index.

    This service:
    1. Runs the pipeline on the query image and keeps its top-ranked face
    2. Scans the index snapshot for entries of the same model
    3. Returns matches ordered by distance

    Example:
        ```python
        matcher = FaceMatchingService(pipeline, index)
        result = await matcher.find("query.jpg", mode="ranked", top_k=5)
        for match in result.matches:
            print(match.label, match.distance)
        ```
    """

    def __init__(self, pipeline: FacePipeline, index: SearchIndex) -> None:
        """Initialize the face matching service.

        Args:
            pipeline: Pipeline used to embed the query image
            index: Index searched for matches
        """
        self.pipeline = pipeline
        self.index = index

    async def find(
        self,
        image: ImageSource,
        mode: Union[FindMode, str] = FindMode.VERIFIED,
        top_k: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Find the indexed identities closest to the face in ``image``.

        Args:
            image: Query image (path, bytes or PixelBuffer)
            mode: ``verified`` keeps only matches within the model threshold,
                ``ranked`` returns the nearest entries regardless of threshold
            top_k: Maximum number of matches (defaults to MAX_MATCHES, 0 for no limit)
            cancel_token: Checked before every pipeline stage
            timeout: Per-stage bound for decode and inference calls

        Returns:
            SearchResult containing:
            - The query face with its embedding and detection
            - Matches in non-decreasing distance order

        Raises:
            NoFaceDetectedError: If no face is detected in the query image
            IncomparableEmbeddingsError: If the query model differs from the pipeline model
        """
        mode = FindMode(mode)
        try:
            represented = await self.pipeline.extract_faces(
                image,
                mode=RepresentMode.TOP,
                cancel_token=cancel_token,
                timeout=timeout,
            )
        except NoFaceDetectedError:
            logger.warning("No face detected in query image", source=describe_source(image))
            raise

        query = represented.faces[0]
        logger.info(
            "Found query face, searching index",
            source=represented.source,
            entries=len(self.index),
            mode=mode.value,
        )

        matches = self.index.find(
            query.embedding,
            model_name=self.pipeline.model_name,
            mode=mode,
            top_k=top_k,
        )
        logger.info(
            "Found matches in index",
            source=represented.source,
            matches_count=len(matches),
        )
        return SearchResult(query=query, matches=matches, mode=mode)
