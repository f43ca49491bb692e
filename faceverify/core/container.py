"""Service container for dependency injection."""
from pathlib import Path
from typing import Optional

from faceverify.core.config import settings
from faceverify.core.logging import get_logger
from faceverify.core.profiles import ModelProfile, get_profile
from faceverify.domain.interfaces.recognition.face_detection import FaceDetector
from faceverify.domain.interfaces.recognition.inference_backend import InferenceBackend, ModelHandle
from faceverify.domain.interfaces.storage.embedding_store import EmbeddingStore
from faceverify.infrastructure.inference.onnxruntime_backend import OnnxRuntimeBackend
from faceverify.infrastructure.storage.embedding_store import JsonLinesEmbeddingStore
from faceverify.services.alignment import FaceAligner
from faceverify.services.detection.insight_face import InsightFaceDetector
from faceverify.services.embedding import FaceEmbedder
from faceverify.services.face_indexing import FaceIndexingService
from faceverify.services.face_matching import FaceMatchingService
from faceverify.services.matching import FaceMatcher
from faceverify.services.normalization import FaceNormalizer
from faceverify.services.pipeline import FacePipeline
from faceverify.services.search_index import SearchIndex

logger = get_logger(__name__)


class ServiceContainer:
    """Container for application services.

    This container owns the read-only model handles and wires every service
    that uses them. Models are loaded once by ``initialize`` and shared by all
    requests until ``cleanup``.

    Components passed to the constructor are used as-is instead of being
    built from settings, which is how tests swap in fakes.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        # Get services from container
        result = await container.pipeline.verify("a.jpg", "b.jpg")
        matches = await container.face_matching_service.find("query.jpg")
        ```
    """

    def __init__(
        self,
        profile: Optional[ModelProfile] = None,
        detector: Optional[FaceDetector] = None,
        backend: Optional[InferenceBackend] = None,
        model_handle: Optional[ModelHandle] = None,
        store: Optional[EmbeddingStore] = None,
    ) -> None:
        """Initialize empty container."""
        self.profile = profile
        self.detector = detector
        self.backend = backend
        self.model_handle = model_handle
        self.store = store

        self.embedder: Optional[FaceEmbedder] = None
        self.matcher: Optional[FaceMatcher] = None
        self.index: Optional[SearchIndex] = None
        self.pipeline: Optional[FacePipeline] = None

        # Domain services
        self.face_indexing_service: Optional[FaceIndexingService] = None
        self.face_matching_service: Optional[FaceMatchingService] = None

        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Load models and build all services in the correct order. Safe to call twice."""
        if self._initialized:
            return

        self.profile = self.profile or get_profile()
        if self.detector is None:
            self.detector = InsightFaceDetector.from_model_file()
        if self.backend is None:
            self.backend = OnnxRuntimeBackend()
        if self.model_handle is None:
            model_path = Path(settings.MODEL_CACHE_DIR) / self.profile.model_file
            self.model_handle = self.backend.load(str(model_path), name=self.profile.name)
        if self.store is None:
            self.store = JsonLinesEmbeddingStore()

        self.embedder = FaceEmbedder(self.backend, self.model_handle, self.profile)
        self.matcher = FaceMatcher(profiles={self.profile.name: self.profile})
        self.index = SearchIndex(self.matcher)
        self.index.load_from_store(self.store)

        self.pipeline = FacePipeline(
            detector=self.detector,
            aligner=FaceAligner(self.profile),
            normalizer=FaceNormalizer(self.profile),
            embedder=self.embedder,
            matcher=self.matcher,
        )
        self.face_indexing_service = FaceIndexingService(
            pipeline=self.pipeline,
            index=self.index,
            store=self.store,
        )
        self.face_matching_service = FaceMatchingService(
            pipeline=self.pipeline,
            index=self.index,
        )

        self._initialized = True
        logger.info(
            "Service container initialized",
            model=self.profile.name,
            metric=self.matcher.metric,
            indexed=len(self.index),
        )

    def warm_up(self) -> None:
        """Run one dummy inference through the recognition model."""
        if self.embedder is not None:
            self.embedder.warm_up()

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        # Cleanup domain services
        self.face_indexing_service = None
        self.face_matching_service = None

        self.pipeline = None
        self.index = None
        self.matcher = None
        self.embedder = None

        # Model handles go last
        self.model_handle = None
        self.detector = None
        self.backend = None
        self._initialized = False
