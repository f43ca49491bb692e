"""
Face pipeline orchestrator.

Composes decode -> detect -> align -> normalize -> embed into the ``represent``
and ``verify`` operations. Blocking stages run on worker threads; decode and
inference are bounded by timeouts and a cancellation token is checked at
every stage boundary.

Example:
    ```python
    pipeline = container.pipeline
    result = await pipeline.verify("alice_1.jpg", "alice_2.jpg")
    print(result.verified, result.distance)
    ```
"""
from typing import Callable, Dict, List, Optional, Sequence, Union

from faceverify.core.concurrency import CancellationToken, check_cancelled, run_blocking
from faceverify.core.config import settings
from faceverify.core.exceptions import ConfigurationError, MultipleFacesError, NoFaceDetectedError
from faceverify.core.logging import get_logger
from faceverify.core.utils import image
from faceverify.core.utils.image import ImageSource
from faceverify.domain.entities.face import Embedding, FaceRegion, PixelBuffer
from faceverify.domain.interfaces.recognition.face_detection import FaceDetector
from faceverify.domain.value_objects.recognition import (
    RepresentedFace,
    RepresentMode,
    RepresentResult,
    VerificationResult,
)
from faceverify.services.alignment import FaceAligner
from faceverify.services.embedding import FaceEmbedder
from faceverify.services.matching import FaceMatcher
from faceverify.services.normalization import FaceNormalizer

logger = get_logger(__name__)

FaceSelectionPolicy = Callable[[Sequence[FaceRegion]], FaceRegion]


def highest_confidence(regions: Sequence[FaceRegion]) -> FaceRegion:
    """Pick the top-ranked face (detector order: confidence, then area)."""
    return regions[0]


def largest_area(regions: Sequence[FaceRegion]) -> FaceRegion:
    """Pick the biggest face, falling back to confidence on equal areas."""
    return max(regions, key=lambda r: (r.bounding_box.area, r.confidence))


def single_face(regions: Sequence[FaceRegion]) -> FaceRegion:
    """Require exactly one face in the image."""
    if len(regions) > 1:
        raise MultipleFacesError(
            f"Expected one face, found {len(regions)}",
            details={"faces": len(regions)},
        )
    return regions[0]


SELECTION_POLICIES: Dict[str, FaceSelectionPolicy] = {
    "highest_confidence": highest_confidence,
    "largest_area": largest_area,
    "single": single_face,
}


def get_selection_policy(name: str) -> FaceSelectionPolicy:
    try:
        return SELECTION_POLICIES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown face selection policy: {name}",
            details={"policy": name, "available": sorted(SELECTION_POLICIES)},
        )


class FacePipeline:
    """Image -> embedding pipeline plus the verify and represent operations."""

    def __init__(
        self,
        detector: FaceDetector,
        aligner: FaceAligner,
        normalizer: FaceNormalizer,
        embedder: FaceEmbedder,
        matcher: FaceMatcher,
        selection_policy: Optional[FaceSelectionPolicy] = None,
        represent_mode: Optional[Union[RepresentMode, str]] = None,
        decode_timeout: Optional[float] = None,
        inference_timeout: Optional[float] = None,
    ) -> None:
        self.detector = detector
        self.aligner = aligner
        self.normalizer = normalizer
        self.embedder = embedder
        self.matcher = matcher
        self.selection_policy = selection_policy or get_selection_policy(settings.FACE_SELECTION_POLICY)
        self.represent_mode = RepresentMode(represent_mode or settings.REPRESENT_MODE)
        self.decode_timeout = settings.DECODE_TIMEOUT_SECONDS if decode_timeout is None else decode_timeout
        self.inference_timeout = (settings.INFERENCE_TIMEOUT_SECONDS
                                  if inference_timeout is None else inference_timeout)

    @property
    def model_name(self) -> str:
        return self.embedder.profile.name

    async def decode(
        self,
        source: ImageSource,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> PixelBuffer:
        check_cancelled(cancel_token, "decode")
        if isinstance(source, PixelBuffer):
            return source
        return await run_blocking(
            image.decode, source,
            timeout=self.decode_timeout if timeout is None else timeout,
            stage="decode",
        )

    async def detect(
        self,
        buffer: PixelBuffer,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> List[FaceRegion]:
        """Detect faces, raising NoFaceDetectedError when there are none."""
        check_cancelled(cancel_token, "detect")
        return await run_blocking(
            self.detector.detect, buffer, True,
            timeout=self.inference_timeout if timeout is None else timeout,
            stage="detect",
        )

    async def embed_region(
        self,
        buffer: PixelBuffer,
        region: FaceRegion,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> Embedding:
        """Align, normalize and embed one detected face."""
        check_cancelled(cancel_token, "align")
        aligned = await run_blocking(self.aligner.align, buffer, region, stage="align")

        check_cancelled(cancel_token, "normalize")
        tensor = await run_blocking(self.normalizer.normalize, aligned, stage="normalize")

        check_cancelled(cancel_token, "embed")
        return await run_blocking(
            self.embedder.embed, tensor,
            timeout=self.inference_timeout if timeout is None else timeout,
            stage="embed",
        )

    async def extract_faces(
        self,
        source: ImageSource,
        mode: Union[RepresentMode, str] = RepresentMode.ALL,
        selection_policy: Optional[FaceSelectionPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> RepresentResult:
        """
        Run the full pipeline on one image.

        Args:
            source: Path, raw bytes or decoded PixelBuffer
            mode: ``all`` embeds every detected face, ``top`` only the selected one
            selection_policy: Picks the face in ``top`` mode (defaults to the pipeline policy)
            cancel_token: Checked before every stage
            timeout: Per-stage bound for decode and inference calls

        Returns:
            RepresentResult with one RepresentedFace per embedded face

        Raises:
            DecodeError: If the image cannot be decoded
            NoFaceDetectedError: If the image has no face
            MultipleFacesError: If the ``single`` policy sees more than one face
            AlignmentFailedError: If a face has no eye landmarks
            InferenceError: If the recognition model fails
            OperationTimeoutError: If decode or inference exceed the timeout
            OperationCancelledError: If the token is cancelled
        """
        mode = RepresentMode(mode)
        buffer = await self.decode(source, cancel_token, timeout)
        regions = await self.detect(buffer, cancel_token, timeout)

        if mode is RepresentMode.TOP:
            regions = [(selection_policy or self.selection_policy)(regions)]

        faces = []
        for region in regions:
            embedding = await self.embed_region(buffer, region, cancel_token, timeout)
            faces.append(RepresentedFace(embedding=embedding, region=region))

        logger.debug(
            "Extracted faces",
            source=buffer.source,
            faces=len(faces),
            mode=mode.value,
            model=self.model_name,
        )
        return RepresentResult(faces=faces, source=buffer.source)

    async def represent(
        self,
        source: ImageSource,
        mode: Optional[Union[RepresentMode, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> RepresentResult:
        """
        Return embeddings for every face, or only the top-ranked one.

        Raises:
            NoFaceDetectedError: If the image has no face
        """
        return await self.extract_faces(
            source,
            mode=mode or self.represent_mode,
            cancel_token=cancel_token,
            timeout=timeout,
        )

    async def verify(
        self,
        source1: ImageSource,
        source2: ImageSource,
        selection_policy: Optional[FaceSelectionPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> VerificationResult:
        """
        Decide whether two images show the same person.

        One face is selected per image (highest confidence unless another
        policy is given) and the two embeddings are compared.

        Raises:
            NoFaceDetectedError: If either image has no face
        """
        embeddings = []
        for source in (source1, source2):
            try:
                result = await self.extract_faces(
                    source,
                    mode=RepresentMode.TOP,
                    selection_policy=selection_policy,
                    cancel_token=cancel_token,
                    timeout=timeout,
                )
            except NoFaceDetectedError as e:
                e.details.setdefault("source", image.describe_source(source))
                logger.warning("No face detected in verification input", source=e.details["source"])
                raise
            embeddings.append(result.faces[0].embedding)

        verification = self.matcher.compare(embeddings[0], embeddings[1])
        logger.info(
            "Verification complete",
            verified=verification.verified,
            distance=round(verification.distance, 4),
            threshold=verification.threshold,
            model=verification.model_name,
        )
        return verification
