"""Face detection interface."""
from abc import ABC, abstractmethod
from typing import List, Optional

from faceverify.core.exceptions import NoFaceDetectedError
from faceverify.domain.entities.face import FaceRegion, PixelBuffer


class FaceDetector(ABC):
    """Interface for face detection.

    Concrete detectors implement ``_detect_regions``; ranking, confidence
    filtering and bounds clipping are shared here so every detector returns
    regions with the same ordering guarantees.
    """

    def __init__(self, min_confidence: float = 0.0, max_faces: Optional[int] = None) -> None:
        self.min_confidence = min_confidence
        self.max_faces = max_faces

    @abstractmethod
    def _detect_regions(self, buffer: PixelBuffer) -> List[FaceRegion]:
        """
        Run the underlying model on the image.

        Args:
            buffer: Decoded image

        Returns:
            Unordered face regions in source-image pixel coordinates
        """
        pass

    def detect(self, buffer: PixelBuffer, require_face: bool = False) -> List[FaceRegion]:
        """
        Detect faces in the provided image.

        Args:
            buffer: Decoded image
            require_face: Raise instead of returning an empty list

        Returns:
            Face regions ordered by confidence (descending), ties broken by
            bounding-box area (descending)

        Raises:
            NoFaceDetectedError: If ``require_face`` is set and nothing was found
            BackendError: If the detection model fails
        """
        regions = [
            self._clip_region(region, buffer)
            for region in self._detect_regions(buffer)
            if region.confidence >= self.min_confidence
        ]
        regions = [region for region in regions if region.bounding_box.area > 0]
        regions.sort(key=lambda r: (-r.confidence, -r.bounding_box.area))

        if self.max_faces is not None and self.max_faces > 0:
            regions = regions[:self.max_faces]

        if not regions and require_face:
            raise NoFaceDetectedError(
                "No faces detected in image",
                details={"source": buffer.source},
            )
        return regions

    @staticmethod
    def _clip_region(region: FaceRegion, buffer: PixelBuffer) -> FaceRegion:
        clipped = region.bounding_box.clip(buffer.width, buffer.height)
        if clipped == region.bounding_box:
            return region
        return region.model_copy(update={"bounding_box": clipped})
