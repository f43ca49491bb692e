"""
InsightFace-based implementation of the face detector.

This module wraps an InsightFace detection model (RetinaFace / SCRFD, e.g.
``det_10g.onnx`` from the buffalo_l pack) and converts its raw output into
FaceRegion domain objects with pixel coordinates and named landmarks.

Example:
    ```python
    detector = InsightFaceDetector.from_model_file("models/buffalo_l/det_10g.onnx")
    regions = detector.detect(image.decode("photo.jpg"))
    ```

Note:
    This implementation uses CPU inference by default. For GPU support,
    set INFERENCE_PROVIDERS to include 'CUDAExecutionProvider'.
"""
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
from insightface.model_zoo import get_model

from faceverify.core.config import settings
from faceverify.core.exceptions import BackendError, ModelLoadError
from faceverify.core.logging import get_logger
from faceverify.core.utils import image
from faceverify.domain.entities.face import LANDMARK_NAMES, BoundingBox, FaceRegion, Landmark, PixelBuffer
from faceverify.domain.interfaces.recognition.face_detection import FaceDetector

logger = get_logger(__name__)


class InsightFaceDetector(FaceDetector):
    """
    Face detector backed by an InsightFace detection model.

    The model is loaded once and injected at construction; ``detect`` only
    reads it, so one detector can serve concurrent requests.

    Attributes:
        model: Prepared InsightFace detection model
    """

    def __init__(
        self,
        model: Any,
        min_confidence: Optional[float] = None,
        max_faces: Optional[int] = None,
    ) -> None:
        super().__init__(
            min_confidence=settings.MIN_FACE_CONFIDENCE if min_confidence is None else min_confidence,
            max_faces=settings.MAX_FACES_PER_IMAGE if max_faces is None else max_faces,
        )
        self.model = model

    @classmethod
    def from_model_file(
        cls,
        model_path: Optional[str] = None,
        providers: Optional[List[str]] = None,
        det_size: Optional[int] = None,
        **kwargs: Any,
    ) -> "InsightFaceDetector":
        """Load and prepare a detection model.

        Raises:
            ModelLoadError: If the model file is missing or cannot be loaded
        """
        path = Path(model_path or Path(settings.MODEL_CACHE_DIR) / settings.DETECTOR_MODEL_FILE)
        if not path.is_file():
            raise ModelLoadError(f"Detector model not found: {path}", details={"path": str(path)})

        det_size = det_size or settings.DETECTION_SIZE
        try:
            model = get_model(str(path), providers=providers or list(settings.INFERENCE_PROVIDERS))
            if model is None:
                raise ValueError("unrecognised model file")
            # Detection size affects accuracy significantly
            model.prepare(ctx_id=-1, input_size=(det_size, det_size))
        except Exception as e:
            logger.error("Failed to load detector", path=str(path), error=str(e), exc_info=True)
            raise ModelLoadError(f"Failed to load detector {path}: {e}", details={"path": str(path)})

        logger.info("Detector loaded", path=str(path), det_size=det_size)
        return cls(model, **kwargs)

    def _detect_regions(self, buffer: PixelBuffer) -> List[FaceRegion]:
        # InsightFace detectors expect 3-channel BGR input
        bgr = image.convert_channel_order(buffer, "bgr")
        pixels = bgr.pixels

        logger.debug("Running face detection", image_shape=pixels.shape, source=buffer.source)
        try:
            bboxes, kpss = self.model.detect(pixels, max_num=0)
        except Exception as e:
            logger.error(
                "Face detection failed",
                error=str(e),
                image_shape=pixels.shape,
                source=buffer.source,
                exc_info=True
            )
            raise BackendError(f"Face detection failed: {e}", details={"source": buffer.source}) from e

        regions = [
            self._convert_to_region(bboxes[i], None if kpss is None else kpss[i])
            for i in range(0 if bboxes is None else len(bboxes))
        ]
        logger.debug("Face detection results", faces_found=len(regions), source=buffer.source)
        return regions

    @staticmethod
    def _convert_to_region(detection: np.ndarray, keypoints: Optional[np.ndarray]) -> FaceRegion:
        """
        Convert one InsightFace detection row into a FaceRegion.

        Args:
            detection: ``[x1, y1, x2, y2, score]``
            keypoints: ``(5, 2)`` landmark coordinates or None for detectors without keypoints

        Returns:
            FaceRegion in pixel coordinates with named landmarks
        """
        x1, y1, x2, y2, score = (float(v) for v in detection[:5])
        landmarks = []
        if keypoints is not None:
            landmarks = [
                Landmark(name=name, x=float(point[0]), y=float(point[1]))
                for name, point in zip(LANDMARK_NAMES, keypoints)
            ]
        return FaceRegion(
            bounding_box=BoundingBox(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1)),
            landmarks=landmarks,
            confidence=min(1.0, max(0.0, score)),
        )
