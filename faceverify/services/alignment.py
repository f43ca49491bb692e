"""Face alignment: level the eye line, crop with a margin, resize to the model's canonical size."""
import math
from typing import Optional

from faceverify.core.config import settings
from faceverify.core.exceptions import AlignmentFailedError
from faceverify.core.logging import get_logger
from faceverify.core.profiles import ModelProfile
from faceverify.core.utils import image
from faceverify.domain.entities.face import AlignedFace, BoundingBox, FaceRegion, PixelBuffer

logger = get_logger(__name__)


def eye_angle_degrees(region: FaceRegion) -> float:
    """Return the angle of the left-eye -> right-eye line relative to horizontal.

    Raises:
        AlignmentFailedError: If either eye landmark is missing
    """
    left_eye = region.landmark("left_eye")
    right_eye = region.landmark("right_eye")
    if left_eye is None or right_eye is None:
        raise AlignmentFailedError(
            "Face region has no eye landmarks",
            details={"landmarks": [point.name for point in region.landmarks]},
        )
    return math.degrees(math.atan2(right_eye.y - left_eye.y, right_eye.x - left_eye.x))


class FaceAligner:
    """Rotation + axis-aligned crop aligner.

    Only rotation and cropping are performed (no shear or similarity warp);
    tilts within ``tolerance_degrees`` are left as they are.
    """

    def __init__(
        self,
        profile: ModelProfile,
        tolerance_degrees: Optional[float] = None,
        margin: Optional[float] = None,
    ) -> None:
        self.profile = profile
        self.tolerance_degrees = (settings.ALIGNMENT_TOLERANCE_DEGREES
                                  if tolerance_degrees is None else tolerance_degrees)
        self.margin = settings.ALIGNMENT_MARGIN if margin is None else margin

    def align(self, buffer: PixelBuffer, region: FaceRegion) -> AlignedFace:
        """
        Produce the canonical crop for one detected face.

        Args:
            buffer: Source image the region was detected in
            region: Detected face with eye landmarks

        Returns:
            AlignedFace sized to the profile's input size

        Raises:
            AlignmentFailedError: If the region has no eye landmarks
        """
        angle = eye_angle_degrees(region)
        box = region.bounding_box
        rotation = 0.0

        if abs(angle) > self.tolerance_degrees:
            left_eye = region.landmark("left_eye")
            right_eye = region.landmark("right_eye")
            eyes_center = ((left_eye.x + right_eye.x) / 2.0, (left_eye.y + right_eye.y) / 2.0)

            buffer = image.rotate(buffer, angle, center=eyes_center)
            # The box keeps its size; only its position follows the rotated pixels
            (center_x, center_y), = image.rotate_points([box.center], angle, eyes_center)
            box = BoundingBox(
                x=center_x - box.width / 2.0,
                y=center_y - box.height / 2.0,
                width=box.width,
                height=box.height,
            )
            rotation = angle
            logger.debug("Rotated face to level the eyes", angle=round(angle, 2), source=buffer.source)

        face = image.crop(buffer, self._expand(box))
        width, height = self.profile.input_size
        face = image.resize(face, width, height)

        return AlignedFace(
            buffer=face,
            model_name=self.profile.name,
            rotation_degrees=rotation,
            region=region,
        )

    def _expand(self, box: BoundingBox) -> BoundingBox:
        pad_w = box.width * self.margin
        pad_h = box.height * self.margin
        return BoundingBox(
            x=box.x - pad_w,
            y=box.y - pad_h,
            width=box.width + 2 * pad_w,
            height=box.height + 2 * pad_h,
        )
