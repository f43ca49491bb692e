"""Turns aligned face crops into model input tensors."""
import numpy as np

from faceverify.core.exceptions import ShapeMismatchError
from faceverify.core.profiles import ModelProfile
from faceverify.core.utils import image
from faceverify.domain.entities.face import AlignedFace, NormalizedTensor


class FaceNormalizer:
    """Per-channel affine rescale plus colour-order and layout conversion."""

    def __init__(self, profile: ModelProfile) -> None:
        self.profile = profile
        self._mean = np.asarray(profile.mean, dtype=np.float32).reshape(1, 1, 3)
        self._std = np.asarray(profile.std, dtype=np.float32).reshape(1, 1, 3)

    def normalize(self, face: AlignedFace) -> NormalizedTensor:
        """
        Rescale pixel values and pack them as the recognition model expects.

        Raises:
            ShapeMismatchError: If the crop is not the canonical size or not 3-channel after conversion
        """
        buffer = image.convert_channel_order(face.buffer, self.profile.input_color_order)
        expected_width, expected_height = self.profile.input_size
        if (buffer.width, buffer.height) != (expected_width, expected_height) or buffer.channels != 3:
            raise ShapeMismatchError(
                "Aligned face does not match the model input",
                details={
                    "model": self.profile.name,
                    "expected": (expected_width, expected_height, 3),
                    "actual": (buffer.width, buffer.height, buffer.channels),
                },
            )

        scaled = (buffer.pixels.astype(np.float32) - self._mean) / self._std

        if self.profile.layout == "nchw":
            scaled = np.transpose(scaled, (2, 0, 1))
        return NormalizedTensor(data=scaled[np.newaxis, ...], model_name=self.profile.name)
