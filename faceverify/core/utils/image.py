"""
Image processing utility functions.

Thin adapter over OpenCV: decoding plus the rotate / crop / resize primitives
the aligner needs. Every function returns a new PixelBuffer.
"""
import math
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from faceverify.core.config import settings
from faceverify.core.exceptions import DecodeError, ShapeMismatchError
from faceverify.core.logging import get_logger
from faceverify.domain.entities.face import BoundingBox, PixelBuffer

logger = get_logger(__name__)

ImageSource = Union[str, Path, bytes, PixelBuffer]

SUPPORTED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".bmp", ".webp"})


def bytes_to_numpy_array(image_bytes: bytes, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """Convert image bytes to a numpy array.

    Args:
        image_bytes: Raw image bytes
        flags: OpenCV imread flags (default: COLOR)

    Returns:
        numpy.ndarray: Image as a BGR numpy array

    Raises:
        DecodeError: If the image cannot be decoded
    """
    if not image_bytes:
        raise DecodeError("Image data is empty")

    np_array = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(np_array, flags)

    if img is None:
        raise DecodeError("Failed to decode image bytes")

    return img


def describe_source(image: ImageSource) -> Optional[str]:
    """Return a printable reference for an image source."""
    if isinstance(image, PixelBuffer):
        return image.source
    if isinstance(image, (str, Path)):
        return str(image)
    return None


def decode(image: ImageSource, max_pixels: Optional[int] = None) -> PixelBuffer:
    """Decode a path or raw bytes into a BGR PixelBuffer.

    Images larger than ``max_pixels`` (default ``MAX_IMAGE_PIXELS``) are
    downscaled, keeping the aspect ratio. An already decoded PixelBuffer is
    returned unchanged.

    Raises:
        DecodeError: If the file cannot be read or the data is not a supported image
    """
    if isinstance(image, PixelBuffer):
        return image

    source = describe_source(image)
    if isinstance(image, (str, Path)):
        try:
            image_bytes = Path(image).read_bytes()
        except OSError as e:
            raise DecodeError(f"Failed to read image file: {e}", details={"source": source})
    elif isinstance(image, (bytes, bytearray, memoryview)):
        image_bytes = bytes(image)
    else:
        raise DecodeError(
            f"Unsupported image reference type: {type(image).__name__}",
            details={"source": source},
        )

    try:
        img = bytes_to_numpy_array(image_bytes)
    except DecodeError as e:
        e.details.setdefault("source", source)
        raise

    max_pixels = max_pixels or settings.MAX_IMAGE_PIXELS
    height, width = img.shape[:2]
    pixels = width * height

    # Only resize if image is too large
    if pixels > max_pixels:
        scale = math.sqrt(max_pixels / pixels)
        new_width = max(1, int(width * scale))
        new_height = max(1, int(height * scale))

        logger.info(
            "Resizing large image",
            source=source,
            original_size=(width, height),
            new_size=(new_width, new_height)
        )

        img = cv2.resize(img, (new_width, new_height), interpolation=cv2.INTER_AREA)

    return PixelBuffer(pixels=img, channel_order="bgr", source=source)


def rotation_matrix(center: Tuple[float, float], degrees: float) -> np.ndarray:
    """Return the 2x3 matrix rotating by ``degrees`` (counter-clockwise on screen) about ``center``."""
    return cv2.getRotationMatrix2D((float(center[0]), float(center[1])), float(degrees), 1.0)


def rotate_points(
    points: Sequence[Tuple[float, float]],
    degrees: float,
    center: Tuple[float, float],
) -> np.ndarray:
    """Map points through the same rotation ``rotate`` applies to pixels."""
    matrix = rotation_matrix(center, degrees)
    homogeneous = np.hstack([np.asarray(points, dtype=np.float64).reshape(-1, 2),
                             np.ones((len(points), 1))])
    return homogeneous @ matrix.T


def rotate(
    buffer: PixelBuffer,
    degrees: float,
    center: Optional[Tuple[float, float]] = None,
) -> PixelBuffer:
    """Rotate the whole image about ``center`` (image centre by default), keeping its size."""
    if center is None:
        center = (buffer.width / 2.0, buffer.height / 2.0)
    matrix = rotation_matrix(center, degrees)
    rotated = cv2.warpAffine(
        buffer.pixels,
        matrix,
        (buffer.width, buffer.height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
    )
    return _with_pixels(buffer, rotated)


def crop(buffer: PixelBuffer, box: BoundingBox) -> PixelBuffer:
    """Crop to ``box`` after clipping it to the image.

    Raises:
        ShapeMismatchError: If the clipped box is empty
    """
    clipped = box.clip(buffer.width, buffer.height)
    x1, y1 = int(math.floor(clipped.x)), int(math.floor(clipped.y))
    x2 = int(math.ceil(clipped.x + clipped.width))
    y2 = int(math.ceil(clipped.y + clipped.height))
    if x2 <= x1 or y2 <= y1:
        raise ShapeMismatchError(
            "Crop window lies outside the image",
            details={"box": box.model_dump(), "image_size": (buffer.width, buffer.height)},
        )
    return _with_pixels(buffer, buffer.pixels[y1:y2, x1:x2])


def resize(buffer: PixelBuffer, width: int, height: int) -> PixelBuffer:
    """Resize to exactly ``width`` x ``height``."""
    if (buffer.width, buffer.height) == (width, height):
        return buffer
    shrinking = width * height < buffer.width * buffer.height
    resized = cv2.resize(
        buffer.pixels,
        (int(width), int(height)),
        interpolation=cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR,
    )
    return _with_pixels(buffer, resized)


def convert_channel_order(buffer: PixelBuffer, channel_order: str) -> PixelBuffer:
    """Return the buffer with its colour channels in ``channel_order``.

    Single-channel buffers are expanded to three identical channels.
    """
    if buffer.channels == 1:
        return _with_pixels(buffer, cv2.cvtColor(buffer.pixels, cv2.COLOR_GRAY2BGR), channel_order)
    if buffer.channel_order == channel_order or buffer.channels != 3:
        return buffer
    swapped = cv2.cvtColor(buffer.pixels, cv2.COLOR_BGR2RGB)
    return _with_pixels(buffer, swapped, channel_order)


def _with_pixels(buffer: PixelBuffer, pixels: np.ndarray, channel_order: Optional[str] = None) -> PixelBuffer:
    # OpenCV drops the channel axis of single-channel images; the PixelBuffer validator restores it
    return PixelBuffer(
        pixels=pixels,
        channel_order=channel_order or buffer.channel_order,
        source=buffer.source,
    )
