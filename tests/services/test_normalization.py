"""Tests for the face normalizer."""
import numpy as np
import pytest

from faceverify.core.exceptions import ShapeMismatchError
from faceverify.domain.entities.face import AlignedFace, PixelBuffer
from faceverify.services.normalization import FaceNormalizer

from conftest import make_region


def aligned_face(pixels, model_name="ArcFace"):
    return AlignedFace(buffer=PixelBuffer(pixels=pixels), model_name=model_name, region=make_region())


def test_tensor_layout_and_range(arcface_profile):
    """Should produce a 1x3x112x112 float32 tensor scaled to [-1, 1]."""
    pixels = np.zeros((112, 112, 3), dtype=np.uint8)
    pixels[:, :, 0] = 255  # blue in BGR

    tensor = FaceNormalizer(arcface_profile).normalize(aligned_face(pixels))

    assert tensor.data.shape == (1, 3, 112, 112)
    assert tensor.data.dtype == np.float32
    assert tensor.model_name == "ArcFace"
    # ArcFace takes RGB, so blue lands in the last channel
    assert np.allclose(tensor.data[0, 2], 1.0)
    assert np.allclose(tensor.data[0, 0], -1.0)
    assert np.allclose(tensor.data[0, 1], -1.0)


def test_nhwc_layout(arcface_profile):
    profile = arcface_profile.model_copy(update={"layout": "nhwc", "input_color_order": "bgr"})
    pixels = np.full((112, 112, 3), 127, dtype=np.uint8)

    tensor = FaceNormalizer(profile).normalize(aligned_face(pixels))

    assert tensor.data.shape == (1, 112, 112, 3)
    assert np.allclose(tensor.data, (127 - 127.5) / 127.5)


def test_wrong_size_rejected(arcface_profile):
    """Should refuse crops that are not the canonical size."""
    with pytest.raises(ShapeMismatchError):
        FaceNormalizer(arcface_profile).normalize(aligned_face(np.zeros((100, 100, 3), dtype=np.uint8)))


def test_grayscale_expanded_to_three_channels(arcface_profile):
    """Should repeat a single-channel crop into every model channel."""
    tensor = FaceNormalizer(arcface_profile).normalize(aligned_face(np.full((112, 112), 255, dtype=np.uint8)))

    assert tensor.data.shape == (1, 3, 112, 112)
    assert np.allclose(tensor.data, 1.0)


def test_four_channel_rejected(arcface_profile):
    with pytest.raises(ShapeMismatchError):
        FaceNormalizer(arcface_profile).normalize(aligned_face(np.zeros((112, 112, 4), dtype=np.uint8)))


def test_tensor_is_read_only(arcface_profile):
    tensor = FaceNormalizer(arcface_profile).normalize(aligned_face(np.zeros((112, 112, 3), dtype=np.uint8)))
    with pytest.raises(ValueError):
        tensor.data[0, 0, 0, 0] = 1.0
