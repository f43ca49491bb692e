"""Tests for the image adapter."""
import cv2
import numpy as np
import pytest

from faceverify.core.exceptions import DecodeError, ShapeMismatchError
from faceverify.core.utils import image
from faceverify.domain.entities.face import BoundingBox, PixelBuffer

from conftest import person_photo, write_image


class TestDecode:
    """Test suite for decoding paths and bytes."""

    def test_decode_path(self, tmp_path):
        """Should decode a PNG file into a BGR buffer of the same size."""
        path = write_image(tmp_path / "face.png", person_photo(1))
        buffer = image.decode(path)

        assert (buffer.width, buffer.height, buffer.channels) == (160, 160, 3)
        assert buffer.channel_order == "bgr"
        assert buffer.source == str(path)
        np.testing.assert_array_equal(buffer.pixels, person_photo(1))

    def test_decode_bytes(self):
        """Should decode encoded bytes without a source reference."""
        ok, encoded = cv2.imencode(".png", person_photo(2))
        assert ok
        buffer = image.decode(encoded.tobytes())

        assert buffer.source is None
        assert buffer.pixels.shape == (160, 160, 3)

    def test_pixel_buffer_passthrough(self):
        """Should return an already decoded buffer unchanged."""
        buffer = PixelBuffer(pixels=person_photo(1))
        assert image.decode(buffer) is buffer

    def test_corrupt_bytes(self):
        """Should raise DecodeError for data that is not an image."""
        with pytest.raises(DecodeError):
            image.decode(b"definitely not an image")

    def test_empty_bytes(self):
        with pytest.raises(DecodeError):
            image.decode(b"")

    def test_missing_file(self, tmp_path):
        """Should report the source of an unreadable file."""
        with pytest.raises(DecodeError) as exc_info:
            image.decode(tmp_path / "missing.png")
        assert exc_info.value.details["source"].endswith("missing.png")

    def test_unsupported_reference(self):
        with pytest.raises(DecodeError):
            image.decode(12345)

    def test_large_image_downscaled(self, tmp_path):
        """Should downscale images above the pixel budget keeping the aspect ratio."""
        path = write_image(tmp_path / "large.png", np.full((200, 400, 3), 128, dtype=np.uint8))
        buffer = image.decode(path, max_pixels=20_000)

        assert buffer.width * buffer.height <= 20_000
        assert buffer.width == pytest.approx(2 * buffer.height, abs=1)


class TestGeometry:
    """Test suite for rotate, crop and resize."""

    def test_buffers_are_read_only(self):
        buffer = PixelBuffer(pixels=person_photo(1))
        with pytest.raises(ValueError):
            buffer.pixels[0, 0, 0] = 1

    def test_operations_return_new_buffers(self):
        """Should never modify the input buffer."""
        buffer = PixelBuffer(pixels=person_photo(1), source="face.png")
        before = buffer.pixels.copy()

        rotated = image.rotate(buffer, 30.0)
        cropped = image.crop(buffer, BoundingBox(x=10, y=10, width=50, height=40))
        resized = image.resize(buffer, 112, 112)

        np.testing.assert_array_equal(buffer.pixels, before)
        assert rotated is not buffer and rotated.source == "face.png"
        assert (cropped.width, cropped.height) == (50, 40)
        assert (resized.width, resized.height) == (112, 112)

    def test_crop_clips_to_image(self):
        buffer = PixelBuffer(pixels=person_photo(1))
        cropped = image.crop(buffer, BoundingBox(x=-20, y=140, width=60, height=60))
        assert (cropped.width, cropped.height) == (40, 20)

    def test_crop_outside_image(self):
        buffer = PixelBuffer(pixels=person_photo(1))
        with pytest.raises(ShapeMismatchError):
            image.crop(buffer, BoundingBox(x=500, y=500, width=10, height=10))

    def test_rotate_points_matches_rotate(self):
        """Should move a bright dot to where rotate_points predicts."""
        pixels = np.zeros((101, 101, 3), dtype=np.uint8)
        pixels[20, 80] = 255
        buffer = PixelBuffer(pixels=pixels)
        center = (50.0, 50.0)

        rotated = image.rotate(buffer, 90.0, center=center)
        (x, y), = image.rotate_points([(80.0, 20.0)], 90.0, center)

        brightest = np.unravel_index(np.argmax(rotated.pixels[:, :, 0]), rotated.pixels.shape[:2])
        assert brightest == (int(round(y)), int(round(x)))

    def test_convert_channel_order(self):
        pixels = np.zeros((4, 4, 3), dtype=np.uint8)
        pixels[:, :, 0] = 255
        buffer = PixelBuffer(pixels=pixels, channel_order="bgr")

        rgb = image.convert_channel_order(buffer, "rgb")

        assert rgb.channel_order == "rgb"
        assert rgb.pixels[0, 0].tolist() == [0, 0, 255]
        assert image.convert_channel_order(rgb, "rgb") is rgb

    def test_grayscale_gets_channel_axis(self):
        buffer = PixelBuffer(pixels=np.zeros((10, 12), dtype=np.uint8))
        assert (buffer.height, buffer.width, buffer.channels) == (10, 12, 1)
        assert image.resize(buffer, 6, 5).channels == 1

    def test_grayscale_converted_to_colour(self):
        buffer = PixelBuffer(pixels=np.full((10, 12), 7, dtype=np.uint8))

        rgb = image.convert_channel_order(buffer, "rgb")

        assert rgb.channels == 3
        assert rgb.channel_order == "rgb"
        assert np.all(rgb.pixels == 7)
