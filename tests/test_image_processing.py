"""Tests for image loading, validation and preprocessing."""

import cv2
import numpy as np
import pytest

from omr_scanner.errors import InvalidInput
from omr_scanner.image_processing import (
    is_valid_image_file,
    load_image,
    preprocess_for_omr,
    to_grayscale,
    validate_image,
)


class TestLoadImage:
    """Tests for load_image."""

    def test_load_from_path(self, tmp_path, sheet_factory):
        """A PNG on disk is loaded and identified by its path."""
        path = tmp_path / "sheet.png"
        cv2.imwrite(str(path), sheet_factory())
        image, source_id = load_image(str(path))
        assert image.shape == (1400, 1000, 3)
        assert source_id == str(path)

    def test_load_from_bytes(self, sheet_factory):
        """An encoded byte buffer is decoded."""
        ok, encoded = cv2.imencode(".png", sheet_factory())
        assert ok
        image, source_id = load_image(encoded.tobytes(), "upload-1")
        assert image.shape[:2] == (1400, 1000)
        assert source_id == "upload-1"

    def test_missing_file_raises_invalid_input(self, tmp_path):
        """A missing file fails fast and names the source."""
        missing = tmp_path / "nope.png"
        with pytest.raises(InvalidInput) as exc_info:
            load_image(str(missing))
        assert str(missing) in str(exc_info.value)
        assert exc_info.value.stage == "input"

    def test_garbage_bytes_raise_invalid_input(self):
        """Bytes that are not an image are rejected."""
        with pytest.raises(InvalidInput):
            load_image(b"definitely not a png", "garbage")

    def test_unsupported_source_type(self):
        """Only paths, bytes and arrays are accepted."""
        with pytest.raises(InvalidInput) as exc_info:
            load_image(12345)
        assert "int" in str(exc_info.value)


class TestValidateImage:
    """Tests for validate_image."""

    @pytest.mark.parametrize("shape", [(480, 640), (480, 640, 1), (480, 640, 2), (480, 640, 3), (480, 640, 4)])
    def test_accepts_one_to_four_channels(self, config, shape):
        """Images of 1 to 4 channels at the minimum size are valid."""
        validate_image(np.zeros(shape, dtype=np.uint8), "ok", config.preprocess)

    def test_rejects_small_image(self, config):
        """The message carries the dimensions, channel count and source."""
        with pytest.raises(InvalidInput) as exc_info:
            validate_image(np.zeros((480, 639, 3), dtype=np.uint8), "small.png", config.preprocess)
        message = str(exc_info.value)
        assert "639x480" in message
        assert "3 channel" in message
        assert "small.png" in message

    def test_rejects_five_channels(self, config):
        """More than 4 channels is invalid."""
        with pytest.raises(InvalidInput) as exc_info:
            validate_image(np.zeros((480, 640, 5), dtype=np.uint8), "five", config.preprocess)
        assert exc_info.value.actual == 5

    def test_rejects_empty_image(self, config):
        """An empty array is invalid."""
        with pytest.raises(InvalidInput):
            validate_image(np.zeros((0, 0), dtype=np.uint8), "empty", config.preprocess)


class TestPreprocess:
    """Tests for preprocess_for_omr."""

    @pytest.mark.parametrize("channels", [None, 1, 2, 3, 4])
    def test_output_is_strictly_binary(self, config, channels):
        """Noise images of any channel count binarize to 0 and 255 only."""
        rng = np.random.default_rng(7)
        shape = (480, 640) if channels is None else (480, 640, channels)
        image = rng.integers(0, 256, size=shape, dtype=np.uint8)
        gray, binary = preprocess_for_omr(image, config.preprocess)
        assert gray.shape == (480, 640)
        assert binary.shape == (480, 640)
        assert set(np.unique(binary)).issubset({0, 255})

    def test_constant_image_does_not_raise(self, config):
        """A blank page still yields a binary image."""
        _, binary = preprocess_for_omr(np.full((480, 640, 3), 255, dtype=np.uint8), config.preprocess)
        assert set(np.unique(binary)).issubset({0, 255})

    def test_ink_is_foreground(self, config):
        """Dark marks become 255 and white paper becomes 0."""
        image = np.full((480, 640), 255, dtype=np.uint8)
        cv2.rectangle(image, (100, 100), (200, 200), 0, -1)
        _, binary = preprocess_for_omr(image, config.preprocess)
        assert binary[150, 150] == 255
        assert binary[400, 500] == 0

    def test_input_is_not_modified(self, config, sheet_factory):
        """Preprocessing never writes into its input."""
        image = sheet_factory()
        before = image.copy()
        preprocess_for_omr(image, config.preprocess)
        assert np.array_equal(image, before)

    def test_to_grayscale_gray_alpha(self):
        """A gray + alpha image keeps its gray channel."""
        image = np.zeros((480, 640, 2), dtype=np.uint8)
        image[:, :, 0] = 200
        assert to_grayscale(image)[0, 0] == 200


class TestImageFileValidation:
    """Tests for is_valid_image_file."""

    @pytest.mark.parametrize("name", ["a.jpg", "b.JPEG", "c.png", "d.bmp", "e.tiff", "f.TIF"])
    def test_supported_extensions(self, name):
        """Common raster formats are accepted regardless of case."""
        assert is_valid_image_file(name)

    @pytest.mark.parametrize("name", ["a.gif", "b.pdf", "noext"])
    def test_unsupported_extensions(self, name):
        """Other files are rejected."""
        assert not is_valid_image_file(name)
