# image_processing.py
"""
Functions for loading, validating and preprocessing images for OMR.
"""
import logging
import os

import cv2
import numpy as np

from . import config
from .errors import InvalidInput

logger = logging.getLogger(__name__)


def is_valid_image_file(path):
    """Checks the file extension against the supported image formats."""
    return os.path.splitext(str(path))[1].lower() in config.VALID_IMAGE_EXTENSIONS


def _to_uint8(image):
    if image.dtype == np.uint8:
        return image
    return cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)


def load_image(source, source_id=None):
    """
    Loads an image from a file path, a raw byte buffer or an existing array.

    Returns the image and the identifier used for it in logs and errors.
    """
    if isinstance(source, np.ndarray):
        source_id = source_id or '<array>'
        image = source
    elif isinstance(source, (bytes, bytearray, memoryview)):
        source_id = source_id or '<bytes>'
        buffer = np.frombuffer(bytes(source), dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
        if image is None:
            raise InvalidInput(f"could not decode {buffer.size} bytes as an image", source=source_id)
    elif isinstance(source, (str, os.PathLike)):
        path = os.fspath(source)
        source_id = source_id or path
        if not os.path.isfile(path):
            raise InvalidInput("image file not found", source=source_id)
        image = cv2.imread(path, cv2.IMREAD_UNCHANGED)
        if image is None:
            raise InvalidInput("could not read image file", source=source_id)
    else:
        raise InvalidInput(
            "unsupported image source",
            expected="path, bytes or ndarray",
            actual=type(source).__name__,
            source=source_id,
        )

    image = _to_uint8(image)
    logger.info("Loaded image: %s (shape=%s)", source_id, image.shape)
    return image, source_id


def validate_image(image, source_id, preprocess_config):
    """Fails fast on images the pipeline cannot work with."""
    if image is None or image.size == 0:
        raise InvalidInput("image is empty", source=source_id)
    if image.ndim == 2:
        channels = 1
    elif image.ndim == 3:
        channels = image.shape[2]
    else:
        raise InvalidInput(
            "image has an unsupported number of dimensions",
            expected="2 or 3", actual=image.ndim, source=source_id,
        )

    height, width = image.shape[:2]
    if not 1 <= channels <= 4:
        raise InvalidInput(
            f"image is {width}x{height} with {channels} channels",
            expected="1-4 channels", actual=channels, source=source_id,
        )
    if width < preprocess_config.min_width or height < preprocess_config.min_height:
        raise InvalidInput(
            f"image is {width}x{height} with {channels} channel(s), too small to read",
            expected=f">={preprocess_config.min_width}x{preprocess_config.min_height}",
            actual=f"{width}x{height}",
            source=source_id,
        )
    return channels


def to_grayscale(image):
    """Reduces a 1 to 4 channel image to a single intensity channel."""
    image = _to_uint8(image)
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    # single channel, or gray + alpha
    return np.ascontiguousarray(image[:, :, 0])


def preprocess_for_omr(image, preprocess_config):
    """
    Converts an image to grayscale and binarizes it using Otsu's threshold.

    Ink becomes 255 and paper 0. Returns the grayscale and binarized images.
    """
    gray = to_grayscale(image)
    if preprocess_config.normalize:
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)

    k = preprocess_config.blur_kernel
    blurred = cv2.GaussianBlur(gray, (k, k), 0)

    # Inverted so marks are white on black
    _, binarized = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)

    if preprocess_config.close_kernel > 0:
        kernel = np.ones((preprocess_config.close_kernel, preprocess_config.close_kernel), np.uint8)
        binarized = cv2.morphologyEx(binarized, cv2.MORPH_CLOSE, kernel)

    logger.debug("Binarized %dx%d image using Otsu's threshold.", gray.shape[1], gray.shape[0])
    return gray, binarized
