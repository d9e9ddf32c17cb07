"""Image preprocessing: decode uploaded bytes and pack them into a model tensor.

The image is stretched to a square of the model's input size (no
letterboxing, aspect ratio is not preserved) and each RGB byte is scaled
to [0, 1]. No mean/std normalization and no color-space conversion.
"""

from __future__ import annotations

import io
import logging
import struct
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from yoloscan.errors import ImageDecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into an RGB Pillow image.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Reject images with more pixels than this, if set.

    Returns:
        Fully loaded RGB image.

    Raises:
        ImageDecodeError: If the bytes are empty, truncated, not an image,
            or exceed the pixel limit.
    """
    if not image_bytes:
        raise ImageDecodeError("no image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as opened:
            width, height = opened.size
            if max_pixels is not None and width * height > max_pixels:
                raise ImageDecodeError(f"image is {width}x{height}, exceeding the limit of {max_pixels} pixels")
            # convert() forces a full decode, so truncated data fails here.
            image = opened.convert("RGB")
    except (
        UnidentifiedImageError,
        OSError,
        EOFError,
        SyntaxError,
        ValueError,
        struct.error,
        Image.DecompressionBombError,
    ) as exc:
        raise ImageDecodeError(str(exc) or type(exc).__name__) from exc

    logger.debug("Decoded %dx%d image", image.width, image.height)
    return image


def image_to_tensor(image: Image.Image, size: int) -> NDArray[np.float32]:
    """Resize an image to size x size and flatten it into normalized floats.

    Returns:
        Flat float32 array of length size*size*3 where the value at
        (y*size + x)*3 + c is channel c of pixel (x, y) divided by 255.
    """
    resized = image.resize((size, size))
    pixels = np.asarray(resized, dtype=np.uint8)
    return (pixels.reshape(-1) / 255.0).astype(np.float32)


def preprocess(image_bytes: bytes, size: int, max_pixels: int | None = None) -> NDArray[np.float32]:
    """Decode image bytes and convert them into the flat model input tensor."""
    image = decode_image(image_bytes, max_pixels=max_pixels)
    try:
        tensor = image_to_tensor(image, size)
    finally:
        image.close()
    logger.debug("Preprocessed image into %d floats", tensor.size)
    return tensor
