"""Tests for image decoding and tensor packing."""

from __future__ import annotations

import io
import struct
import zlib

import numpy as np
import pytest
from PIL import Image

from yoloscan.errors import ImageDecodeError
from yoloscan.ml.preprocessing import decode_image, image_to_tensor, preprocess

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _encode(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def _solid(width: int, height: int, color: tuple[int, int, int], fmt: str = "PNG") -> bytes:
    return _encode(Image.new("RGB", (width, height), color), fmt)


def _png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", zlib.crc32(chunk_type + data))


def _png_with_broken_second_idat() -> bytes:
    """Encode a PNG, split its IDAT in two, and mangle the second chunk type."""
    noise = np.random.default_rng(5).integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
    data = _encode(Image.fromarray(noise), "PNG")

    out = bytearray(data[:8])
    pos = 8
    while pos < len(data):
        (length,) = struct.unpack(">I", data[pos : pos + 4])
        chunk_type = data[pos + 4 : pos + 8]
        body = data[pos + 8 : pos + 8 + length]
        if chunk_type == b"IDAT":
            half = len(body) // 2
            out += _png_chunk(b"IDAT", body[:half])
            out += _png_chunk(b"ID\x00T", body[half:])
        else:
            out += data[pos : pos + 12 + length]
        pos += 12 + length
    return bytes(out)


# ---------------------------------------------------------------------------
# decode_image
# ---------------------------------------------------------------------------


class TestDecodeImage:
    def test_decodes_png_to_rgb(self) -> None:
        image = decode_image(_solid(10, 4, (1, 2, 3)))
        assert image.mode == "RGB"
        assert image.size == (10, 4)

    def test_converts_grayscale_to_rgb(self) -> None:
        data = _encode(Image.new("L", (3, 3), 128))
        image = decode_image(data)
        assert image.mode == "RGB"
        assert image.getpixel((0, 0)) == (128, 128, 128)

    def test_empty_bytes_rejected(self) -> None:
        with pytest.raises(ImageDecodeError, match="no image data"):
            decode_image(b"")

    def test_random_bytes_rejected(self) -> None:
        with pytest.raises(ImageDecodeError):
            decode_image(b"\x00\x13\x37not an image at all")

    def test_truncated_image_rejected(self) -> None:
        noise = np.random.default_rng(3).integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
        data = _encode(Image.fromarray(noise), "JPEG")
        with pytest.raises(ImageDecodeError):
            decode_image(data[: len(data) // 2])

    def test_broken_chunk_header_rejected(self) -> None:
        with pytest.raises(ImageDecodeError, match="broken PNG file"):
            decode_image(_png_with_broken_second_idat())

    def test_pixel_limit_enforced(self) -> None:
        with pytest.raises(ImageDecodeError, match="exceeding the limit"):
            decode_image(_solid(20, 20, (0, 0, 0)), max_pixels=399)

    def test_pixel_limit_inclusive(self) -> None:
        image = decode_image(_solid(20, 20, (0, 0, 0)), max_pixels=400)
        assert image.size == (20, 20)

    def test_display_message_has_prefix(self) -> None:
        with pytest.raises(ImageDecodeError) as info:
            decode_image(b"garbage")
        assert info.value.display_message.startswith("Failed to decode image: ")


# ---------------------------------------------------------------------------
# image_to_tensor
# ---------------------------------------------------------------------------


class TestImageToTensor:
    @pytest.mark.parametrize(("width", "height"), [(100, 50), (640, 640), (1, 1), (1280, 333)])
    def test_length_independent_of_input_size(self, width: int, height: int) -> None:
        image = Image.new("RGB", (width, height), (12, 34, 56))
        tensor = image_to_tensor(image, 640)
        assert tensor.shape == (640 * 640 * 3,)
        assert tensor.dtype == np.float32

    def test_extremes_map_exactly(self) -> None:
        black = image_to_tensor(Image.new("RGB", (5, 5), (0, 0, 0)), 4)
        white = image_to_tensor(Image.new("RGB", (5, 5), (255, 255, 255)), 4)
        assert np.all(black == 0.0)
        assert np.all(white == 1.0)

    def test_values_within_unit_range(self) -> None:
        rng = np.random.default_rng(7)
        pixels = rng.integers(0, 256, size=(37, 23, 3), dtype=np.uint8)
        tensor = image_to_tensor(Image.fromarray(pixels), 16)
        assert tensor.min() >= 0.0
        assert tensor.max() <= 1.0

    def test_layout_is_row_major_channel_interleaved(self) -> None:
        pixels = np.zeros((2, 2, 3), dtype=np.uint8)
        pixels[0, 1] = (255, 0, 0)  # x=1, y=0
        pixels[1, 0] = (0, 0, 255)  # x=0, y=1
        tensor = image_to_tensor(Image.fromarray(pixels), 2)

        size = 2
        assert tensor[(0 * size + 1) * 3 + 0] == 1.0
        assert tensor[(1 * size + 0) * 3 + 2] == 1.0
        assert tensor.sum() == 2.0

    def test_same_image_is_bit_identical(self) -> None:
        rng = np.random.default_rng(11)
        pixels = rng.integers(0, 256, size=(48, 80, 3), dtype=np.uint8)
        image = Image.fromarray(pixels)
        first = image_to_tensor(image, 32)
        second = image_to_tensor(image, 32)
        assert first.tobytes() == second.tobytes()

    def test_stretches_without_letterboxing(self) -> None:
        # A wide image must fill the whole square; padding would leave zeros.
        tensor = image_to_tensor(Image.new("RGB", (200, 10), (255, 255, 255)), 20)
        assert np.all(tensor == 1.0)


# ---------------------------------------------------------------------------
# preprocess (end to end)
# ---------------------------------------------------------------------------


class TestPreprocess:
    def test_solid_red_becomes_red_triplets(self) -> None:
        tensor = preprocess(_solid(100, 50, (255, 0, 0)), 640)
        assert tensor.shape == (640 * 640 * 3,)
        triplets = tensor.reshape(-1, 3)
        assert np.all(triplets == np.array([1.0, 0.0, 0.0], dtype=np.float32))

    def test_undecodable_bytes_raise(self) -> None:
        with pytest.raises(ImageDecodeError):
            preprocess(b"\x89PNG\r\n\x1a\n" + b"\xff" * 32, 640)

    def test_same_bytes_are_bit_identical(self) -> None:
        data = _solid(31, 17, (200, 100, 50), fmt="JPEG")
        assert preprocess(data, 64).tobytes() == preprocess(data, 64).tobytes()
