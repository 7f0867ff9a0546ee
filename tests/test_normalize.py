"""Tests for image decoding and normalization."""

import cv2
import numpy as np
import pytest

from conftest import encode_png
from iconpost.errors import DecodeError
from iconpost.io.load_image import fit_within, load_raster_file, normalize_image
from iconpost.models import RasterBytes


class TestFitWithin:
    """Tests for target size computation."""

    def test_shrinks_preserving_aspect(self):
        assert fit_within(4000, 3000, 1024) == (1024, 768)

    def test_never_enlarges(self):
        assert fit_within(100, 50, 1024) == (100, 50)


class TestNormalizeImage:
    """Tests for decode + resize."""

    def test_large_image_is_shrunk(self):
        img = np.zeros((1000, 2000, 3), dtype=np.uint8)

        buffer = normalize_image(RasterBytes(data=encode_png(img)), 1024)

        assert (buffer.width, buffer.height) == (1024, 512)
        assert buffer.pixels.shape == (512, 1024, 4)

    def test_small_image_is_not_upscaled(self):
        img = np.zeros((50, 100, 3), dtype=np.uint8)

        buffer = normalize_image(RasterBytes(data=encode_png(img)), 1024)

        assert (buffer.width, buffer.height) == (100, 50)

    def test_always_four_channels(self):
        """Sources without alpha get an opaque alpha channel."""
        grey = np.full((20, 30), 77, dtype=np.uint8)

        buffer = normalize_image(RasterBytes(data=encode_png(grey)), 1024)

        assert buffer.pixels.shape == (20, 30, 4)
        assert np.all(buffer.alpha == 255)
        assert np.all(buffer.rgb == 77)

    def test_channel_order_is_rgba(self):
        """OpenCV's BGR order is converted to RGB."""
        img = np.zeros((4, 4, 3), dtype=np.uint8)
        img[:, :] = (255, 0, 0)  # blue in BGR

        buffer = normalize_image(RasterBytes(data=encode_png(img)), 1024)

        assert tuple(buffer.pixels[0, 0]) == (0, 0, 255, 255)

    def test_alpha_is_kept(self):
        img = np.zeros((4, 4, 4), dtype=np.uint8)
        img[:, :, 3] = 10

        buffer = normalize_image(RasterBytes(data=encode_png(img)), 1024)

        assert np.all(buffer.alpha == 10)

    def test_sixteen_bit_source(self):
        img = np.full((4, 4, 3), 65535, dtype=np.uint16)

        buffer = normalize_image(RasterBytes(data=encode_png(img)), 1024)

        assert buffer.pixels.dtype == np.uint8
        assert np.all(buffer.rgb == 255)

    def test_garbage_bytes_raise(self):
        with pytest.raises(DecodeError):
            normalize_image(RasterBytes(data=b"definitely not an image"), 1024)

    def test_empty_bytes_raise(self):
        with pytest.raises(DecodeError):
            normalize_image(RasterBytes(data=b""), 1024)


class TestLoadRasterFile:
    """Tests for reading local files."""

    def test_reads_file_with_content_type(self, red_circle_file):
        raster = load_raster_file(red_circle_file)

        assert raster.content_type == "image/png"
        assert raster.data.startswith(b"\x89PNG")

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_raster_file(f"{temp_dir}/missing.png")

    def test_decodes_same_as_cv2(self, red_circle_file):
        buffer = normalize_image(load_raster_file(red_circle_file), 1024)
        expected = cv2.cvtColor(cv2.imread(red_circle_file), cv2.COLOR_BGR2RGB)

        assert np.array_equal(buffer.rgb, expected)
