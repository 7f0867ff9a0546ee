"""
Image decoding and normalization for iconpost.

Turns arbitrary raster bytes into an RGBA PixelBuffer that fits a square
canvas. Sources are only ever shrunk, never enlarged.
"""

import os

import cv2
import numpy as np

from iconpost.errors import DecodeError
from iconpost.models import PixelBuffer, RasterBytes
from iconpost.tracer import get_tracer, trace


def _to_uint8(img):
    """Scale 16-bit and float images down to 8 bits per channel."""
    if img.dtype == np.uint8:
        return img
    if img.dtype == np.uint16:
        return np.floor(img.astype(np.float32) / 257.0 + 0.5).astype(np.uint8)
    if np.issubdtype(img.dtype, np.floating):
        return np.floor(np.clip(img, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
    return np.clip(img, 0, 255).astype(np.uint8)


def _to_rgba(img):
    """Convert a decoded OpenCV image (grey/BGR/BGRA) to RGBA."""
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)

    channels = img.shape[2]
    if channels == 1:
        return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2RGBA)
    if channels == 2:
        # grey + alpha
        rgba = cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2RGBA)
        rgba[:, :, 3] = img[:, :, 1]
        return rgba
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)

    raise DecodeError(details=f"unsupported channel count: {channels}")


def fit_within(width, height, max_size):
    """
    Target size for fitting (width, height) inside a max_size square.

    Preserves aspect ratio and never enlarges.
    """
    scale = min(max_size / width, max_size / height, 1.0)
    if scale >= 1.0:
        return width, height
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


def resize_rgba(rgba, max_size):
    """Shrink an RGBA array to fit max_size; returned as-is when it already fits."""
    height, width = rgba.shape[:2]
    new_width, new_height = fit_within(width, height, max_size)
    if (new_width, new_height) == (width, height):
        return rgba
    return cv2.resize(rgba, (new_width, new_height), interpolation=cv2.INTER_AREA)


@trace(label="normalize_image")
def normalize_image(raster, max_size):
    """
    Decode RasterBytes into a PixelBuffer no larger than max_size x max_size.

    Always 4 channels; an opaque alpha channel is added when the source has
    none. Raises DecodeError if the bytes are not a decodable image.
    """
    tracer = get_tracer()

    data = raster.data if isinstance(raster, RasterBytes) else bytes(raster)
    if not data:
        raise DecodeError(details="empty image body")

    try:
        img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    except cv2.error as exc:
        raise DecodeError(details=f"decoder error: {exc}") from exc

    if img is None or img.size == 0:
        raise DecodeError(details="unrecognized or corrupt image data")

    source_height, source_width = img.shape[:2]
    rgba = _to_rgba(_to_uint8(img))
    rgba = resize_rgba(rgba, max_size)

    height, width = rgba.shape[:2]
    tracer.event(f"Normalized image: {source_width}x{source_height} -> {width}x{height}")

    return PixelBuffer(width=width, height=height, pixels=rgba)


def load_raster_file(path):
    """
    Read a local image file as RasterBytes.

    Raises FileNotFoundError if path does not exist.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Image not found: {path}")

    with open(path, "rb") as f:
        data = f.read()

    return RasterBytes(data=data, content_type=_guess_content_type(path), source=os.path.abspath(path))


def _guess_content_type(path):
    ext = os.path.splitext(path)[1].lower()
    return {
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".webp": "image/webp",
        ".bmp": "image/bmp",
        ".tif": "image/tiff",
        ".tiff": "image/tiff",
        ".gif": "image/gif",
    }.get(ext, "application/octet-stream")
