"""
Bitmap preparation for tracing.

Brings a PixelBuffer onto a bounded canvas, composites transparency onto
white, reduces it to a small fixed palette and thresholds luminance into a
boolean ink mask.
"""

import cv2
import numpy as np

from iconpost.io.load_image import resize_rgba
from iconpost.models import PixelBuffer
from iconpost.tracer import get_tracer, trace


AUTO_THRESHOLD = -1


def composite_on_white(pixels):
    """RGB of an RGBA array as if drawn over white; returns uint8 RGB."""
    a = pixels[:, :, 3:4].astype(np.float32) / 255.0
    rgb = 255.0 + (pixels[:, :, :3].astype(np.float32) - 255.0) * a
    return np.floor(rgb + 0.5).astype(np.uint8)


def reduce_palette(rgb, levels=6):
    """Snap each channel to ``levels`` evenly spaced values (levels**3 colors)."""
    levels = max(2, int(levels))
    step = 255.0 / (levels - 1)
    index = np.floor(rgb.astype(np.float32) / step + 0.5)
    return np.floor(index * step + 0.5).astype(np.uint8)


def luminance(rgb):
    """Rec. 709 luma, rounded, as uint8."""
    weights = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)
    return np.floor(rgb.astype(np.float32) @ weights + 0.5).clip(0, 255).astype(np.uint8)


def ink_mask(lum, threshold, invert=False):
    """
    Boolean mask of pixels to trace.

    Normally pixels darker than ``threshold`` are ink; ``invert`` traces the
    pixels brighter than it. ``AUTO_THRESHOLD`` picks the level with Otsu.
    """
    tracer = get_tracer()

    if threshold == AUTO_THRESHOLD:
        # Otsu's level is the brightest value of the dark class
        level, _ = cv2.threshold(lum, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        tracer.event(f"Otsu threshold: {level:.0f}")
        dark = lum <= level
        return ~dark if invert else dark

    if invert:
        return lum > threshold
    return lum < threshold


@trace(label="prepare_bitmap")
def prepare_bitmap(buffer, params, max_size=1024, palette_levels=6):
    """
    Build the boolean ink mask for ``buffer``.

    Returns ``(mask, canvas)`` where canvas is the bounded PixelBuffer the
    mask was computed from (its size is the SVG size).
    """
    tracer = get_tracer()

    pixels = resize_rgba(buffer.pixels, max_size)
    canvas = PixelBuffer(width=pixels.shape[1], height=pixels.shape[0], pixels=pixels)

    rgb = reduce_palette(composite_on_white(canvas.pixels), palette_levels)
    mask = ink_mask(luminance(rgb), params.threshold, params.invert)

    tracer.event(f"Ink mask {canvas.width}x{canvas.height}: ink_ratio={float(np.mean(mask)):.3f}")

    return mask, canvas
