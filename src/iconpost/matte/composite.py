"""
Compositing the computed alpha back onto the source pixels, and PNG encoding.
"""

import cv2
import numpy as np

from iconpost.errors import DecodeError
from iconpost.models import PixelBuffer, hex_to_rgb
from iconpost.tracer import get_tracer, trace


def flatten_onto(rgb, alpha, matte_rgb):
    """Blend ``rgb`` over a solid ``matte_rgb`` using ``alpha``; returns uint8 RGB."""
    a = alpha.astype(np.float32)[:, :, None] / 255.0
    matte = np.asarray(matte_rgb, dtype=np.float32)
    blended = rgb.astype(np.float32) * a + matte * (1.0 - a)
    return np.floor(blended + 0.5).astype(np.uint8)


@trace(label="composite")
def composite(buffer, alpha, matte_color=None):
    """
    Build the output PixelBuffer.

    R, G, B are copied from ``buffer`` unchanged and ``alpha`` replaces the
    alpha channel. With ``matte_color`` the result is flattened onto that
    color and alpha becomes 255 everywhere.
    """
    tracer = get_tracer()

    out = np.empty_like(buffer.pixels)

    if matte_color:
        out[:, :, :3] = flatten_onto(buffer.rgb, alpha, hex_to_rgb(matte_color))
        out[:, :, 3] = 255
        tracer.event(f"Flattened onto matte {matte_color}")
    else:
        out[:, :, :3] = buffer.rgb
        out[:, :, 3] = alpha

    return PixelBuffer(width=buffer.width, height=buffer.height, pixels=out)


def encode_png(buffer):
    """Encode a PixelBuffer as PNG bytes."""
    bgra = cv2.cvtColor(buffer.pixels, cv2.COLOR_RGBA2BGRA)
    ok, encoded = cv2.imencode(".png", bgra)
    if not ok:
        raise DecodeError("PNG encoding failed")
    return encoded.tobytes()
