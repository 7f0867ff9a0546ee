"""
Alpha despeckling: blur, then re-harden.

A box blur on its own would leave the cutout edge permanently soft; pushing
the blurred value back through a narrow smoothstep around 50% removes
isolated stray pixels while keeping the main boundary crisp.
"""

import cv2
import numpy as np

from iconpost.matte.alpha import smoothstep, to_byte
from iconpost.tracer import get_tracer, trace


REHARDEN_LOW = 0.35
REHARDEN_HIGH = 0.65


def box_blur(alpha, radius=1):
    """
    Mean over the (2r+1) x (2r+1) neighbourhood, counting only in-bounds pixels.

    Returns a uint8 array of the same shape, rounded half up.
    """
    r = max(1, int(radius))
    ksize = (2 * r + 1, 2 * r + 1)

    src = alpha.astype(np.float32)
    sums = cv2.boxFilter(src, -1, ksize, normalize=False, borderType=cv2.BORDER_CONSTANT)
    counts = cv2.boxFilter(np.ones_like(src), -1, ksize, normalize=False, borderType=cv2.BORDER_CONSTANT)

    return np.floor(sums / counts + 0.5).astype(np.uint8)


@trace(label="despeckle")
def despeckle(alpha, rounds, radius=1):
    """
    Run ``rounds`` blur + re-threshold passes over ``alpha`` in place.

    Returns the same array. With zero rounds it is returned untouched.
    """
    tracer = get_tracer()

    for _ in range(int(rounds)):
        blurred = box_blur(alpha, radius)
        alpha[...] = to_byte(smoothstep(REHARDEN_LOW, REHARDEN_HIGH, blurred / 255.0))

    if rounds:
        tracer.event(f"Despeckled {rounds} round(s), radius={radius}")

    return alpha
