"""
Background color estimation from the image border.

Only the outermost rows and columns are sampled, so the cost grows with the
perimeter rather than the area. A per-channel median keeps a few foreground
pixels touching the edge from dragging the estimate.
"""

import math

import numpy as np

from iconpost.models import BackgroundColor
from iconpost.tracer import get_tracer, trace


def border_samples(rgb, samples_per_side=256, max_samples=5000):
    """
    Collect RGB samples along the four image borders.

    The stride is ``max(1, max(w, h) // samples_per_side)``. Samples are
    ordered top/bottom pairs then left/right pairs; when there are more than
    ``max_samples`` every ``ceil(n / max_samples)``-th one is kept.

    Returns an (n, 3) uint8 array.
    """
    height, width = rgb.shape[:2]
    step = max(1, max(width, height) // samples_per_side)

    xs = np.arange(0, width, step)
    ys = np.arange(0, height, step)

    rows = np.stack([rgb[0, xs], rgb[height - 1, xs]], axis=1).reshape(-1, 3)
    cols = np.stack([rgb[ys, 0], rgb[ys, width - 1]], axis=1).reshape(-1, 3)
    samples = np.concatenate([rows, cols], axis=0)

    if len(samples) > max_samples:
        samples = samples[::math.ceil(len(samples) / max_samples)]

    return samples


def median_color(samples):
    """Per-channel median (upper median for even counts)."""
    ordered = np.sort(np.asarray(samples), axis=0)
    mid = ordered[len(ordered) // 2]
    return BackgroundColor(r=int(mid[0]), g=int(mid[1]), b=int(mid[2]))


@trace(label="estimate_background")
def estimate_background(buffer, samples_per_side=256, max_samples=5000):
    """Estimate the background color of a PixelBuffer from its border."""
    tracer = get_tracer()

    samples = border_samples(buffer.rgb, samples_per_side, max_samples)
    color = median_color(samples)

    tracer.event(f"Background estimate rgb={color.as_tuple()} from {len(samples)} samples")

    return color
