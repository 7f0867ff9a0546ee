"""
Alpha matte construction from color distance.

Each pixel's opacity is a smoothstep of its squared RGB distance to the
background color. The ramp starts at ``tolerance**2`` (fully transparent at
or below) and ends at ``soft**2 = lerp(tol**2, hard**2, 0.5) * feather``
(fully opaque at or above), so ``feather`` widens or narrows a single
C1-continuous transition instead of driving a separate blur pass.
"""

import numpy as np

from iconpost.tracer import get_tracer, trace


def lerp(a, b, t):
    return a + (b - a) * t


def smoothstep(edge0, edge1, x):
    """
    Cubic Hermite ease between edge0 and edge1.

    Returns 0 at or below edge0 and 1 at or above edge1. When the edges
    coincide it is a step at edge0 (0 below, 1 at or above). Accepts scalars
    or arrays; scalars come back as float.
    """
    x_arr = np.asarray(x, dtype=np.float64)
    if edge1 == edge0:
        result = np.where(x_arr < edge0, 0.0, 1.0)
    else:
        t = np.clip((x_arr - edge0) / (edge1 - edge0), 0.0, 1.0)
        result = t * t * (3.0 - 2.0 * t)

    if result.ndim == 0:
        return float(result)
    return result


def to_byte(unit):
    """Map values in [0, 1] to uint8, rounding half up."""
    return np.floor(np.asarray(unit) * 255.0 + 0.5).astype(np.uint8)


def color_distance_sq(rgb, color):
    """Squared Euclidean RGB distance of every pixel to ``color``, as float32."""
    diff = rgb.astype(np.int32) - np.asarray(color, dtype=np.int32)
    return np.einsum("...c,...c->...", diff, diff).astype(np.float32)


def ramp_edges(tolerance, hardness, feather):
    """Squared-distance edges (tol**2, soft**2) of the opacity ramp."""
    tol2 = float(tolerance) ** 2
    hard2 = float(hardness) ** 2
    soft2 = lerp(tol2, hard2, 0.5) * float(feather)
    return tol2, soft2


@trace(label="build_alpha_matte")
def build_alpha_matte(buffer, background, params, min_ramp_gap=0.0):
    """
    Compute the (height, width) uint8 alpha channel for ``buffer``.

    ``background`` is a BackgroundColor; ``params`` a ProcessingParameters.
    A ramp whose soft edge does not lie above the tolerance edge collapses
    to a hard cut at ``tolerance``.
    """
    tracer = get_tracer()

    tol2, soft2 = ramp_edges(params.tolerance, params.hardness, params.feather)

    if params.hardness - params.tolerance < min_ramp_gap:
        tracer.event(
            f"Narrow ramp: hardness={params.hardness} tolerance={params.tolerance}; "
            "matte will be close to binary",
            level="WARN",
        )

    d2 = color_distance_sq(buffer.rgb, background.as_tuple())

    if soft2 <= tol2:
        tracer.event(
            f"Degenerate ramp: soft2={soft2:.0f} <= tol2={tol2:.0f}, using hard cut",
            level="WARN",
        )
        alpha = np.where(d2 > tol2, 255, 0).astype(np.uint8)
    else:
        alpha = to_byte(smoothstep(tol2, soft2, d2))

    opaque_ratio = float(np.mean(alpha == 255))
    clear_ratio = float(np.mean(alpha == 0))
    tracer.event(f"Alpha matte: opaque={opaque_ratio:.3f} clear={clear_ratio:.3f} tol2={tol2:.0f} soft2={soft2:.0f}")

    return alpha
