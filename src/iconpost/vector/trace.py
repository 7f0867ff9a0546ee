"""
Bitmap tracing: boolean ink mask to SVG path data.

Outlines follow pixel edges, not pixel centres: the mask is drawn onto a
lattice at twice the resolution where every ink pixel covers its own corners
and edges, and OpenCV's two-level contour hierarchy (outer boundaries and
holes) of that lattice lands exactly on pixel corners. Filling the combined
path with the even-odd rule reproduces the holes. Outlines enclosing up to
``turd_size`` pixels are dropped before fitting.
"""

import cv2
import numpy as np

from iconpost.tracer import get_tracer, trace
from iconpost.vector.curves import (
    beziers_to_path,
    fit_closed_outline,
    polygon_to_path,
    simplify_closed_outline,
)


POLYGON_EPSILON = 0.5
LATTICE_SCALE = 2
CORNER_SPAN = 3


def edge_lattice(mask):
    """
    (2h+1, 2w+1) uint8 lattice of ``mask``.

    Odd indices are pixel centres, even indices pixel corners and edges; an
    ink pixel at (y, x) fills lattice cells [2y, 2y+2] x [2x, 2x+2].
    """
    h, w = mask.shape
    lattice = np.zeros((LATTICE_SCALE * h + 1, LATTICE_SCALE * w + 1), dtype=np.uint8)
    lattice[1::2, 1::2] = np.asarray(mask, dtype=bool)
    return cv2.dilate(lattice * 255, np.ones((3, 3), dtype=np.uint8))


def outline_pixel_area(outline):
    """Pixels enclosed by a pixel-edge outline (holes count the hole's pixels)."""
    return abs(cv2.contourArea(np.asarray(outline, dtype=np.float32)))


def find_outlines(mask, turd_size=2):
    """
    Closed outlines of the ink regions in ``mask``.

    Returns a list of (n, 2) float arrays in SVG coordinates, with vertices
    on pixel corners and half-pixel steps between them. Outlines enclosing
    at most ``turd_size`` pixels are dropped; a dropped hole is filled in.
    """
    if not np.any(mask):
        return []

    contours, _hierarchy = cv2.findContours(edge_lattice(mask), cv2.RETR_CCOMP, cv2.CHAIN_APPROX_NONE)

    outlines = []
    for contour in contours:
        outline = contour.reshape(-1, 2).astype(np.float64) / LATTICE_SCALE
        if outline_pixel_area(outline) <= turd_size:
            continue
        outlines.append(outline)
    return outlines


@trace(label="trace_bitmap")
def trace_bitmap(mask, turd_size=2, curve_tolerance=1.0, corner_angle=60.0, max_fit_depth=8):
    """
    Trace ``mask`` into SVG path data.

    With ``curve_tolerance`` > 0 outlines become cubic Beziers fitted within
    that many pixels; with 0 they are simplified polygons. Returns one
    ``d`` string (possibly empty) covering every outline.
    """
    tracer = get_tracer()

    outlines = find_outlines(mask, turd_size)
    parts = []
    segment_count = 0

    for outline in outlines:
        if curve_tolerance > 0 and len(outline) >= 3:
            beziers = fit_closed_outline(outline, curve_tolerance, corner_angle, max_fit_depth,
                                         span=CORNER_SPAN * LATTICE_SCALE)
            segment_count += len(beziers)
            part = beziers_to_path(beziers)
        else:
            polygon = simplify_closed_outline(outline, POLYGON_EPSILON)
            segment_count += len(polygon)
            part = polygon_to_path(polygon)
        if part:
            parts.append(part)

    tracer.event(f"Traced {len(parts)} outlines, {segment_count} segments")

    return " ".join(parts)
