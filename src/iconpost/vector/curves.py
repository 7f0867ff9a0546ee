"""
Curve fitting for traced outlines.

Closed pixel outlines are split at corners and each run between corners is
approximated by cubic Bezier segments with a Schneider-style recursive fit.
Polygon output uses Ramer-Douglas-Peucker simplification instead.

Beziers are (4, 2) float arrays: start, control 1, control 2, end.
"""

import numpy as np


def line_to_bezier(p0, p1):
    """Degenerate cubic for a straight segment (controls at 1/3 and 2/3)."""
    p0 = np.asarray(p0, dtype=np.float64)
    p1 = np.asarray(p1, dtype=np.float64)
    return np.array([p0, p0 + (p1 - p0) / 3.0, p0 + 2.0 * (p1 - p0) / 3.0, p1])


def _unit(vec):
    norm = np.linalg.norm(vec)
    if norm > 0:
        return vec / norm
    return vec


def estimate_tangent(points, index, span=1):
    """
    Unit direction of travel at ``points[index]``.

    Looks ``span`` points ahead and/or behind; endpoints use one side only.
    """
    n = len(points)
    if index == 0:
        tangent = points[min(span, n - 1)] - points[0]
    elif index == n - 1:
        tangent = points[-1] - points[max(0, n - 1 - span)]
    else:
        tangent = points[min(index + span, n - 1)] - points[max(index - span, 0)]
    return _unit(tangent)


def chord_length_parameterize(points):
    """Parameter values in [0, 1] proportional to cumulative chord length."""
    seg = np.linalg.norm(np.diff(points, axis=0), axis=1)
    t = np.concatenate([[0.0], np.cumsum(seg)])
    if t[-1] > 0:
        t = t / t[-1]
    return t


def bernstein(t):
    """Cubic Bernstein basis at each t, shape (n, 4)."""
    t = np.asarray(t, dtype=np.float64)
    mt = 1.0 - t
    return np.stack([mt ** 3, 3 * mt ** 2 * t, 3 * mt * t ** 2, t ** 3], axis=-1)


def evaluate_bezier(bezier, t):
    """Points on ``bezier`` at parameter(s) t."""
    return bernstein(t) @ bezier


def _fit_bezier_to_pts(points, t_values, tangent_start, tangent_end):
    """Least-squares cubic through the endpoints with fixed end tangents."""
    p0 = points[0]
    p3 = points[-1]
    b = bernstein(t_values)

    # C(t) = (B0+B1) p0 + (B2+B3) p3 + a1 B1 ts - a2 B2 te
    a1 = b[:, 1:2] * tangent_start
    a2 = -b[:, 2:3] * tangent_end
    target = points - (b[:, 0:1] + b[:, 1:2]) * p0 - (b[:, 2:3] + b[:, 3:4]) * p3

    c00 = np.sum(a1 * a1)
    c01 = np.sum(a1 * a2)
    c11 = np.sum(a2 * a2)
    x0 = np.sum(a1 * target)
    x1 = np.sum(a2 * target)

    seg_len = np.linalg.norm(p3 - p0)
    det = c00 * c11 - c01 * c01

    if abs(det) < 1e-10:
        alpha1 = alpha2 = seg_len / 3.0
    else:
        alpha1 = (c11 * x0 - c01 * x1) / det
        alpha2 = (c00 * x1 - c01 * x0) / det

    if alpha1 <= 1e-6 * seg_len or alpha2 <= 1e-6 * seg_len:
        alpha1 = alpha2 = seg_len / 3.0

    alpha1 = min(alpha1, seg_len)
    alpha2 = min(alpha2, seg_len)

    return np.array([p0, p0 + alpha1 * tangent_start, p3 - alpha2 * tangent_end, p3])


def _compute_max_error(points, bezier, t_values):
    """Largest fit distance and the interior index to split at."""
    errors = np.linalg.norm(points - evaluate_bezier(bezier, t_values), axis=1)
    split_point = int(np.argmax(errors))
    split_point = min(max(split_point, 1), len(points) - 2)
    return float(errors.max()), split_point


def _fit_cubic(points, tangent_start, tangent_end, error_tolerance, depth_left, span):
    if len(points) <= 2:
        return [line_to_bezier(points[0], points[-1])]

    t_values = chord_length_parameterize(points)
    bezier = _fit_bezier_to_pts(points, t_values, tangent_start, tangent_end)
    max_error, split_point = _compute_max_error(points, bezier, t_values)

    if max_error < error_tolerance or depth_left <= 0:
        return [bezier]

    tangent_split = estimate_tangent(points, split_point, span)

    left = _fit_cubic(points[:split_point + 1], tangent_start, tangent_split,
                      error_tolerance, depth_left - 1, span)
    right = _fit_cubic(points[split_point:], tangent_split, tangent_end,
                       error_tolerance, depth_left - 1, span)
    return left + right


def fit_cubic_beziers(points, error_tolerance, max_depth=4, span=1,
                      tangent_start=None, tangent_end=None):
    """
    Fit cubic Beziers to an open polyline.

    The first segment starts exactly at the first point and the last ends
    exactly at the last point. Fewer than two points yields an empty list.
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) < 2:
        return []
    if len(points) == 2:
        return [line_to_bezier(points[0], points[1])]

    if tangent_start is None:
        tangent_start = estimate_tangent(points, 0, span)
    if tangent_end is None:
        tangent_end = estimate_tangent(points, len(points) - 1, span)

    return _fit_cubic(points, tangent_start, tangent_end, error_tolerance, max_depth, span)


def find_corners(points, corner_angle, span=3):
    """
    Indices of corners on a closed outline.

    A point is a corner when the direction of travel turns by more than
    ``corner_angle`` degrees between ``span`` points behind and ahead, and
    no stronger corner lies within ``span`` points of it.
    """
    n = len(points)
    if n < 2 * span + 2:
        return []

    incoming = points - np.roll(points, span, axis=0)
    outgoing = np.roll(points, -span, axis=0) - points
    norms = np.linalg.norm(incoming, axis=1) * np.linalg.norm(outgoing, axis=1)
    norms[norms == 0] = 1.0
    cos_turn = np.clip(np.sum(incoming * outgoing, axis=1) / norms, -1.0, 1.0)
    turn = np.degrees(np.arccos(cos_turn))

    corners = []
    for idx in np.argsort(-turn):
        if turn[idx] <= corner_angle:
            break
        if all(min(abs(idx - c), n - abs(idx - c)) > span for c in corners):
            corners.append(int(idx))
    return sorted(corners)


def fit_closed_outline(points, error_tolerance, corner_angle=60.0, max_depth=8, span=3):
    """
    Fit a closed outline with cubic Beziers, keeping sharp corners sharp.

    Returns a list of beziers whose last end point is the first start point.
    """
    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n < 3:
        return []

    corners = find_corners(points, corner_angle, span)

    if not corners:
        loop = np.vstack([points, points[:1]])
        tangent = _unit(points[span % n] - points[-span % n])
        return fit_cubic_beziers(loop, error_tolerance, max_depth, span,
                                 tangent_start=tangent, tangent_end=tangent)

    beziers = []
    for i, start in enumerate(corners):
        end = corners[(i + 1) % len(corners)]
        if end > start:
            run = points[start:end + 1]
        else:
            run = np.vstack([points[start:], points[:end + 1]])
        beziers.extend(fit_cubic_beziers(run, error_tolerance, max_depth, span))
    return beziers


def rdp_indices(points, epsilon):
    """
    Ramer-Douglas-Peucker on an open polyline; returns kept indices in order.

    Iterative, so long outlines do not hit the recursion limit.
    """
    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n <= 2:
        return list(range(n))

    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]

    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        distances = _perpendicular_distances(points[first + 1:last], points[first], points[last])
        offset = int(np.argmax(distances))
        if distances[offset] > epsilon:
            split = first + 1 + offset
            keep[split] = True
            stack.append((first, split))
            stack.append((split, last))

    return [int(i) for i in np.flatnonzero(keep)]


def _perpendicular_distances(points, start, end):
    """Distance from each point to the segment start-end."""
    line_vec = end - start
    line_len = np.linalg.norm(line_vec)

    if line_len == 0:
        return np.linalg.norm(points - start, axis=1)

    line_unit = line_vec / line_len
    projections = np.clip((points - start) @ line_unit, 0, line_len)
    nearest = start + np.outer(projections, line_unit)
    return np.linalg.norm(points - nearest, axis=1)


def simplify_closed_outline(points, epsilon):
    """RDP for a closed outline: split at the point farthest from the start."""
    points = np.asarray(points, dtype=np.float64)
    if len(points) <= 3:
        return points
    far = int(np.argmax(np.linalg.norm(points - points[0], axis=1)))
    first = points[:far + 1]
    second = np.vstack([points[far:], points[:1]])
    kept_first = first[rdp_indices(first, epsilon)]
    kept_second = second[rdp_indices(second, epsilon)]
    return np.vstack([kept_first[:-1], kept_second[:-1]])


def beziers_to_path(beziers, precision=2):
    """SVG path data for a closed run of beziers."""
    if not beziers:
        return ""
    fmt = f"{{:.{precision}f}}"

    def pt(p):
        return f"{fmt.format(p[0])} {fmt.format(p[1])}"

    parts = [f"M {pt(beziers[0][0])}"]
    for bez in beziers:
        parts.append(f"C {pt(bez[1])} {pt(bez[2])} {pt(bez[3])}")
    parts.append("Z")
    return " ".join(parts)


def polygon_to_path(points, precision=2):
    """SVG path data for a closed polygon."""
    if len(points) < 2:
        return ""
    fmt = f"{{:.{precision}f}}"
    coords = [f"{fmt.format(x)} {fmt.format(y)}" for x, y in points]
    return "M " + " L ".join(coords) + " Z"
