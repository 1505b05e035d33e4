"""Planar geometry of quadrilateral footprints.

Small helpers used to bin footprints: areas, winding, point containment and
clipping a (convex or simple) polygon against an axis-aligned grid cell.
"""

from __future__ import annotations

import logging

import numpy as np

from ..errors import InvalidGeometryError

logger = logging.getLogger(__name__)

# Relative area (to the squared vertex span) under which a quad is degenerate.
DEGENERATE_AREA_TOLERANCE = 1e-12


def _cross2(ax, ay, bx, by):
    """2D cross product: a[0]*b[1] - a[1]*b[0]."""
    return ax * by - ay * bx


def signed_polygon_area(x, y) -> float:
    """Shoelace area of a polygon, positive when counter-clockwise."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size < 3:
        return 0.0
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def quadrilateral_area(x, y) -> float:
    """Area of a simple quadrilateral: half the cross product of its diagonals."""
    return 0.5 * abs(_cross2(x[2] - x[0], y[2] - y[0], x[3] - x[1], y[3] - y[1]))


def _segments_cross(x, y, i, j) -> bool:
    """True if edge i->i+1 properly intersects edge j->j+1 of a closed ring."""
    n = len(x)
    ax, ay, bx, by = x[i], y[i], x[(i + 1) % n], y[(i + 1) % n]
    cx, cy, dx, dy = x[j], y[j], x[(j + 1) % n], y[(j + 1) % n]
    d1 = _cross2(bx - ax, by - ay, cx - ax, cy - ay)
    d2 = _cross2(bx - ax, by - ay, dx - ax, dy - ay)
    d3 = _cross2(dx - cx, dy - cy, ax - cx, ay - cy)
    d4 = _cross2(dx - cx, dy - cy, bx - cx, by - cy)
    return d1 * d2 < 0 and d3 * d4 < 0


def is_self_intersecting(x, y) -> bool:
    """True if the opposite edges of a quadrilateral ring cross (a bow-tie)."""
    return _segments_cross(x, y, 0, 2) or _segments_cross(x, y, 1, 3)


def reorder_quadrilateral(x, y, strict: bool = False):
    """Reorder four vertices into a simple counter-clockwise ring.

    Parameters
    ----------
    x, y : array-like
        Four projected vertices in nominal ring order (SW, SE, NE, NW).
    strict : bool, optional
        Raise `InvalidGeometryError` instead of returning None for degenerate
        input. Default=False.

    Returns
    -------
    tuple[np.ndarray, np.ndarray] or None
        Counter-clockwise vertices, or None if the vertices do not form a
        quadrilateral with positive area.

    Notes
    -----
    Projection can flip or twist the nominal corner order near the poles or
    the antimeridian. A twisted (bow-tie) ring is untangled by sorting the
    vertices by angle about their mean, and a clockwise ring is reversed.
    """
    x = np.asarray(x, dtype=float).copy()
    y = np.asarray(y, dtype=float).copy()

    def invalid(reason):
        if strict:
            raise InvalidGeometryError(f"Invalid quadrilateral {list(zip(x.tolist(), y.tolist()))}: {reason}")
        return None

    if x.shape != (4,) or y.shape != (4,):
        return invalid("expected exactly four vertices")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        return invalid("non-finite vertex")

    if is_self_intersecting(x, y):
        order = np.argsort(np.arctan2(y - y.mean(), x - x.mean()), kind="stable")
        x, y = x[order], y[order]

    area = signed_polygon_area(x, y)
    if area < 0:
        x, y = x[::-1].copy(), y[::-1].copy()
        area = -area

    span2 = (x.max() - x.min()) ** 2 + (y.max() - y.min()) ** 2
    if not area > DEGENERATE_AREA_TOLERANCE * span2:
        return invalid("zero area")
    if is_self_intersecting(x, y):
        return invalid("self-intersecting")
    return x, y


def point_in_polygon(px, py, x, y) -> np.ndarray:
    """Crossing-number test of points (vectorised) against one polygon.

    Points exactly on the lower/left edges count as inside, on the upper/right
    edges as outside, so adjacent polygons never both claim a point.
    """
    px = np.asarray(px, dtype=float)
    py = np.asarray(py, dtype=float)
    inside = np.zeros(np.broadcast(px, py).shape, dtype=bool)
    n = len(x)
    for i in range(n):
        x1, y1 = x[i], y[i]
        x2, y2 = x[(i + 1) % n], y[(i + 1) % n]
        spans = (y1 <= py) != (y2 <= py)
        with np.errstate(divide="ignore", invalid="ignore"):
            x_cross = x1 + (py - y1) * (x2 - x1) / (y2 - y1)
        inside ^= spans & (px < x_cross)
    return inside


def clip_polygon_to_rectangle(x, y, xmin, ymin, xmax, ymax) -> tuple[np.ndarray, np.ndarray]:
    """Clip a polygon to an axis-aligned rectangle (Sutherland-Hodgman).

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Vertices of the clipped polygon. Empty if fewer than three vertices
        remain (no overlap or only an edge/corner touch).
    """
    ring = list(zip(np.asarray(x, dtype=float).tolist(), np.asarray(y, dtype=float).tolist()))

    # Each boundary: (inside test, intersection with the boundary line).
    def x_cut(p, q, xb):
        t = (xb - p[0]) / (q[0] - p[0])
        return xb, p[1] + t * (q[1] - p[1])

    def y_cut(p, q, yb):
        t = (yb - p[1]) / (q[1] - p[1])
        return p[0] + t * (q[0] - p[0]), yb

    boundaries = (
        (lambda p: p[0] >= xmin, lambda p, q: x_cut(p, q, xmin)),
        (lambda p: p[0] <= xmax, lambda p, q: x_cut(p, q, xmax)),
        (lambda p: p[1] >= ymin, lambda p, q: y_cut(p, q, ymin)),
        (lambda p: p[1] <= ymax, lambda p, q: y_cut(p, q, ymax)),
    )

    for is_inside, cut in boundaries:
        if not ring:
            break
        clipped = []
        prev = ring[-1]
        prev_in = is_inside(prev)
        for curr in ring:
            curr_in = is_inside(curr)
            if curr_in:
                if not prev_in:
                    clipped.append(cut(prev, curr))
                clipped.append(curr)
            elif prev_in:
                clipped.append(cut(prev, curr))
            prev, prev_in = curr, curr_in
        ring = clipped

    if len(ring) < 3:
        return np.empty(0), np.empty(0)
    cx, cy = np.array(ring).T
    return cx, cy


def clipped_area(x, y, xmin, ymin, xmax, ymax) -> float:
    """Area of the part of a counter-clockwise polygon inside a rectangle."""
    cx, cy = clip_polygon_to_rectangle(x, y, xmin, ymin, xmax, ymax)
    if cx.size < 3:
        return 0.0
    return max(signed_polygon_area(cx, cy), 0.0)
