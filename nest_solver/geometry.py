# nest_solver/geometry.py
# Computational geometry for nesting:
# - piece outlines as polygons (rectangle / 16-gon circle / stored outline)
# - no-fit polygons: closed form for rectangle pairs, Minkowski hull otherwise
# - Graham-scan convex hull, even-odd point-in-polygon
# - axis-aligned rectangle overlap used by the fast rectangle packer
#
# Rectangles passed around as (x, y, w, h) tuples, points as (x, y).
# Degenerate input never raises here: callers get empty / zero-area results.

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from .config import DEFAULTS
from .types import (
    Circle,
    Complex,
    Geometry,
    PieceRequest,
    Point,
    Polygon,
    Rectangle,
    polygon_area,
    polygon_bbox,
)

Rect = Tuple[float, float, float, float]

_EPS = 1e-9


def cross(o: Point, a: Point, b: Point) -> float:
    """Z component of (a - o) x (b - o); > 0 for a left turn."""
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def rect_points(w: float, h: float, x: float = 0.0, y: float = 0.0) -> List[Point]:
    return [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]


def circle_points(radius: float, segments: int = DEFAULTS.circle_segments) -> List[Point]:
    """Regular polygon inscribed in the circle, bounding box at the origin."""
    step = 2.0 * math.pi / segments
    return [
        (radius + radius * math.cos(i * step), radius + radius * math.sin(i * step))
        for i in range(segments)
    ]


def geometry_points(geom: Geometry, w: float, h: float) -> List[Point]:
    """Outline of a shape; (w, h) is the fallback rectangle for bare outlines."""
    if isinstance(geom, Rectangle):
        return rect_points(geom.width, geom.height)
    if isinstance(geom, Circle):
        return circle_points(geom.radius)
    if isinstance(geom, Polygon):
        return list(geom.points) if geom.points else rect_points(w, h)
    if isinstance(geom, Complex):
        return list(geom.points) if geom.points else rect_points(w, h)
    raise TypeError(f"Unsupported geometry kind: {type(geom).__name__}")


def to_polygon(piece: PieceRequest) -> List[Point]:
    """Outline in the piece frame; bare polygon records fall back to the piece rectangle."""
    return geometry_points(piece.shape, piece.width, piece.height)


def complexity_score(geom: Geometry) -> float:
    """Placement priority: harder outlines first."""
    if isinstance(geom, Rectangle):
        return 1.0
    if isinstance(geom, Circle):
        return 2.0
    if isinstance(geom, Polygon):
        return 3.0 + 0.1 * len(geom.points)
    if isinstance(geom, Complex):
        return 5.0
    raise TypeError(f"Unsupported geometry kind: {type(geom).__name__}")


def normalize(points: Sequence[Point]) -> List[Point]:
    """Translate so the bounding box starts at (0, 0)."""
    if not points:
        return []
    mx = min(p[0] for p in points)
    my = min(p[1] for p in points)
    return [(x - mx, y - my) for x, y in points]


def rotate_polygon(points: Sequence[Point], degrees: int) -> List[Point]:
    """Rotate counter-clockwise by a multiple of 90 degrees, then normalize."""
    d = degrees % 360
    if d == 0:
        out = list(points)
    elif d == 90:
        out = [(-y, x) for x, y in points]
    elif d == 180:
        out = [(-x, -y) for x, y in points]
    elif d == 270:
        out = [(y, -x) for x, y in points]
    else:
        raise ValueError(f"Only quarter turns are supported, got {degrees}")
    return normalize(out)


def translate(points: Sequence[Point], dx: float, dy: float) -> List[Point]:
    return [(x + dx, y + dy) for x, y in points]


# ----------------------------
# Hull / containment
# ----------------------------

def convex_hull(points: Sequence[Point]) -> List[Point]:
    """
    Graham scan. Pivot = lowest point (leftmost on ties); the rest sorted by
    polar angle around it (nearer first on equal angle). Points that do not
    make a strict left turn are dropped, so collinear points are not kept.
    Fewer than 3 input points -> [].
    """
    if len(points) < 3:
        return []

    k = min(range(len(points)), key=lambda i: (points[i][1], points[i][0]))
    pivot = points[k]
    px, py = pivot
    rest = sorted(
        (p for i, p in enumerate(points) if i != k),
        key=lambda p: (math.atan2(p[1] - py, p[0] - px), (p[0] - px) ** 2 + (p[1] - py) ** 2),
    )

    hull: List[Point] = [pivot]
    for p in rest:
        while len(hull) > 1 and cross(hull[-2], hull[-1], p) <= 0:
            hull.pop()
        hull.append(p)

    # Points equal to the pivot sort first and survive as a second vertex
    # when everything else is collinear with them
    while len(hull) > 1 and hull[-1] == pivot:
        hull.pop()
    return hull


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Even-odd ray casting (ray towards +x)."""
    x, y = point
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def is_degenerate(polygon: Sequence[Point]) -> bool:
    return len(polygon) < 3 or polygon_area(polygon) <= _EPS


# ----------------------------
# No-fit polygons
# ----------------------------

def minkowski_nfp(fixed: Sequence[Point], moving: Sequence[Point]) -> List[Point]:
    """
    Convex NFP of `moving` around `fixed` (both in their own frames):
    hull of fixed ⊕ (−moving). A reference point strictly inside means overlap.
    """
    sums = [(fx - mx, fy - my) for fx, fy in fixed for mx, my in moving]
    return convex_hull(sums)


def rectangle_nfp(fixed: Tuple[float, float], moving: Tuple[float, float], kerf: float) -> List[Point]:
    """
    Closed-form NFP for two rectangles given as (w, h): a rectangle of
    (fw + mw + kerf) x (fh + mh + kerf) whose frame is the fixed piece's
    lower-left corner shifted by the moving piece's size plus half kerf.
    """
    fw, fh = fixed
    mw, mh = moving
    half = kerf / 2.0
    x0, y0 = -mw - half, -mh - half
    x1, y1 = fw + half, fh + half
    return [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]


def nfp_bbox(nfp: Sequence[Point]) -> Tuple[float, float]:
    return polygon_bbox(nfp)


# ----------------------------
# Axis-aligned rectangles
# ----------------------------

def expand_rect(rect: Rect, margin: float) -> Rect:
    x, y, w, h = rect
    return x - margin, y - margin, w + 2.0 * margin, h + 2.0 * margin


def overlap(a: Rect, b: Rect) -> bool:
    """True if the open interiors intersect (touching edges do not overlap)."""
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return not (ax + aw <= bx or bx + bw <= ax or ay + ah <= by or by + bh <= ay)


def overlap_area(a: Rect, b: Rect) -> float:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    left = max(ax, bx)
    right = min(ax + aw, bx + bw)
    bottom = max(ay, by)
    top = min(ay + ah, by + bh)
    if left >= right or bottom >= top:
        return 0.0
    return (right - left) * (top - bottom)


def grid_ceil(v: float, step: float) -> float:
    """Smallest grid coordinate >= v (tolerant to float noise)."""
    k = math.ceil(v / step - _EPS)
    if isinstance(step, int):
        return int(k * step)
    return k * step
