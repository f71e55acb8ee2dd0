# nest_solver/types.py
# Core data structures for plate nesting (plasma / oxy-fuel cutting).
# Keep this file dependency-light so it can be imported everywhere.

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

Point = Tuple[float, float]


# ----------------------------
# Geometry (closed set of shape kinds)
# ----------------------------

@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned rectangle with its lower-left corner at the origin."""
    width: float
    height: float

    @property
    def bounding_box(self) -> Tuple[float, float]:
        return self.width, self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def perimeter(self) -> float:
        return 2.0 * (self.width + self.height)


@dataclass(frozen=True)
class Circle:
    radius: float

    @property
    def bounding_box(self) -> Tuple[float, float]:
        return 2.0 * self.radius, 2.0 * self.radius

    @property
    def area(self) -> float:
        return math.pi * self.radius * self.radius

    @property
    def perimeter(self) -> float:
        return 2.0 * math.pi * self.radius


@dataclass(frozen=True)
class Polygon:
    """Simple polygon outline, points in order (either winding)."""
    points: Tuple[Point, ...]

    @property
    def bounding_box(self) -> Tuple[float, float]:
        return polygon_bbox(self.points)

    @property
    def area(self) -> float:
        return polygon_area(self.points)

    @property
    def perimeter(self) -> float:
        return polygon_perimeter(self.points)


@dataclass(frozen=True)
class Complex:
    """
    Imported outline (DXF/CAD). `points` may be empty when the importer could
    only provide a bounding box; the piece rectangle is used then.
    """
    points: Tuple[Point, ...] = ()
    source_file: str = ""

    @property
    def bounding_box(self) -> Tuple[float, float]:
        return polygon_bbox(self.points)

    @property
    def area(self) -> float:
        return polygon_area(self.points)

    @property
    def perimeter(self) -> float:
        return polygon_perimeter(self.points)


Geometry = Union[Rectangle, Circle, Polygon, Complex]


# ----------------------------
# Inputs
# ----------------------------

@dataclass(frozen=True)
class PieceRequest:
    """
    A requested piece type. Not validated on construction: invalid sizes or
    quantities are reported as issues by validate.validate_pieces().
    """
    id: str
    width: float
    height: float
    quantity: int = 1

    # False for grain-bound or marked pieces
    allow_rotation: bool = True

    tag: str = ""
    geometry: Optional[Geometry] = None
    material: Optional[str] = None
    thickness: Optional[float] = None

    @property
    def shape(self) -> Geometry:
        if self.geometry is None:
            return Rectangle(self.width, self.height)
        return self.geometry

    @property
    def label(self) -> str:
        return self.tag or self.id

    @property
    def bbox_area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True)
class SheetSpec:
    """Stock plate shared by every sheet opened in one run."""
    width: float
    height: float
    kerf: float = 2.0
    thickness: float = 6.0
    material: str = "A36"

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)


@dataclass(frozen=True)
class PieceInstance:
    """
    A single instance (expanded from quantity). Immutable: re-orienting an
    instance returns a new value, the PieceRequest is only referenced.
    """
    uid: str              # unique id, e.g. "flange#3"
    piece: PieceRequest
    w: float
    h: float
    flipped: bool = False  # w/h swapped relative to the request

    @property
    def can_rotate(self) -> bool:
        return self.piece.allow_rotation

    @property
    def area(self) -> float:
        return self.w * self.h

    def flip(self) -> "PieceInstance":
        return replace(self, w=self.h, h=self.w, flipped=not self.flipped)


def expand_pieces(pieces: Iterable[PieceRequest]) -> List[PieceInstance]:
    """Expand quantity into unique instances (stable order)."""
    out: List[PieceInstance] = []
    for p in pieces:
        for k in range(1, p.quantity + 1):
            out.append(PieceInstance(uid=f"{p.id}#{k}", piece=p, w=p.width, h=p.height))
    return out


# ----------------------------
# Outputs / result objects
# ----------------------------

@dataclass(frozen=True)
class PlacedPiece:
    """Placed piece on a sheet, lower-left origin, dimensions after orientation."""
    uid: str
    sheet_index: int
    x: float
    y: float
    width: float
    height: float
    rotation: int = 0  # degrees: 0/90 for rectangles, 0/90/180/270 for outlines
    tag: str = ""
    piece: Optional[PieceRequest] = field(default=None, compare=False, repr=False)

    # Oriented outline in sheet coordinates (outline placements only)
    outline: Optional[Tuple[Point, ...]] = field(default=None, compare=False, repr=False)

    def right(self) -> float:
        return self.x + self.width

    def top(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def expanded(self, kerf: float) -> Tuple[float, float, float, float]:
        """Kerf-expanded box (x0, y0, x1, y1): each side inflated by kerf/2."""
        m = kerf / 2.0
        return self.x - m, self.y - m, self.x + self.width + m, self.y + self.height + m


@dataclass(frozen=True)
class RejectedPiece:
    """Instances of a request that were not placed (counted, never dropped silently)."""
    piece: PieceRequest
    count: int
    kind: str
    reason: str
    uid: Optional[str] = None


@dataclass(frozen=True)
class PlacementIssue:
    """Warning collected during a run (invalid input, rejection, degeneracy)."""
    kind: str
    message: str
    level: str = "WARN"
    piece_id: Optional[str] = None
    uid: Optional[str] = None


@dataclass
class SheetResult:
    """One opened sheet: placements + summary metrics (filled by metrics.py)."""
    sheet_index: int
    sheet: SheetSpec
    placements: List[PlacedPiece] = field(default_factory=list)

    efficiency: float = 0.0      # percent
    waste_area: float = 0.0      # mm²
    utilized_area: float = 0.0   # mm²
    weight: float = 0.0          # kg

    @property
    def id(self) -> str:
        return f"sheet-{self.sheet_index + 1}"


ENTRY = "entry"
START = "start"
END = "end"
CUT_POINT_KINDS = (ENTRY, START, END)


@dataclass(frozen=True)
class CutPoint:
    x: float
    y: float
    piece: PlacedPiece = field(compare=False, repr=False)
    kind: str = START

    def __post_init__(self):
        if self.kind not in CUT_POINT_KINDS:
            raise ValueError(f"CutPoint.kind must be one of {CUT_POINT_KINDS}, got {self.kind!r}")


@dataclass
class CutPath:
    """Ordered torch path over one sheet."""
    points: List[CutPoint] = field(default_factory=list)
    total_distance: float = 0.0
    pierce_points: int = 0
    sheet_index: int = 0


@dataclass
class OptimizationResult:
    """Full result across sheets, plus rejections and optional sequencing."""
    sheets: List[SheetResult] = field(default_factory=list)

    # Totals (filled by metrics.finalize_result)
    total_sheets: int = 0
    total_waste_area: float = 0.0
    average_efficiency: float = 0.0
    total_weight: float = 0.0
    material_cost: float = 0.0

    rejected: List[RejectedPiece] = field(default_factory=list)
    issues: List[PlacementIssue] = field(default_factory=list)

    # One entry per sheet, filled by the orchestrator
    cut_paths: List[CutPath] = field(default_factory=list)
    programs: List[List[str]] = field(default_factory=list)
    metrics: Optional[Dict[str, Any]] = None

    @property
    def cut_path(self) -> Optional[CutPath]:
        return self.cut_paths[0] if self.cut_paths else None

    @property
    def program(self) -> Optional[List[str]]:
        return self.programs[0] if self.programs else None

    def placements(self) -> List[PlacedPiece]:
        return [pl for sh in self.sheets for pl in sh.placements]

    def placed_count(self) -> int:
        return sum(len(sh.placements) for sh in self.sheets)

    def rejected_count(self) -> int:
        return sum(r.count for r in self.rejected)


# ----------------------------
# Helper utilities
# ----------------------------

def polygon_area(points: Sequence[Point]) -> float:
    """Shoelace area (absolute). Fewer than 3 points -> 0."""
    n = len(points)
    if n < 3:
        return 0.0
    s = 0.0
    for i in range(n):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % n]
        s += x0 * y1 - x1 * y0
    return abs(s) / 2.0


def polygon_bbox(points: Sequence[Point]) -> Tuple[float, float]:
    if not points:
        return 0.0, 0.0
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return max(xs) - min(xs), max(ys) - min(ys)


def polygon_perimeter(points: Sequence[Point]) -> float:
    n = len(points)
    if n < 2:
        return 0.0
    total = 0.0
    for i in range(n):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % n]
        total += math.hypot(x1 - x0, y1 - y0)
    return total
