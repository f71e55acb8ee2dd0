# nest_solver/solver_nfp.py
# No-fit-polygon (NFP) placement for non-rectangular pieces.
#
# Same bottom-left rule as solver_bottomleft, but:
# - outlines (circle 16-gon, polygon, complex) get their own orientation sets
# - hardest outlines are placed first (complexity score, then area)
# - a candidate reference point is rejected when it falls inside the NFP of any
#   placed piece (closed-form rectangle NFP for rectangle pairs, Minkowski hull
#   otherwise); kerf is applied by inflating the fixed piece
# - the candidate grid step adapts to the piece: max(5, min(w, h) / 10) mm
#
# Bounding boxes stay kerf-separated as well, so results from every engine
# satisfy the same sheet invariants. Interlocking of concave outlines is not
# attempted (convex hull NFP).

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULTS
from .geometry import (
    complexity_score,
    expand_rect,
    grid_ceil,
    is_degenerate,
    minkowski_nfp,
    overlap,
    point_in_polygon,
    rectangle_nfp,
    rotate_polygon,
    to_polygon,
    translate,
)
from .logger import get_logger
from .metrics import finalize_result
from .types import (
    Circle,
    OptimizationResult,
    PieceInstance,
    PieceRequest,
    PlacedPiece,
    Point,
    Rectangle,
    RejectedPiece,
    SheetResult,
    SheetSpec,
    expand_pieces,
)
from .utils import CancelToken, check_cancel
from .validate import (
    NO_FEASIBLE_PLACEMENT,
    UNPLACEABLE_PIECE,
    fits_sheet,
    merge_rejections,
    rejection_issues,
    validate_pieces,
)

_EPS = 1e-9


@dataclass(frozen=True)
class NfpParams:
    min_step: float = DEFAULTS.nfp_min_step
    step_divisor: float = DEFAULTS.nfp_step_divisor

    def step_for(self, w: float, h: float) -> float:
        return max(self.min_step, min(w, h) / self.step_divisor)


@dataclass(frozen=True)
class Oriented:
    """One admissible orientation of an instance; outline normalized to (0, 0)."""
    w: float
    h: float
    rotation: int
    outline: Tuple[Point, ...]
    is_rect: bool


@dataclass(frozen=True)
class FixedPiece:
    placed: PlacedPiece
    orient: Oriented


@dataclass(frozen=True)
class _Nfp:
    points: List[Point]
    x0: float
    y0: float
    x1: float
    y1: float


def orientations_for(inst: PieceInstance) -> List[Oriented]:
    """
    Rectangle: 0 (+90 if rotatable); circle: 0 only;
    polygon / complex: 0 (+90, 180, 270 if rotatable).
    """
    shape = inst.piece.shape
    w, h = inst.piece.width, inst.piece.height
    base = to_polygon(inst.piece)

    if isinstance(shape, Rectangle):
        degs = [0, 90] if inst.can_rotate and w != h else [0]
    elif isinstance(shape, Circle):
        degs = [0]
    else:
        degs = [0, 90, 180, 270] if inst.can_rotate else [0]

    out: List[Oriented] = []
    for d in degs:
        ow, oh = (h, w) if d in (90, 270) else (w, h)
        if isinstance(shape, Rectangle):
            outline = ((0.0, 0.0), (ow, 0.0), (ow, oh), (0.0, oh))
        else:
            outline = tuple(rotate_polygon(base, d))
        out.append(Oriented(w=ow, h=oh, rotation=d, outline=outline, is_rect=isinstance(shape, Rectangle)))
    return out


def solve_nfp(
    pieces: Optional[Iterable[PieceRequest]],
    sheet: SheetSpec,
    params: Optional[NfpParams] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> OptimizationResult:
    """NFP bottom-left placement over the expanded piece list."""
    params = params or NfpParams()
    log = get_logger()

    valid, invalid, issues = validate_pieces(pieces)
    instances = expand_pieces(valid)
    # Stable sorts: complexity first, then bounding-box area
    order = sorted(instances, key=lambda i: (-complexity_score(i.piece.shape), -i.piece.bbox_area))

    sheets: List[SheetResult] = []
    fixed: List[FixedPiece] = []  # current sheet
    rejected: List[RejectedPiece] = []

    for inst in order:
        orients = orientations_for(inst)
        if not any(fits_sheet(o.w, o.h, sheet) for o in orients):
            rejected.append(
                RejectedPiece(
                    piece=inst.piece,
                    count=1,
                    kind=UNPLACEABLE_PIECE,
                    reason=f"{inst.w}x{inst.h} exceeds sheet {sheet.width}x{sheet.height}",
                    uid=inst.uid,
                )
            )
            continue

        best = None
        if sheets:
            best = _best_position(fixed, orients, sheet, params, cancel)
        if best is None:
            best = _best_position([], orients, sheet, params, cancel)
            if best is None:
                rejected.append(
                    RejectedPiece(
                        piece=inst.piece,
                        count=1,
                        kind=NO_FEASIBLE_PLACEMENT,
                        reason="no valid position on an empty sheet",
                        uid=inst.uid,
                    )
                )
                continue
            sheets.append(SheetResult(sheet_index=len(sheets), sheet=sheet))
            fixed = []

        x, y, o = best
        sh = sheets[-1]
        pl = PlacedPiece(
            uid=inst.uid,
            sheet_index=sh.sheet_index,
            x=x,
            y=y,
            width=o.w,
            height=o.h,
            rotation=o.rotation,
            tag=inst.piece.label,
            piece=inst.piece,
            outline=tuple(translate(o.outline, x, y)),
        )
        sh.placements.append(pl)
        fixed.append(FixedPiece(placed=pl, orient=o))

    not_placed = merge_rejections(rejected)
    res = OptimizationResult(sheets=sheets, rejected=invalid + not_placed)
    res.issues = issues + rejection_issues(not_placed)
    finalize_result(res, sheet)

    for iss in res.issues:
        log.warn(iss.message)
    log.info(
        f"NFP: {res.placed_count()}/{len(instances)} placed on {res.total_sheets} sheet(s), "
        f"avg efficiency {res.average_efficiency:.1f}%"
    )
    return res


def _best_position(
    fixed: List[FixedPiece],
    orients: List[Oriented],
    sheet: SheetSpec,
    params: NfpParams,
    cancel: Optional[CancelToken],
) -> Optional[Tuple[float, float, Oriented]]:
    best = None
    best_score = float("inf")
    for o in orients:
        pos = _find_position(fixed, o, sheet, params.step_for(o.w, o.h), cancel)
        if pos is None:
            continue
        score = pos[1] * sheet.width + pos[0]
        if score < best_score:
            best_score = score
            best = (pos[0], pos[1], o)
    return best


def pair_nfp(fixed: FixedPiece, moving: Oriented, kerf: float) -> List[Point]:
    """NFP of `moving` around a placed piece, in sheet coordinates."""
    pl = fixed.placed
    half = kerf / 2.0
    if fixed.orient.is_rect and moving.is_rect:
        # Kerf-inflated fixed footprint, moving piece keeps its own half kerf
        nfp = rectangle_nfp((pl.width + kerf, pl.height + kerf), (moving.w, moving.h), kerf)
        return translate(nfp, pl.x - half, pl.y - half)
    if is_degenerate(fixed.orient.outline) or is_degenerate(moving.outline):
        return []
    inflated = [(x + dx, y + dy) for x, y in fixed.orient.outline for dx in (-kerf, kerf) for dy in (-kerf, kerf)]
    return translate(minkowski_nfp(inflated, moving.outline), pl.x, pl.y)


def _find_position(
    fixed: List[FixedPiece],
    o: Oriented,
    sheet: SheetSpec,
    step: float,
    cancel: Optional[CancelToken],
) -> Optional[Tuple[float, float]]:
    if not fits_sheet(o.w, o.h, sheet):
        return None
    kerf = sheet.kerf
    max_x = sheet.width - o.w
    max_y = sheet.height - o.h

    nfps: List[_Nfp] = []
    for f in fixed:
        pts = pair_nfp(f, o, kerf)
        if is_degenerate(pts):
            # Zero-area NFP: treat the pair as always overlapping
            return None
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        nfps.append(_Nfp(points=pts, x0=min(xs), y0=min(ys), x1=max(xs), y1=max(ys)))
    boxes = [(f.placed.x, f.placed.y, f.placed.width, f.placed.height) for f in fixed]

    half = kerf / 2.0
    n_rows = int((max_y + _EPS) // step)
    for r in range(n_rows + 1):
        y = r * step
        check_cancel(cancel)
        x = 0.0
        while x <= max_x + _EPS:
            blocked_until = None
            for nfp in nfps:
                if not (nfp.x0 <= x <= nfp.x1 and nfp.y0 <= y <= nfp.y1):
                    continue
                if point_in_polygon((x, y), nfp.points):
                    span = _row_span(nfp.points, y)
                    edge = span[1] if span is not None else nfp.x1
                    blocked_until = edge if blocked_until is None else max(blocked_until, edge)
            cand = expand_rect((x, y, o.w, o.h), half)
            for bx, by, bw, bh in boxes:
                if overlap(cand, expand_rect((bx, by, bw, bh), half)):
                    edge = bx + bw + kerf
                    blocked_until = edge if blocked_until is None else max(blocked_until, edge)
            if blocked_until is None:
                return x, y
            nx = grid_ceil(blocked_until, step)
            x = nx if nx > x + _EPS else x + step
    return None


def _row_span(poly: Sequence[Point], y: float) -> Optional[Tuple[float, float]]:
    """x-extent of a convex polygon along the horizontal line through y."""
    xs: List[float] = []
    n = len(poly)
    j = n - 1
    for i in range(n):
        xi, yi = poly[i]
        xj, yj = poly[j]
        if (yi > y) != (yj > y):
            xs.append((xj - xi) * (y - yi) / (yj - yi) + xi)
        j = i
    if len(xs) < 2:
        return None
    return min(xs), max(xs)
