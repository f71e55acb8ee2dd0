# nest_solver/validate.py
# Validation utilities:
# - input checks before expansion (invalid sizes / quantities, outlines that leave
#   the piece rectangle, zero-area outlines)
# - rejection bookkeeping (merged per piece type, surfaced as warnings)
# - result checks: sheet bounds, kerf clearance, orientation, conservation
#
# Useful both during development and to sanity-check engine output.

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .geometry import expand_rect, is_degenerate, overlap, to_polygon
from .types import (
    Circle,
    Complex,
    OptimizationResult,
    PieceRequest,
    PlacedPiece,
    PlacementIssue,
    Polygon,
    RejectedPiece,
    SheetSpec,
)

# Issue kinds
INVALID_PIECE = "INVALID_PIECE"
UNPLACEABLE_PIECE = "UNPLACEABLE_PIECE"
NO_FEASIBLE_PLACEMENT = "NO_FEASIBLE_PLACEMENT"
GEOMETRY_DEGENERATE = "GEOMETRY_DEGENERATE"


@dataclass(frozen=True)
class ValidationIssue:
    level: str   # "ERROR" or "WARN"
    message: str
    sheet_index: Optional[int] = None
    uid: Optional[str] = None


# ----------------------------
# Input
# ----------------------------

def validate_pieces(
    pieces: Optional[Iterable[PieceRequest]],
) -> Tuple[List[PieceRequest], List[RejectedPiece], List[PlacementIssue]]:
    """
    Split requests into (valid, rejected, issues). Invalid requests are
    rejected as a whole, including outlines that leave the piece rectangle.
    Zero-area outlines only produce a warning because the bounding rectangle
    still places.
    """
    valid: List[PieceRequest] = []
    rejected: List[RejectedPiece] = []
    issues: List[PlacementIssue] = []

    for p in pieces or []:
        problems = []
        if not p.width > 0 or not p.height > 0:
            problems.append(f"non-positive size {p.width}x{p.height}")
        if p.quantity < 1:
            problems.append(f"quantity {p.quantity} < 1")
        if not problems:
            extent = _outline_overflow(p)
            if extent is not None:
                problems.append(f"outline spans {extent}, outside the declared {p.width}x{p.height}")
        if problems:
            reason = "; ".join(problems)
            rejected.append(
                RejectedPiece(piece=p, count=max(int(p.quantity), 0), kind=INVALID_PIECE, reason=reason)
            )
            issues.append(
                PlacementIssue(kind=INVALID_PIECE, message=f"Piece {p.id}: {reason}", piece_id=p.id)
            )
            continue

        geom = p.geometry
        if isinstance(geom, (Polygon, Complex)) and geom.points and is_degenerate(geom.points):
            issues.append(
                PlacementIssue(
                    kind=GEOMETRY_DEGENERATE,
                    message=(
                        f"Piece {p.id}: outline with {len(geom.points)} point(s) has no area, "
                        f"treated as always overlapping"
                    ),
                    piece_id=p.id,
                )
            )
        valid.append(p)

    return valid, rejected, issues


def _outline_overflow(piece: PieceRequest, tol: float = 1e-6) -> Optional[str]:
    """Outline extent as 'x0..x1 x y0..y1' when it leaves the piece rectangle, else None."""
    geom = piece.geometry
    if not isinstance(geom, (Circle, Polygon, Complex)):
        return None
    pts = to_polygon(piece)
    if not pts:
        return None
    xs = [q[0] for q in pts]
    ys = [q[1] for q in pts]
    if min(xs) < -tol or min(ys) < -tol or max(xs) > piece.width + tol or max(ys) > piece.height + tol:
        return f"{min(xs):g}..{max(xs):g} x {min(ys):g}..{max(ys):g}"
    return None


def fits_sheet(w: float, h: float, sheet: SheetSpec) -> bool:
    return w <= sheet.width and h <= sheet.height


# ----------------------------
# Rejections
# ----------------------------

def merge_rejections(rejected: Iterable[RejectedPiece]) -> List[RejectedPiece]:
    """Merge per-instance rejections into one record per (piece, kind), first-seen order."""
    merged: "OrderedDict[Tuple[int, str], RejectedPiece]" = OrderedDict()
    for r in rejected:
        key = (id(r.piece), r.kind)
        prev = merged.get(key)
        if prev is None:
            merged[key] = RejectedPiece(piece=r.piece, count=r.count, kind=r.kind, reason=r.reason, uid=r.uid)
        else:
            merged[key] = RejectedPiece(
                piece=prev.piece, count=prev.count + r.count, kind=prev.kind, reason=prev.reason, uid=None
            )
    return list(merged.values())


def rejection_issues(rejected: Iterable[RejectedPiece]) -> List[PlacementIssue]:
    return [
        PlacementIssue(
            kind=r.kind,
            message=f"Piece {r.piece.id}: {r.count} instance(s) not placed ({r.reason})",
            piece_id=r.piece.id,
            uid=r.uid,
        )
        for r in rejected
    ]


# ----------------------------
# Result
# ----------------------------

def validate_placements(sheet: SheetSpec, placements: Iterable[PlacedPiece]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    W, H = sheet.width, sheet.height
    for pl in placements:
        if pl.width <= 0 or pl.height <= 0:
            issues.append(
                ValidationIssue(
                    level="ERROR",
                    message=f"Non-positive size for placement: {pl.width}x{pl.height}",
                    sheet_index=pl.sheet_index,
                    uid=pl.uid,
                )
            )
        if pl.x < 0 or pl.y < 0 or pl.x + pl.width > W + 1e-9 or pl.y + pl.height > H + 1e-9:
            issues.append(
                ValidationIssue(
                    level="ERROR",
                    message=(
                        f"Placement out of sheet bounds: "
                        f"x={pl.x}, y={pl.y}, w={pl.width}, h={pl.height}, sheet={W}x{H}"
                    ),
                    sheet_index=pl.sheet_index,
                    uid=pl.uid,
                )
            )
        piece = pl.piece
        if piece is not None and not piece.allow_rotation:
            if pl.rotation != 0 or (pl.width, pl.height) != (piece.width, piece.height):
                issues.append(
                    ValidationIssue(
                        level="ERROR",
                        message=(
                            f"Non-rotatable piece placed as {pl.width}x{pl.height} rot={pl.rotation}, "
                            f"requested {piece.width}x{piece.height}"
                        ),
                        sheet_index=pl.sheet_index,
                        uid=pl.uid,
                    )
                )
    return issues


def validate_kerf_clearance(placements: Sequence[PlacedPiece], kerf: float) -> List[ValidationIssue]:
    """Kerf-expanded boxes (each side inflated by kerf/2) must not intersect."""
    issues: List[ValidationIssue] = []
    m = kerf / 2.0
    boxes = [expand_rect((p.x, p.y, p.width, p.height), m) for p in placements]
    for i in range(len(placements)):
        for j in range(i + 1, len(placements)):
            if overlap(boxes[i], boxes[j]):
                a, b = placements[i], placements[j]
                issues.append(
                    ValidationIssue(
                        level="ERROR",
                        message=f"Kerf overlap between {a.uid} and {b.uid}",
                        sheet_index=a.sheet_index,
                        uid=a.uid,
                    )
                )
    return issues


def validate_conservation(
    result: OptimizationResult, pieces: Iterable[PieceRequest]
) -> List[ValidationIssue]:
    """placed + rejected == requested, per piece type."""
    issues: List[ValidationIssue] = []
    placed: Dict[int, int] = {}
    for pl in result.placements():
        if pl.piece is not None:
            placed[id(pl.piece)] = placed.get(id(pl.piece), 0) + 1
    rejected: Dict[int, int] = {}
    for r in result.rejected:
        rejected[id(r.piece)] = rejected.get(id(r.piece), 0) + r.count

    for p in pieces:
        requested = max(int(p.quantity), 0)
        got = placed.get(id(p), 0) + rejected.get(id(p), 0)
        if got != requested:
            issues.append(
                ValidationIssue(
                    level="ERROR",
                    message=f"Piece {p.id}: requested {requested}, placed+rejected {got}",
                )
            )
    return issues


def validate_result(
    result: OptimizationResult,
    sheet: SheetSpec,
    pieces: Optional[Iterable[PieceRequest]] = None,
) -> List[ValidationIssue]:
    """
    Validate an entire result across sheets.
    Returns a list of issues (empty if OK).
    """
    issues: List[ValidationIssue] = []
    for sh in result.sheets:
        issues.extend(validate_placements(sheet, sh.placements))
        issues.extend(validate_kerf_clearance(sh.placements, sheet.kerf))
        if not sh.placements:
            issues.append(ValidationIssue(level="WARN", message="Empty sheet.", sheet_index=sh.sheet_index))

    if pieces is not None:
        issues.extend(validate_conservation(result, pieces))

    if not result.sheets:
        issues.append(ValidationIssue(level="WARN", message="Result has 0 sheets."))

    return issues


def raise_on_errors(issues: List[ValidationIssue]) -> None:
    errs = [i for i in issues if i.level.upper() == "ERROR"]
    if errs:
        msg = "\n".join(f"[{e.level}] sheet={e.sheet_index} piece={e.uid} :: {e.message}" for e in errs)
        raise ValueError("Validation failed:\n" + msg)
