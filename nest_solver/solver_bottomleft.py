# nest_solver/solver_bottomleft.py
# Bottom-Left-Fill (BLF) heuristic for rectangular nesting.
# Places each piece as low as possible, then as left as possible, on a 1 mm grid.
#
# The grid is not scanned cell by cell: the lowest feasible row is always 0 or
# the (grid-rounded) kerf-cleared top of a placed piece, and within a row the
# scan jumps past every blocking piece. This picks the same position as a full
# grid scan with score y * sheet_width + x.

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULTS
from .geometry import Rect, expand_rect, grid_ceil, overlap
from .logger import get_logger
from .metrics import finalize_result
from .types import (
    OptimizationResult,
    PieceInstance,
    PieceRequest,
    PlacedPiece,
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

# (w, h, rotated relative to the instance)
Orientation = Tuple[float, float, bool]


def solve_bottomleft(
    pieces: Optional[Iterable[PieceRequest]],
    sheet: SheetSpec,
    *,
    grid_step: int = DEFAULTS.blf_grid_step,
    cancel: Optional[CancelToken] = None,
) -> OptimizationResult:
    """
    Bottom-Left-Fill over the expanded piece list, largest bounding box first.
    Invalid and unplaceable pieces are reported on the result, never dropped.
    """
    log = get_logger()
    valid, invalid, issues = validate_pieces(pieces)
    instances = expand_pieces(valid)

    res = place_instances(instances, sheet, grid_step=grid_step, cancel=cancel)
    not_placed = merge_rejections(res.rejected)
    res.rejected = invalid + not_placed
    res.issues = issues + rejection_issues(not_placed)

    for iss in res.issues:
        log.warn(iss.message)
    log.info(
        f"BLF: {res.placed_count()}/{len(instances)} placed on {res.total_sheets} sheet(s), "
        f"avg efficiency {res.average_efficiency:.1f}%"
    )
    return res


def place_instances(
    instances: Sequence[PieceInstance],
    sheet: SheetSpec,
    *,
    presorted: bool = False,
    grid_step: int = DEFAULTS.blf_grid_step,
    cancel: Optional[CancelToken] = None,
) -> OptimizationResult:
    """
    Pack instances sheet by sheet. Unless `presorted`, instances are ordered by
    descending bounding-box area (stable, so input order breaks ties).

    Only the current (last opened) sheet is tried; if nothing fits there a new
    sheet is opened. Rejections are returned per instance, unmerged.
    Does not log: the genetic search calls this once per fitness evaluation.
    """
    order = list(instances) if presorted else sorted(instances, key=lambda i: -i.area)
    W = sheet.width
    kerf = sheet.kerf

    sheets: List[SheetResult] = []
    occupied: List[Rect] = []  # (x, y, w, h) on the current sheet
    rejected: List[RejectedPiece] = []

    for inst in order:
        orientations = _orientations(inst)
        if not any(fits_sheet(w, h, sheet) for w, h, _ in orientations):
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
            best = _best_position(occupied, sheet, orientations, grid_step, cancel)

        if best is None:
            # Open a new sheet
            best = _best_position([], sheet, orientations, grid_step, cancel)
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
            occupied = []

        x, y, w, h, rotated = best
        sh = sheets[-1]
        sh.placements.append(
            PlacedPiece(
                uid=inst.uid,
                sheet_index=sh.sheet_index,
                x=x,
                y=y,
                width=w,
                height=h,
                rotation=90 if rotated != inst.flipped else 0,
                tag=inst.piece.label,
                piece=inst.piece,
            )
        )
        occupied.append((x, y, w, h))

    res = OptimizationResult(sheets=sheets, rejected=rejected)
    return finalize_result(res, sheet)


def _orientations(inst: PieceInstance) -> List[Orientation]:
    out: List[Orientation] = [(inst.w, inst.h, False)]
    if inst.can_rotate and inst.w != inst.h:
        out.append((inst.h, inst.w, True))
    return out


def _best_position(
    occupied: List[Rect],
    sheet: SheetSpec,
    orientations: List[Orientation],
    grid_step: int,
    cancel: Optional[CancelToken],
) -> Optional[Tuple[float, float, float, float, bool]]:
    """Lowest score y * W + x over all orientations; first orientation wins ties."""
    best = None
    best_score = float("inf")
    for w, h, rotated in orientations:
        pos = _find_bottomleft_position(occupied, sheet.width, sheet.height, w, h, sheet.kerf, grid_step, cancel)
        if pos is None:
            continue
        x, y = pos
        score = y * sheet.width + x
        if score < best_score:
            best_score = score
            best = (x, y, w, h, rotated)
    return best


def _find_bottomleft_position(
    occupied: List[Rect],
    W: float,
    H: float,
    w: float,
    h: float,
    kerf: float,
    grid_step: int = DEFAULTS.blf_grid_step,
    cancel: Optional[CancelToken] = None,
) -> Optional[Tuple[float, float]]:
    """
    Find the bottom-left grid position for a (w, h) rectangle in a (W, H) sheet.
    Returns (x, y) or None if it does not fit.
    """
    if w > W or h > H:
        return None

    max_x = W - w
    max_y = H - h

    rows = {0}
    for ox, oy, ow, oh in occupied:
        rows.add(grid_ceil(oy + oh + kerf, grid_step))

    for y in sorted(rows):
        if y > max_y:
            break
        check_cancel(cancel)

        # Pieces whose kerf-expanded box can reach this row
        band = [o for o in occupied if y < o[1] + o[3] + kerf and o[1] < y + h + kerf]

        x = 0
        while x <= max_x:
            blocked_until = _blocking_edge(x, y, w, h, band, kerf)
            if blocked_until is None:
                return x, y
            nx = grid_ceil(blocked_until, grid_step)
            x = nx if nx > x else x + grid_step

    return None


def _blocking_edge(
    x: float,
    y: float,
    w: float,
    h: float,
    occupied: List[Rect],
    kerf: float,
) -> Optional[float]:
    """Right-most kerf-cleared edge among pieces overlapping (x, y, w, h); None if free."""
    half = kerf / 2.0
    cand = expand_rect((x, y, w, h), half)
    edge = None
    for o in occupied:
        if overlap(cand, expand_rect(o, half)):
            right = o[0] + o[2] + kerf
            if edge is None or right > edge:
                edge = right
    return edge
