# nest_solver/test_bottomleft.py
# Bottom-Left-Fill behaviour on small, hand-checkable jobs.
#   python -m nest_solver.test_bottomleft

from __future__ import annotations

import random

import pytest

from nest_solver.geometry import expand_rect, overlap
from nest_solver.solver_bottomleft import _find_bottomleft_position, place_instances, solve_bottomleft
from nest_solver.types import PieceRequest, SheetSpec, expand_pieces
from nest_solver.utils import CancelToken, OptimizationCancelled
from nest_solver.validate import (
    INVALID_PIECE,
    UNPLACEABLE_PIECE,
    raise_on_errors,
    validate_conservation,
    validate_result,
)


def test_two_squares_share_one_sheet() -> None:
    sheet = SheetSpec(500, 500, kerf=2)
    pieces = [PieceRequest("A", 100, 100, quantity=2, allow_rotation=False)]
    res = solve_bottomleft(pieces, sheet)

    assert res.total_sheets == 1
    assert res.placed_count() == 2
    raise_on_errors(validate_result(res, sheet, pieces))

    a, b = res.sheets[0].placements
    assert (a.x, a.y) == (0, 0)
    # Second piece sits right of the first, exactly one kerf away
    assert (b.x, b.y) == (102, 0)


def _grid_scan(occupied, W, H, w, h, kerf):
    half = kerf / 2.0
    for y in range(0, int(H - h) + 1):
        for x in range(0, int(W - w) + 1):
            cand = expand_rect((x, y, w, h), half)
            if not any(overlap(cand, expand_rect(o, half)) for o in occupied):
                return x, y
    return None


def test_jump_scan_matches_full_grid_scan() -> None:
    rng = random.Random(7)
    W, H = 120, 90
    for kerf in (0, 1, 1.5, 2, 3):
        for _ in range(4):
            occupied = []
            for _ in range(8):
                w, h = rng.randint(5, 45), rng.randint(5, 35)
                pos = _find_bottomleft_position(occupied, W, H, w, h, kerf)
                assert pos == _grid_scan(occupied, W, H, w, h, kerf)
                if pos is not None:
                    occupied.append((pos[0], pos[1], w, h))


def test_oversized_piece_is_rejected_with_warning() -> None:
    sheet = SheetSpec(500, 500, kerf=2)
    pieces = [PieceRequest("big", 600, 600, allow_rotation=False)]
    res = solve_bottomleft(pieces, sheet)

    assert res.total_sheets == 0
    assert res.placed_count() == 0
    assert res.rejected_count() == 1
    assert res.rejected[0].kind == UNPLACEABLE_PIECE
    assert any(i.kind == UNPLACEABLE_PIECE for i in res.issues)


def test_rotation_only_when_allowed() -> None:
    sheet = SheetSpec(200, 400, kerf=2)

    fixed = solve_bottomleft([PieceRequest("bar", 300, 100, allow_rotation=False)], sheet)
    assert fixed.placed_count() == 0
    assert fixed.rejected[0].kind == UNPLACEABLE_PIECE

    free = solve_bottomleft([PieceRequest("bar", 300, 100, allow_rotation=True)], sheet)
    (pl,) = free.placements()
    assert (pl.width, pl.height, pl.rotation) == (100, 300, 90)


def test_non_rotatable_keeps_requested_size() -> None:
    sheet = SheetSpec(1000, 600, kerf=3)
    pieces = [
        PieceRequest("plate", 400, 150, quantity=5, allow_rotation=False),
        PieceRequest("rib", 120, 300, quantity=4),
    ]
    res = solve_bottomleft(pieces, sheet)
    raise_on_errors(validate_result(res, sheet, pieces))
    for pl in res.placements():
        if pl.piece.id == "plate":
            assert (pl.width, pl.height, pl.rotation) == (400, 150, 0)


def test_one_piece_per_sheet_when_two_do_not_fit() -> None:
    sheet = SheetSpec(500, 500, kerf=2)
    res = solve_bottomleft([PieceRequest("sq", 300, 300, quantity=4)], sheet)
    assert res.total_sheets == 4
    for sh in res.sheets:
        assert len(sh.placements) == 1
        assert abs(sh.efficiency - 36.0) < 1e-9
    assert res.total_waste_area == 4 * 250000 - 4 * 90000


def test_invalid_pieces_are_counted() -> None:
    sheet = SheetSpec(1000, 1000)
    pieces = [
        PieceRequest("ok", 100, 100, quantity=3),
        PieceRequest("zero", 0, 100, quantity=2),
        PieceRequest("none", 100, 100, quantity=0),
    ]
    res = solve_bottomleft(pieces, sheet)
    assert res.placed_count() == 3
    assert validate_conservation(res, pieces) == []
    kinds = {r.piece.id: r.kind for r in res.rejected}
    assert kinds == {"zero": INVALID_PIECE, "none": INVALID_PIECE}
    assert res.rejected_count() == 2


def test_empty_input_gives_empty_result() -> None:
    sheet = SheetSpec(1000, 1000)
    for pieces in ([], None):
        res = solve_bottomleft(pieces, sheet)
        assert res.total_sheets == 0
        assert res.sheets == []
        assert res.average_efficiency == 0.0


def test_metrics_weight_and_cost() -> None:
    sheet = SheetSpec(500, 500, kerf=2, thickness=6, material="A36")
    res = solve_bottomleft([PieceRequest("A", 100, 100, quantity=2)], sheet)
    sh = res.sheets[0]
    assert sh.utilized_area == 20000
    assert abs(sh.efficiency - 8.0) < 1e-9
    assert abs(sh.weight - 20000 * 6 * 7.85 / 1e7) < 1e-12
    assert abs(res.material_cost - res.total_weight * 5.50) < 1e-12


def test_presorted_order_is_kept() -> None:
    sheet = SheetSpec(1000, 1000, kerf=0)
    small, big = expand_pieces([PieceRequest("s", 50, 50), PieceRequest("b", 200, 200)])
    res = place_instances([small, big], sheet, presorted=True)
    first = res.sheets[0].placements[0]
    assert first.uid == "s#1" and (first.x, first.y) == (0, 0)

    res = place_instances([small, big], sheet)
    assert res.sheets[0].placements[0].uid == "b#1"


def test_flipped_instance_reports_rotation() -> None:
    sheet = SheetSpec(1000, 1000)
    (inst,) = expand_pieces([PieceRequest("p", 300, 100)])
    res = place_instances([inst.flip()], sheet)
    (pl,) = res.placements()
    assert (pl.width, pl.height, pl.rotation) == (100, 300, 90)


def test_cancelled_token_stops_search() -> None:
    token = CancelToken()
    token.cancel()
    with pytest.raises(OptimizationCancelled):
        solve_bottomleft([PieceRequest("A", 100, 100)], SheetSpec(500, 500), cancel=token)


def main() -> None:
    print("Running bottom-left tests...")
    test_two_squares_share_one_sheet()
    test_jump_scan_matches_full_grid_scan()
    test_oversized_piece_is_rejected_with_warning()
    test_rotation_only_when_allowed()
    test_non_rotatable_keeps_requested_size()
    test_one_piece_per_sheet_when_two_do_not_fit()
    test_invalid_pieces_are_counted()
    test_empty_input_gives_empty_result()
    test_metrics_weight_and_cost()
    test_presorted_order_is_kept()
    test_flipped_instance_reports_rotation()
    test_cancelled_token_stops_search()
    print("OK")


if __name__ == "__main__":
    main()
