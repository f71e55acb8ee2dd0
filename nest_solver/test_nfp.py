# nest_solver/test_nfp.py
# Outline placement: circles, polygons, degenerate outlines.
#   python -m nest_solver.test_nfp

from __future__ import annotations

from nest_solver.geometry import point_in_polygon
from nest_solver.solver_nfp import NfpParams, orientations_for, pair_nfp, FixedPiece, solve_nfp
from nest_solver.types import Circle, PieceRequest, PlacedPiece, Polygon, SheetSpec, expand_pieces
from nest_solver.validate import GEOMETRY_DEGENERATE, UNPLACEABLE_PIECE, raise_on_errors, validate_result


def _check(res, sheet, pieces) -> None:
    raise_on_errors(validate_result(res, sheet, pieces))
    for pl in res.placements():
        for x, y in pl.outline:
            assert -1e-9 <= x <= sheet.width + 1e-9
            assert -1e-9 <= y <= sheet.height + 1e-9


def test_circles_share_a_sheet() -> None:
    sheet = SheetSpec(400, 400, kerf=2)
    pieces = [PieceRequest("disc", 100, 100, quantity=3, geometry=Circle(50))]
    res = solve_nfp(pieces, sheet)
    assert res.total_sheets == 1
    assert res.placed_count() == 3
    assert all(pl.rotation == 0 for pl in res.placements())
    _check(res, sheet, pieces)


def test_mixed_shapes_respect_kerf() -> None:
    sheet = SheetSpec(600, 400, kerf=3)
    tri = Polygon(((0.0, 0.0), (120.0, 0.0), (0.0, 80.0)))
    pieces = [
        PieceRequest("gusset", 120, 80, quantity=4, geometry=tri),
        PieceRequest("disc", 90, 90, quantity=2, geometry=Circle(45)),
        PieceRequest("plate", 150, 60, quantity=3),
    ]
    res = solve_nfp(pieces, sheet)
    assert res.placed_count() == 9
    _check(res, sheet, pieces)


def test_outlines_are_placed_first() -> None:
    sheet = SheetSpec(1000, 1000)
    pieces = [
        PieceRequest("plate", 400, 400),
        PieceRequest("disc", 100, 100, geometry=Circle(50)),
    ]
    res = solve_nfp(pieces, sheet)
    first = res.sheets[0].placements[0]
    assert first.piece.id == "disc"
    assert (first.x, first.y) == (0, 0)


def test_polygon_orientations() -> None:
    tri = Polygon(((0.0, 0.0), (120.0, 0.0), (0.0, 80.0)))
    (inst,) = expand_pieces([PieceRequest("t", 120, 80, geometry=tri)])
    assert [o.rotation for o in orientations_for(inst)] == [0, 90, 180, 270]
    (fixed,) = expand_pieces([PieceRequest("t", 120, 80, allow_rotation=False, geometry=tri)])
    assert [o.rotation for o in orientations_for(fixed)] == [0]


def test_rectangle_pair_nfp_blocks_kerf_gap() -> None:
    (a,) = expand_pieces([PieceRequest("a", 100, 50)])
    oa = orientations_for(a)[0]
    placed = PlacedPiece(uid="a#1", sheet_index=0, x=0, y=0, width=100, height=50)
    nfp = pair_nfp(FixedPiece(placed=placed, orient=oa), oa, kerf=4)
    assert point_in_polygon((103, 0), nfp)
    assert not point_in_polygon((105, 0), nfp)


def test_degenerate_outline_gets_its_own_sheet() -> None:
    sheet = SheetSpec(1000, 1000)
    pieces = [PieceRequest("line", 100, 100, quantity=2, geometry=Polygon(((0.0, 0.0), (100.0, 100.0))))]
    res = solve_nfp(pieces, sheet)
    assert res.total_sheets == 2
    assert any(i.kind == GEOMETRY_DEGENERATE for i in res.issues)


def test_oversized_outline_rejected() -> None:
    sheet = SheetSpec(300, 300)
    pieces = [PieceRequest("disc", 400, 400, geometry=Circle(200))]
    res = solve_nfp(pieces, sheet)
    assert res.total_sheets == 0
    assert res.rejected[0].kind == UNPLACEABLE_PIECE


def test_step_adapts_to_piece_size() -> None:
    params = NfpParams()
    assert params.step_for(20, 30) == 5
    assert params.step_for(300, 200) == 20


def main() -> None:
    print("Running NFP tests...")
    test_circles_share_a_sheet()
    test_mixed_shapes_respect_kerf()
    test_outlines_are_placed_first()
    test_polygon_orientations()
    test_rectangle_pair_nfp_blocks_kerf_gap()
    test_degenerate_outline_gets_its_own_sheet()
    test_oversized_outline_rejected()
    test_step_adapts_to_piece_size()
    print("OK")


if __name__ == "__main__":
    main()
