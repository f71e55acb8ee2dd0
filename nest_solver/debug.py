# nest_solver/debug.py
# Debug / inspection helpers:
# - pretty-print placements and rejections
# - quick text summaries of results, cut paths and sensitivity runs

from __future__ import annotations

from typing import Iterable, List

from .types import CutPath, OptimizationResult, PlacedPiece, SheetResult
from .utils import sort_placements_readable


def print_placements(placements: Iterable[PlacedPiece]) -> None:
    for p in sort_placements_readable(list(placements)):
        print(
            f"[S{p.sheet_index}] {p.uid:20s} "
            f"x={p.x:8.1f} y={p.y:8.1f} w={p.width:7.1f} h={p.height:7.1f} "
            f"rot={p.rotation:3d}"
        )


def print_sheet(sheet: SheetResult) -> None:
    print(f"=== Sheet {sheet.sheet_index + 1} ===")
    print(f"Pieces: {len(sheet.placements)}  Efficiency: {sheet.efficiency:.1f}%")
    print(f"Waste: {sheet.waste_area:,.0f} mm²  Weight: {sheet.weight:.2f} kg")
    print_placements(sheet.placements)


def print_cut_path(path: CutPath) -> None:
    print(
        f"Sheet {path.sheet_index + 1}: {len(path.points)} points, "
        f"{path.pierce_points} pierces, {path.total_distance:,.1f} mm"
    )


def print_result(result: OptimizationResult, *, details: bool = False) -> None:
    print(f"Sheets: {result.total_sheets}")
    print(f"Average efficiency: {result.average_efficiency:.1f}%")
    print(f"Total waste: {result.total_waste_area:,.0f} mm²")
    print(f"Total weight: {result.total_weight:.2f} kg  Material cost: {result.material_cost:,.2f}")
    if details:
        for sh in result.sheets:
            print_sheet(sh)
    for path in result.cut_paths:
        print_cut_path(path)
    for r in result.rejected:
        print(f"REJECTED {r.piece.id} x{r.count} [{r.kind}]: {r.reason}")


def summary_lines(result: OptimizationResult) -> List[str]:
    """One line per sheet, for logs."""
    return [
        f"- Sheet {sh.sheet_index + 1}: pieces={len(sh.placements)}, "
        f"efficiency={sh.efficiency:.1f}%, waste={sh.waste_area:,.0f} mm²"
        for sh in result.sheets
    ]
