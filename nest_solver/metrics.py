# nest_solver/metrics.py
# Metrics for nesting results:
# - utilized / waste area and efficiency per sheet
# - plate weight per sheet, totals and material cost
# - normalized objectives shared by the genetic fitness and the orchestrator
#
# These metrics are solver-agnostic: they work for any placement engine.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .costing import MaterialModel, compute_solution_cost, weight_kg
from .types import OptimizationResult, PlacedPiece, SheetResult, SheetSpec


@dataclass(frozen=True)
class Metrics:
    utilized_area: float
    waste_area: float
    efficiency: float  # percent
    weight: float      # kg


def _validate_within_sheet(sheet: SheetSpec, placements: Iterable[PlacedPiece]) -> None:
    W, H = sheet.width, sheet.height
    for pl in placements:
        if pl.x < 0 or pl.y < 0:
            raise ValueError(f"Negative placement for {pl.uid}: ({pl.x},{pl.y})")
        if pl.x + pl.width > W + 1e-9 or pl.y + pl.height > H + 1e-9:
            raise ValueError(
                f"Placement out of sheet bounds for {pl.uid}: "
                f"({pl.x},{pl.y},{pl.width},{pl.height}) sheet=({W},{H})"
            )


def compute_utilized_area(placements: Iterable[PlacedPiece]) -> float:
    return sum(pl.area for pl in placements)


def compute_waste_area(sheet: SheetSpec, placements: Iterable[PlacedPiece]) -> float:
    """
    Waste computed against the full plate.
    Does NOT attempt to find reusable remnants, just area.
    """
    placements = list(placements)
    _validate_within_sheet(sheet, placements)
    used = compute_utilized_area(placements)
    waste = sheet.area - used
    if waste < -1e-6:
        # Overlaps could cause this too, but should be prevented upstream.
        raise ValueError(f"Negative waste area (used={used} > total={sheet.area}).")
    return max(0.0, waste)


def compute_sheet_metrics(sheet: SheetResult, model: Optional[MaterialModel] = None) -> Metrics:
    """
    Compute and return the key metrics for a sheet.
    Also updates the SheetResult fields in-place.
    """
    model = model or MaterialModel.for_material(sheet.sheet.material)
    waste = compute_waste_area(sheet.sheet, sheet.placements)
    used = compute_utilized_area(sheet.placements)
    eff = used / sheet.sheet.area * 100.0
    weight = weight_kg(used, sheet.sheet.thickness, model.density)

    sheet.utilized_area = used
    sheet.waste_area = waste
    sheet.efficiency = eff
    sheet.weight = weight

    return Metrics(utilized_area=used, waste_area=waste, efficiency=eff, weight=weight)


def finalize_result(result: OptimizationResult, sheet: SheetSpec) -> OptimizationResult:
    """Fill per-sheet metrics and the result totals (in-place, returned for chaining)."""
    model = MaterialModel.for_material(sheet.material)
    effs: List[float] = []
    used_total = 0.0
    for sh in result.sheets:
        m = compute_sheet_metrics(sh, model)
        effs.append(m.efficiency)
        used_total += m.utilized_area

    n = len(result.sheets)
    cost = compute_solution_cost(result, model)
    result.total_sheets = n
    result.total_waste_area = n * sheet.area - used_total
    result.average_efficiency = sum(effs) / n if n else 0.0
    result.total_weight = cost.total_weight_kg
    result.material_cost = cost.total_cost
    return result


# ----------------------------
# Normalized objectives (higher is better)
# ----------------------------

def efficiency_score(result: OptimizationResult) -> float:
    return result.average_efficiency / 100.0


def waste_reduction(result: OptimizationResult, sheet: SheetSpec) -> float:
    """1 - waste / opened area; 0 for an empty result."""
    if result.total_sheets == 0:
        return 0.0
    return 1.0 - result.total_waste_area / (result.total_sheets * sheet.area)


def sheet_count_score(result: OptimizationResult) -> float:
    return 1.0 / (result.total_sheets + 1)
