# nest_solver/costing.py
# Material costing:
# - plate weight from utilized area, thickness and grade density
# - material cost from weight and the grade price per kg
#
# Notes:
# - areas in mm², thickness in mm, density in kg/dm³
# - weight = area * thickness * density / 1e7
# - unknown grades fall back to config.DEFAULTS (7.85 kg/dm³, 5.50 per kg)

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .config import material_cost_per_kg, material_density
from .types import OptimizationResult, SheetResult


@dataclass(frozen=True)
class MaterialModel:
    density: float       # kg/dm³
    cost_per_kg: float

    @classmethod
    def for_material(cls, material: Optional[str]) -> "MaterialModel":
        return cls(density=material_density(material), cost_per_kg=material_cost_per_kg(material))


@dataclass(frozen=True)
class SheetCost:
    sheet_index: int
    utilized_area_mm2: float
    weight_kg: float
    cost: float


@dataclass(frozen=True)
class SolutionCost:
    sheets: List[SheetCost]
    total_weight_kg: float
    total_cost: float


def weight_kg(area_mm2: float, thickness_mm: float, density: float) -> float:
    return area_mm2 * thickness_mm * density / 1e7


def compute_sheet_cost(sheet: SheetResult, model: Optional[MaterialModel] = None) -> SheetCost:
    model = model or MaterialModel.for_material(sheet.sheet.material)
    area = sum(pl.area for pl in sheet.placements)
    w = weight_kg(area, sheet.sheet.thickness, model.density)
    return SheetCost(
        sheet_index=sheet.sheet_index,
        utilized_area_mm2=area,
        weight_kg=w,
        cost=w * model.cost_per_kg,
    )


def compute_solution_cost(result: OptimizationResult, model: MaterialModel) -> SolutionCost:
    sheet_costs = [compute_sheet_cost(sh, model) for sh in result.sheets]
    total_w = sum(sc.weight_kg for sc in sheet_costs)
    return SolutionCost(
        sheets=sheet_costs,
        total_weight_kg=total_w,
        total_cost=total_w * model.cost_per_kg,
    )
