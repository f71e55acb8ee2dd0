# nest_solver/config.py
# Centralized defaults and configuration helpers.
# Keeps "magic numbers" (kerf, material tables, search parameters) in one place.

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .types import SheetSpec


@dataclass(frozen=True)
class Defaults:
    # Typical structural plate (adjust to your supplier)
    default_sheet_w: float = 3000.0
    default_sheet_h: float = 1500.0
    default_thickness: float = 6.0
    default_material: str = "A36"

    # Plasma kerf (mm)
    default_kerf: float = 2.0
    default_process: str = "plasma"

    # Bottom-left fill grid (mm)
    blf_grid_step: int = 1

    # Outline (NFP) placement: step = max(min_step, min(w, h) / step_divisor)
    nfp_min_step: float = 5.0
    nfp_step_divisor: float = 10.0
    circle_segments: int = 16

    # Genetic search
    ga_population_size: int = 50
    ga_generations: int = 100
    ga_mutation_rate: float = 0.1
    ga_crossover_rate: float = 0.8
    ga_elite_size: int = 5
    ga_tournament_size: int = 3
    ga_initial_flip_probability: float = 0.3
    ga_patience: int = 20

    # Hybrid mode adds the genetic search above this many piece types
    hybrid_genetic_min_pieces: int = 10

    # Sequencing
    plasma_entry_inset: float = 5.0
    thermal_cluster_distance: float = 100.0
    pierce_delay_s: float = 0.5
    tour_time_limit_s: float = 5.0

    # Material fallbacks
    fallback_density: float = 7.85   # kg/dm³
    fallback_cost_per_kg: float = 5.50


DEFAULTS = Defaults()


# Steel density (kg/dm³) and price (currency/kg) per grade
MATERIAL_DENSITY: Dict[str, float] = {
    "A36": 7.85,
    "A572": 7.85,
    "A514": 7.85,
    "A516": 7.85,
}

MATERIAL_COST_PER_KG: Dict[str, float] = {
    "A36": 5.50,
    "A572": 6.20,
    "A514": 8.90,
    "A516": 5.80,
}


def _material_key(material: Optional[str]) -> str:
    return (material or "").strip().upper()


def material_density(material: Optional[str]) -> float:
    """Density in kg/dm³; unknown grades fall back to mild steel."""
    return MATERIAL_DENSITY.get(_material_key(material), DEFAULTS.fallback_density)


def material_cost_per_kg(material: Optional[str]) -> float:
    return MATERIAL_COST_PER_KG.get(_material_key(material), DEFAULTS.fallback_cost_per_kg)


def make_default_sheet(
    *,
    width: Optional[float] = None,
    height: Optional[float] = None,
    kerf: Optional[float] = None,
    thickness: Optional[float] = None,
    material: Optional[str] = None,
) -> SheetSpec:
    """
    Convenience factory for a typical plate.
    """
    return SheetSpec(
        width=float(width if width is not None else DEFAULTS.default_sheet_w),
        height=float(height if height is not None else DEFAULTS.default_sheet_h),
        kerf=float(kerf if kerf is not None else DEFAULTS.default_kerf),
        thickness=float(thickness if thickness is not None else DEFAULTS.default_thickness),
        material=material if material is not None else DEFAULTS.default_material,
    )


def clamp_int(v: float | int, lo: int, hi: int) -> int:
    """Clamp a numeric value to an int range."""
    x = int(round(float(v)))
    if x < lo:
        return lo
    if x > hi:
        return hi
    return x


def parse_sheet_text(sheet_text: str) -> Tuple[float, float]:
    """
    Parse '3000x1500' -> (3000.0, 1500.0)
    """
    s = sheet_text.lower().replace(" ", "")
    if "x" not in s:
        raise ValueError("sheet_text must be like '3000x1500'")
    a, b = s.split("x", 1)
    w, h = float(a), float(b)
    if w <= 0 or h <= 0:
        raise ValueError(f"Sheet size must be positive, got {sheet_text!r}")
    return w, h
