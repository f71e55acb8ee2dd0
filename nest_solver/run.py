# nest_solver/run.py
# High-level runner that ties together:
# - placement engine selection (BLF / Genetic / NFP / Hybrid)
# - weighted multi-objective scoring of candidate layouts
# - per-sheet cut sequencing + machine programs
# - run metrics, sensitivity analysis, background submission
#
# Example:
#   from nest_solver.run import OrchestratorConfig, optimize
#   res = optimize(pieces, sheet, OrchestratorConfig(algorithm="Hybrid"))
#   print(res.average_efficiency, res.program)

from __future__ import annotations

import math
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

from .config import DEFAULTS
from .logger import get_logger
from .metrics import efficiency_score, sheet_count_score, waste_reduction
from .sequence import TOUR_NEAREST, SequenceParams, emit_program, plan, plan_thermal, thermal_order
from .solver_bottomleft import solve_bottomleft
from .solver_genetic import GeneticParams, search_genetic
from .solver_nfp import NfpParams, solve_nfp
from .types import OptimizationResult, PieceRequest, SheetSpec
from .utils import CancelToken, check_cancel, timer

BLF = "BLF"
GENETIC = "Genetic"
NFP = "NFP"
HYBRID = "Hybrid"
ALGORITHMS = (BLF, GENETIC, NFP, HYBRID)


@dataclass(frozen=True)
class ObjectiveWeights:
    """Weights of the normalized objectives; a disabled objective does not count."""
    efficiency: float = 0.4
    waste_reduction: float = 0.3
    cutting_time: float = 0.2
    thermal_distortion: float = 0.1

    efficiency_enabled: bool = True
    waste_reduction_enabled: bool = True
    cutting_time_enabled: bool = True
    thermal_distortion_enabled: bool = False

    def enabled(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for name in ("efficiency", "waste_reduction", "cutting_time", "thermal_distortion"):
            if getattr(self, f"{name}_enabled"):
                out[name] = getattr(self, name)
        return out


@dataclass(frozen=True)
class OrchestratorConfig:
    algorithm: str = BLF
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)

    # Cut sequencing
    process: str = DEFAULTS.default_process
    thermal_sequencing: bool = False
    tour: str = TOUR_NEAREST
    sequence: bool = True

    genetic: GeneticParams = field(default_factory=GeneticParams)
    nfp: NfpParams = field(default_factory=NfpParams)

    # Hybrid runs the genetic search when there are more piece types than this
    hybrid_genetic_min_pieces: int = DEFAULTS.hybrid_genetic_min_pieces

    def __post_init__(self):
        if self.algorithm not in ALGORITHMS:
            raise ValueError(f"algorithm must be one of {ALGORITHMS}, got {self.algorithm!r}")

    def sequence_params(self) -> SequenceParams:
        return SequenceParams(process=self.process, tour=self.tour)


# ----------------------------
# Objectives
# ----------------------------

def thermal_spread(result: OptimizationResult, sheet: SheetSpec) -> float:
    """
    Mean distance between consecutive pieces of the thermal-aware order,
    relative to the sheet diagonal, in [0, 1]. Higher = heat better spread.
    """
    hops: List[float] = []
    for sh in result.sheets:
        order = thermal_order(sh.placements)
        for a, b in zip(order, order[1:]):
            hops.append(math.hypot(b.x - a.x, b.y - a.y))
    if not hops or sheet.diagonal <= 0:
        return 0.0
    return min(1.0, max(0.0, sum(hops) / len(hops) / sheet.diagonal))


def objective_values(result: OptimizationResult, sheet: SheetSpec) -> Dict[str, float]:
    return {
        "efficiency": efficiency_score(result),
        "waste_reduction": waste_reduction(result, sheet),
        "cutting_time": sheet_count_score(result),
        "thermal_distortion": thermal_spread(result, sheet),
    }


def score(result: OptimizationResult, sheet: SheetSpec, weights: Optional[ObjectiveWeights] = None) -> float:
    weights = weights or ObjectiveWeights()
    values = objective_values(result, sheet)
    return sum(w * values[name] for name, w in weights.enabled().items())


# ----------------------------
# Orchestration
# ----------------------------

def _run_engine(
    algorithm: str,
    pieces: List[PieceRequest],
    sheet: SheetSpec,
    config: OrchestratorConfig,
    cancel: Optional[CancelToken],
) -> Dict[str, OptimizationResult]:
    """Candidate results by engine name."""
    if algorithm == BLF:
        return {BLF: solve_bottomleft(pieces, sheet, cancel=cancel)}
    if algorithm == GENETIC:
        return {GENETIC: search_genetic(pieces, sheet, config.genetic, cancel=cancel)}
    if algorithm == NFP:
        return {NFP: solve_nfp(pieces, sheet, config.nfp, cancel=cancel)}

    # Hybrid
    if len(pieces) <= config.hybrid_genetic_min_pieces:
        return {BLF: solve_bottomleft(pieces, sheet, cancel=cancel)}
    with ThreadPoolExecutor(max_workers=2) as ex:
        blf = ex.submit(solve_bottomleft, pieces, sheet, cancel=cancel)
        ga = ex.submit(search_genetic, pieces, sheet, config.genetic, cancel=cancel)
        return {BLF: blf.result(), GENETIC: ga.result()}


def attach_sequencing(result: OptimizationResult, config: OrchestratorConfig) -> OptimizationResult:
    """One cut path + program per sheet (in-place, returned for chaining)."""
    params = config.sequence_params()
    result.cut_paths = []
    result.programs = []
    for sh in result.sheets:
        path = plan_thermal(sh, params) if config.thermal_sequencing else plan(sh, params)
        result.cut_paths.append(path)
        result.programs.append(emit_program(path, params.pierce_delay_s))
    return result


def optimize(
    pieces: Optional[Iterable[PieceRequest]],
    sheet: SheetSpec,
    config: Optional[OrchestratorConfig] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> OptimizationResult:
    """
    Run the configured engine(s), keep the best-scoring layout, sequence
    every sheet and attach run metrics.
    """
    config = config or OrchestratorConfig()
    log = get_logger()
    plist = list(pieces or [])

    with timer("optimize") as t:
        candidates = _run_engine(config.algorithm, plist, sheet, config, cancel)
        scores = {name: score(res, sheet, config.weights) for name, res in candidates.items()}
        for name, s in scores.items():
            log.info(f"{config.algorithm}: candidate {name} score {s:.4f}")

        # Ties keep the first candidate (BLF)
        selected = max(scores, key=lambda name: scores[name])
        result = candidates[selected]

        check_cancel(cancel)
        if config.sequence:
            attach_sequencing(result, config)

    engine_metrics = result.metrics or {}
    generations = engine_metrics.get("generations")
    result.metrics = {
        "time_ms": round(t["seconds"] * 1000.0, 3),
        "algorithm": config.algorithm,
        "selected": selected,
        "weights": config.weights.enabled(),
        "score": scores[selected],
        "candidate_scores": scores,
        "objectives": objective_values(result, sheet),
        "converged": generations is None or generations < config.genetic.generations,
        "generations": generations,
    }
    log.info(
        f"Done: {config.algorithm} -> {selected}, {result.total_sheets} sheet(s), "
        f"avg efficiency {result.average_efficiency:.1f}%, {result.metrics['time_ms']:.0f} ms"
    )
    return result


def submit_optimize(
    pieces: Optional[Iterable[PieceRequest]],
    sheet: SheetSpec,
    config: Optional[OrchestratorConfig] = None,
    *,
    cancel: Optional[CancelToken] = None,
    executor: Optional[ThreadPoolExecutor] = None,
) -> "Future[OptimizationResult]":
    """
    optimize() in the background. Pass `cancel` to be able to stop it; the
    future then raises OptimizationCancelled.
    """
    plist = list(pieces or [])
    if executor is not None:
        return executor.submit(optimize, plist, sheet, config, cancel=cancel)
    ex = ThreadPoolExecutor(max_workers=1, thread_name_prefix="nest")
    fut = ex.submit(optimize, plist, sheet, config, cancel=cancel)
    ex.shutdown(wait=False)
    return fut


# ----------------------------
# Sensitivity analysis
# ----------------------------

@dataclass(frozen=True)
class Variation:
    name: str
    kerf_delta: float = 0.0
    width_delta: float = 0.0
    height_delta: float = 0.0

    def apply(self, sheet: SheetSpec) -> SheetSpec:
        return replace(
            sheet,
            kerf=max(0.0, sheet.kerf + self.kerf_delta),
            width=sheet.width + self.width_delta,
            height=sheet.height + self.height_delta,
        )


DEFAULT_VARIATIONS = (
    Variation("kerf +1mm", kerf_delta=1.0),
    Variation("kerf -0.5mm", kerf_delta=-0.5),
    Variation("sheet width +100mm", width_delta=100.0),
    Variation("sheet height +200mm", height_delta=200.0),
)


@dataclass(frozen=True)
class SensitivityResult:
    variation: Variation
    sheet: SheetSpec
    efficiency: float
    sheets: int
    waste_area: float

    # Relative to the baseline
    efficiency_delta: float
    sheets_delta: int
    waste_delta: float


def analyze_sensitivity(
    pieces: Optional[Iterable[PieceRequest]],
    sheet: SheetSpec,
    variations: Optional[Iterable[Variation]] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> List[SensitivityResult]:
    """Rerun BLF on perturbed sheets and report deltas against the unperturbed run."""
    plist = list(pieces or [])
    base = solve_bottomleft(plist, sheet, cancel=cancel)

    out: List[SensitivityResult] = []
    for v in variations if variations is not None else DEFAULT_VARIATIONS:
        s = v.apply(sheet)
        res = solve_bottomleft(plist, s, cancel=cancel)
        out.append(
            SensitivityResult(
                variation=v,
                sheet=s,
                efficiency=res.average_efficiency,
                sheets=res.total_sheets,
                waste_area=res.total_waste_area,
                efficiency_delta=res.average_efficiency - base.average_efficiency,
                sheets_delta=res.total_sheets - base.total_sheets,
                waste_delta=res.total_waste_area - base.total_waste_area,
            )
        )
    return out


def export_configuration(config: OrchestratorConfig, sheet: Optional[SheetSpec] = None) -> Dict[str, Any]:
    """JSON-friendly snapshot of a run configuration."""
    out: Dict[str, Any] = {
        "algorithm": config.algorithm,
        "objectives": {
            name: {"weight": getattr(config.weights, name), "enabled": getattr(config.weights, f"{name}_enabled")}
            for name in ("efficiency", "waste_reduction", "cutting_time", "thermal_distortion")
        },
        "sequencing": {
            "process": config.process,
            "thermal": config.thermal_sequencing,
            "tour": config.tour,
            "enabled": config.sequence,
        },
        "genetic": asdict(config.genetic),
        "nfp": asdict(config.nfp),
        "hybrid_genetic_min_pieces": config.hybrid_genetic_min_pieces,
    }
    if sheet is not None:
        out["sheet"] = asdict(sheet)
    return out
