# nest_solver/__init__.py
"""
Plate nesting package for plasma / oxy-fuel cutting of steel plate.

Current state:
- Bottom-Left-Fill rectangle packing (kerf-aware, selective rotation)
- No-fit-polygon placement for circles, polygons and imported outlines
- Genetic search over piece order and orientation
- Orchestrator with weighted objectives (efficiency, waste, sheet count, thermal spread)
- Cut sequencing per sheet (nearest neighbour, CP-SAT refinement, thermal-aware)
  and G-code program emission
- Weight and material cost from density / price tables
"""

from .types import (
    Rectangle,
    Circle,
    Polygon,
    Complex,
    PieceRequest,
    PieceInstance,
    SheetSpec,
    expand_pieces,
    PlacedPiece,
    RejectedPiece,
    PlacementIssue,
    SheetResult,
    CutPoint,
    CutPath,
    OptimizationResult,
)

from .metrics import (
    Metrics,
    compute_sheet_metrics,
    compute_waste_area,
    finalize_result,
)

from .solver_bottomleft import solve_bottomleft
from .solver_nfp import NfpParams, solve_nfp
from .solver_genetic import GeneticParams, search_genetic

from .sequence import SequenceParams, emit_program, plan, plan_thermal

from .run import (
    ObjectiveWeights,
    OrchestratorConfig,
    analyze_sensitivity,
    export_configuration,
    optimize,
    submit_optimize,
)

from .utils import CancelToken, OptimizationCancelled

__all__ = [
    # types
    "Rectangle",
    "Circle",
    "Polygon",
    "Complex",
    "PieceRequest",
    "PieceInstance",
    "SheetSpec",
    "expand_pieces",
    "PlacedPiece",
    "RejectedPiece",
    "PlacementIssue",
    "SheetResult",
    "CutPoint",
    "CutPath",
    "OptimizationResult",
    # metrics
    "Metrics",
    "compute_sheet_metrics",
    "compute_waste_area",
    "finalize_result",
    # engines
    "solve_bottomleft",
    "NfpParams",
    "solve_nfp",
    "GeneticParams",
    "search_genetic",
    # sequencing
    "SequenceParams",
    "plan",
    "plan_thermal",
    "emit_program",
    # orchestration
    "ObjectiveWeights",
    "OrchestratorConfig",
    "optimize",
    "submit_optimize",
    "analyze_sensitivity",
    "export_configuration",
    "CancelToken",
    "OptimizationCancelled",
]
