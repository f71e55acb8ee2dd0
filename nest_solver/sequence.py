# nest_solver/sequence.py
# Cut sequencing for one sheet:
# - three cut points per placed piece (entry / start / end)
# - nearest-neighbour open tour from the point nearest the machine origin
# - optional CP-SAT refinement of that tour (AddCircuit with a dummy depot)
# - thermal-aware variant: proximity clusters cut round-robin
# - machine program (G-code) emission
#
# Coordinates are sheet coordinates in mm; the origin is the machine home.

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ortools.sat.python import cp_model

from .config import DEFAULTS
from .logger import get_logger
from .types import END, ENTRY, START, CutPath, CutPoint, PlacedPiece, SheetResult

PLASMA = "plasma"
OXYFUEL = "oxyfuel"
BOTH = "both"
PROCESSES = (PLASMA, OXYFUEL, BOTH)

TOUR_NEAREST = "nearest"
TOUR_CPSAT = "cpsat"
TOURS = (TOUR_NEAREST, TOUR_CPSAT)

# Costs in CP-SAT are integers: 1/100 mm
_COST_SCALE = 100


@dataclass(frozen=True)
class SequenceParams:
    process: str = DEFAULTS.default_process
    entry_inset: float = DEFAULTS.plasma_entry_inset
    cluster_distance: float = DEFAULTS.thermal_cluster_distance
    pierce_delay_s: float = DEFAULTS.pierce_delay_s
    tour: str = TOUR_NEAREST
    tour_time_limit_s: float = DEFAULTS.tour_time_limit_s

    def __post_init__(self):
        if self.process not in PROCESSES:
            raise ValueError(f"process must be one of {PROCESSES}, got {self.process!r}")
        if self.tour not in TOURS:
            raise ValueError(f"tour must be one of {TOURS}, got {self.tour!r}")


def distance(a: CutPoint, b: CutPoint) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def path_length(points: Sequence[CutPoint]) -> float:
    return sum(distance(points[i - 1], points[i]) for i in range(1, len(points)))


def count_pierces(points: Sequence[CutPoint]) -> int:
    return sum(1 for p in points if p.kind == ENTRY)


def entry_point(pl: PlacedPiece, process: str, inset: float = DEFAULTS.plasma_entry_inset) -> Tuple[float, float]:
    """Plasma pierces just inside the corner, oxy-fuel on the left edge mid-height."""
    if process == PLASMA:
        return pl.x + inset, pl.y + inset
    if process == OXYFUEL:
        return pl.x, pl.y + pl.height / 2.0
    return pl.x, pl.y


def cut_points(placements: Sequence[PlacedPiece], params: SequenceParams) -> List[CutPoint]:
    out: List[CutPoint] = []
    for pl in placements:
        ex, ey = entry_point(pl, params.process, params.entry_inset)
        out.append(CutPoint(ex, ey, pl, ENTRY))
        out.append(CutPoint(pl.x, pl.y, pl, START))
        out.append(CutPoint(pl.right(), pl.top(), pl, END))
    return out


def nearest_neighbour_tour(points: Sequence[CutPoint]) -> List[CutPoint]:
    """Greedy open tour. Ties keep the earlier point."""
    if not points:
        return []
    unvisited = list(points)
    cur = min(unvisited, key=lambda p: math.hypot(p.x, p.y))
    unvisited.remove(cur)
    tour = [cur]
    while unvisited:
        nxt = min(unvisited, key=lambda p: distance(cur, p))
        unvisited.remove(nxt)
        tour.append(nxt)
        cur = nxt
    return tour


def refine_tour_cpsat(tour: Sequence[CutPoint], time_limit_s: float = DEFAULTS.tour_time_limit_s) -> List[CutPoint]:
    """
    Shortest open path over the same points with CP-SAT. Node n is a depot:
    depot -> i costs the distance from the origin, i -> depot is free.
    The given tour is the hint; it is returned unchanged when the solver
    finds nothing shorter.
    """
    n = len(tour)
    if n < 3:
        return list(tour)

    def cost(a: CutPoint, b: CutPoint) -> int:
        return int(round(distance(a, b) * _COST_SCALE))

    m = cp_model.CpModel()
    depot = n
    arcs: List[Tuple[int, int, cp_model.IntVar]] = []
    lits: Dict[Tuple[int, int], cp_model.IntVar] = {}
    terms = []

    for i in range(n):
        start = m.NewBoolVar(f"start_{i}")
        stop = m.NewBoolVar(f"stop_{i}")
        arcs.append((depot, i, start))
        arcs.append((i, depot, stop))
        lits[(depot, i)] = start
        lits[(i, depot)] = stop
        terms.append(int(round(math.hypot(tour[i].x, tour[i].y) * _COST_SCALE)) * start)
        for j in range(n):
            if i == j:
                continue
            lit = m.NewBoolVar(f"arc_{i}_{j}")
            arcs.append((i, j, lit))
            lits[(i, j)] = lit
            terms.append(cost(tour[i], tour[j]) * lit)

    m.AddCircuit(arcs)
    m.Minimize(sum(terms))

    # Hint: the tour as given, in index order
    hinted = {(depot, 0), (n - 1, depot)} | {(i, i + 1) for i in range(n - 1)}
    for key, lit in lits.items():
        m.AddHint(lit, 1 if key in hinted else 0)

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(time_limit_s)
    solver.parameters.num_search_workers = 2

    status = solver.Solve(m)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        get_logger().warn(f"CP-SAT tour: no solution (status={solver.StatusName(status)}), keeping nearest-neighbour tour")
        return list(tour)

    succ: Dict[int, int] = {}
    for (i, j), lit in lits.items():
        if solver.Value(lit) == 1:
            succ[i] = j

    order: List[CutPoint] = []
    cur = succ[depot]
    while cur != depot:
        order.append(tour[cur])
        cur = succ[cur]

    if len(order) != n or path_length(order) > path_length(tour):
        return list(tour)
    return order


def _make_path(points: List[CutPoint], sheet_index: int) -> CutPath:
    return CutPath(
        points=points,
        total_distance=path_length(points),
        pierce_points=count_pierces(points),
        sheet_index=sheet_index,
    )


def plan(sheet: SheetResult, params: Optional[SequenceParams] = None) -> CutPath:
    """Cut path visiting every cut point of the sheet exactly once."""
    params = params or SequenceParams()
    points = cut_points(sheet.placements, params)
    tour = nearest_neighbour_tour(points)
    if params.tour == TOUR_CPSAT:
        tour = refine_tour_cpsat(tour, params.tour_time_limit_s)
    path = _make_path(tour, sheet.sheet_index)
    get_logger().debug(
        f"Sequence {sheet.id}: {len(tour)} points, {path.pierce_points} pierces, {path.total_distance:.1f} mm"
    )
    return path


def cluster_pieces(placements: Sequence[PlacedPiece], threshold: float = DEFAULTS.thermal_cluster_distance) -> List[List[PlacedPiece]]:
    """
    Greedy proximity clusters: each unassigned piece seeds a cluster and takes
    every unassigned piece whose lower-left corner is closer than `threshold`.
    """
    clusters: List[List[PlacedPiece]] = []
    used = set()
    for i, seed in enumerate(placements):
        if i in used:
            continue
        used.add(i)
        cluster = [seed]
        for j, other in enumerate(placements):
            if j in used:
                continue
            if math.hypot(seed.x - other.x, seed.y - other.y) < threshold:
                cluster.append(other)
                used.add(j)
        clusters.append(cluster)
    return clusters


def thermal_order(placements: Sequence[PlacedPiece], threshold: float = DEFAULTS.thermal_cluster_distance) -> List[PlacedPiece]:
    """One piece per cluster in turn, so consecutive cuts land in different regions."""
    queues = [list(c) for c in cluster_pieces(placements, threshold)]
    out: List[PlacedPiece] = []
    while any(queues):
        for q in queues:
            if q:
                out.append(q.pop(0))
    return out


def plan_thermal(sheet: SheetResult, params: Optional[SequenceParams] = None) -> CutPath:
    params = params or SequenceParams()
    order = thermal_order(sheet.placements, params.cluster_distance)
    return _make_path(cut_points(order, params), sheet.sheet_index)


def emit_program(path: CutPath, pierce_delay_s: float = DEFAULTS.pierce_delay_s) -> List[str]:
    """
    Plain-text G-code. Entry: rapid move, pierce, dwell. Start/end: linear
    moves, torch off after the end point.
    """
    lines = [
        "G21 ; units: mm",
        "G90 ; absolute coordinates",
        "M03 ; torch on",
        "",
    ]
    for p in path.points:
        if p.kind == ENTRY:
            lines.append(f"; Entry for piece {p.piece.tag or p.piece.uid}")
            lines.append(f"G00 X{p.x:.2f} Y{p.y:.2f} ; rapid move")
            lines.append("M07 ; pierce")
            lines.append(f"G04 P{pierce_delay_s} ; pierce delay")
        elif p.kind == START:
            lines.append(f"G01 X{p.x:.2f} Y{p.y:.2f} ; cut start")
        elif p.kind == END:
            lines.append(f"G01 X{p.x:.2f} Y{p.y:.2f} ; cut end")
            lines.append("M08 ; stop pierce")
            lines.append("")
    lines += [
        "M05 ; torch off",
        "G00 X0 Y0 ; return to origin",
        "M30 ; program end",
    ]
    return lines
