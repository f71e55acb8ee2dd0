# nest_solver/solver_genetic.py
# Genetic search over piece order and orientation, scored by Bottom-Left-Fill.
#
# Genome = permutation of indices into an immutable instance arena + one
# orientation flag per arena index. Individuals never share mutable state:
# crossover and mutation build new tuples, the arena is only read.
#
# Fitness = 0.5 * efficiency + 0.3 * waste reduction + 0.2 / (sheets + 1),
# evaluated with solver_bottomleft.place_instances on the genome order.

from __future__ import annotations

import random
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULTS
from .logger import get_logger
from .metrics import efficiency_score, sheet_count_score, waste_reduction
from .solver_bottomleft import place_instances
from .types import OptimizationResult, PieceInstance, PieceRequest, SheetSpec, expand_pieces
from .utils import CancelToken, check_cancel
from .validate import merge_rejections, rejection_issues, validate_pieces

Genome = Tuple[Tuple[int, ...], Tuple[bool, ...]]


@dataclass(frozen=True)
class GeneticParams:
    population_size: int = DEFAULTS.ga_population_size
    generations: int = DEFAULTS.ga_generations
    mutation_rate: float = DEFAULTS.ga_mutation_rate
    crossover_rate: float = DEFAULTS.ga_crossover_rate
    elite_size: int = DEFAULTS.ga_elite_size
    tournament_size: int = DEFAULTS.ga_tournament_size
    initial_flip_probability: float = DEFAULTS.ga_initial_flip_probability

    # Stop after this many generations without a better best fitness
    patience: int = DEFAULTS.ga_patience

    seed: Optional[int] = None

    # >1: evaluate fitness in a process pool
    workers: int = 1

    def __post_init__(self):
        if self.population_size < 1:
            raise ValueError("population_size must be >= 1")
        if self.generations < 0:
            raise ValueError("generations must be >= 0")
        if not 0 <= self.elite_size <= self.population_size:
            raise ValueError("elite_size must be in [0, population_size]")
        for name in ("mutation_rate", "crossover_rate", "initial_flip_probability"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {v}")
        if self.tournament_size < 1:
            raise ValueError("tournament_size must be >= 1")


@dataclass(frozen=True)
class Individual:
    order: Tuple[int, ...]
    flips: Tuple[bool, ...]
    fitness: float = 0.0
    efficiency: float = 0.0
    waste_reduction: float = 0.0

    @property
    def genome(self) -> Genome:
        return self.order, self.flips


def compute_fitness(result: OptimizationResult, sheet: SheetSpec) -> float:
    return (
        0.5 * efficiency_score(result)
        + 0.3 * waste_reduction(result, sheet)
        + 0.2 * sheet_count_score(result)
    )


def build_instances(arena: Sequence[PieceInstance], genome: Genome) -> List[PieceInstance]:
    order, flips = genome
    return [arena[i].flip() if flips[i] else arena[i] for i in order]


def evaluate_genome(arena: Sequence[PieceInstance], sheet: SheetSpec, genome: Genome) -> Tuple[float, float, float]:
    """(fitness, efficiency, waste_reduction) of one genome."""
    res = place_instances(build_instances(arena, genome), sheet, presorted=True)
    return compute_fitness(res, sheet), efficiency_score(res), waste_reduction(res, sheet)


# Process-pool workers keep the arena and sheet from the initializer
_WORKER_STATE: Dict[str, object] = {}


def _init_worker(arena: Sequence[PieceInstance], sheet: SheetSpec) -> None:
    _WORKER_STATE["arena"] = arena
    _WORKER_STATE["sheet"] = sheet


def _evaluate_in_worker(genome: Genome) -> Tuple[float, float, float]:
    return evaluate_genome(_WORKER_STATE["arena"], _WORKER_STATE["sheet"], genome)  # type: ignore[arg-type]


class GeneticSearch:
    """
    One search run. Holds the arena, the RNG and the fitness cache; use
    search_genetic() unless you need access to the final population.
    """

    def __init__(
        self,
        arena: Sequence[PieceInstance],
        sheet: SheetSpec,
        params: GeneticParams,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.arena = list(arena)
        self.sheet = sheet
        self.params = params
        self.cancel = cancel
        self.rng = random.Random(params.seed)
        self.cache: Dict[Genome, Tuple[float, float, float]] = {}
        self.generations_run = 0
        self._pool: Optional[ProcessPoolExecutor] = None
        self._rotatable = [i for i, inst in enumerate(self.arena) if inst.can_rotate]

    # ----------------------------
    # Population
    # ----------------------------

    def initial_population(self) -> List[Individual]:
        """
        Orders cycle through area-desc, width-desc, height-desc and random.
        Individual 0 keeps the plain area-desc order without flips, i.e. the
        order Bottom-Left-Fill uses on its own.
        """
        n = len(self.arena)
        base = list(range(n))
        pop: List[Individual] = []
        for i in range(self.params.population_size):
            s = i % 4
            if s == 0:
                order = sorted(base, key=lambda k: -self.arena[k].area)
            elif s == 1:
                order = sorted(base, key=lambda k: -self.arena[k].w)
            elif s == 2:
                order = sorted(base, key=lambda k: -self.arena[k].h)
            else:
                order = list(base)
                self.rng.shuffle(order)

            flips = [False] * n
            if i > 0:
                for k in self._rotatable:
                    if self.rng.random() < self.params.initial_flip_probability:
                        flips[k] = True
            pop.append(Individual(order=tuple(order), flips=tuple(flips)))
        return pop

    def evaluate(self, population: List[Individual]) -> List[Individual]:
        """Score every individual (cached by genome), sorted best first."""
        todo = []
        for ind in population:
            g = ind.genome
            if g not in self.cache and g not in todo:
                todo.append(g)

        if todo:
            if self._pool is not None:
                scores = list(self._pool.map(_evaluate_in_worker, todo))
            else:
                scores = [evaluate_genome(self.arena, self.sheet, g) for g in todo]
            self.cache.update(zip(todo, scores))

        scored = []
        for ind in population:
            fit, eff, wr = self.cache[ind.genome]
            scored.append(replace(ind, fitness=fit, efficiency=eff, waste_reduction=wr))
        scored.sort(key=lambda ind: -ind.fitness)
        return scored

    def evolve(self, population: List[Individual]) -> List[Individual]:
        p = self.params
        nxt: List[Individual] = list(population[: p.elite_size])

        while len(nxt) < p.population_size:
            a = self.tournament(population)
            b = self.tournament(population)
            if self.rng.random() < p.crossover_rate:
                c1, c2 = self.crossover(a, b)
            else:
                c1, c2 = a, b
            if self.rng.random() < p.mutation_rate:
                c1 = self.mutate(c1)
            if self.rng.random() < p.mutation_rate:
                c2 = self.mutate(c2)
            nxt.append(c1)
            if len(nxt) < p.population_size:
                nxt.append(c2)
        return nxt

    # ----------------------------
    # Operators
    # ----------------------------

    def tournament(self, population: List[Individual]) -> Individual:
        picks = [population[self.rng.randrange(len(population))] for _ in range(self.params.tournament_size)]
        return max(picks, key=lambda ind: ind.fitness)

    def crossover(self, a: Individual, b: Individual) -> Tuple[Individual, Individual]:
        """
        Single-point crossover that keeps a permutation: head of one parent,
        remaining indices in the other parent's order. Flags follow the gene.
        """
        cut = self.rng.randrange(len(a.order)) if a.order else 0
        return self._cross(a, b, cut), self._cross(b, a, cut)

    @staticmethod
    def _cross(head: Individual, tail: Individual, cut: int) -> Individual:
        taken = set(head.order[:cut])
        order = head.order[:cut] + tuple(g for g in tail.order if g not in taken)
        flips = tuple(head.flips[k] if k in taken else tail.flips[k] for k in range(len(head.flips)))
        return Individual(order=order, flips=flips)

    def mutate(self, ind: Individual) -> Individual:
        """Swap (40%), flip one rotatable piece (30%) or shuffle a segment of <= 5 (30%)."""
        n = len(ind.order)
        if n == 0:
            return ind
        order = list(ind.order)
        flips = list(ind.flips)
        r = self.rng.random()
        if r < 0.4:
            i = self.rng.randrange(n)
            j = self.rng.randrange(n)
            order[i], order[j] = order[j], order[i]
        elif r < 0.7:
            if self._rotatable:
                k = self._rotatable[self.rng.randrange(len(self._rotatable))]
                flips[k] = not flips[k]
        else:
            start = self.rng.randrange(n)
            end = min(start + 5, n)
            segment = order[start:end]
            self.rng.shuffle(segment)
            order[start:end] = segment
        return Individual(order=tuple(order), flips=tuple(flips))

    # ----------------------------
    # Driver
    # ----------------------------

    def run(self) -> Individual:
        log = get_logger()
        p = self.params
        pool = None
        if p.workers > 1:
            pool = ProcessPoolExecutor(max_workers=p.workers, initializer=_init_worker, initargs=(self.arena, self.sheet))
        self._pool = pool
        try:
            population = self.evaluate(self.initial_population())
            best = population[0]
            stale = 0
            for gen in range(p.generations):
                check_cancel(self.cancel)
                population = self.evaluate(self.evolve(population))
                self.generations_run = gen + 1

                if population[0].fitness > best.fitness:
                    best = population[0]
                    stale = 0
                    log.debug(f"GA generation {gen}: new best fitness {best.fitness:.4f}")
                else:
                    stale += 1

                if stale >= p.patience:
                    log.info(f"GA early stop at generation {gen}: no improvement for {p.patience} generations")
                    break
        finally:
            self._pool = None
            if pool is not None:
                pool.shutdown()
        return best


def search_genetic(
    pieces: Optional[Iterable[PieceRequest]],
    sheet: SheetSpec,
    params: Optional[GeneticParams] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> OptimizationResult:
    """
    Genetic search; the best genome is placed once more with Bottom-Left-Fill
    and returned as the final result.
    """
    params = params or GeneticParams()
    log = get_logger()

    valid, invalid, issues = validate_pieces(pieces)
    arena = expand_pieces(valid)
    log.info(
        f"GA: {len(arena)} instances, population {params.population_size}, "
        f"up to {params.generations} generations"
    )

    if arena:
        ga = GeneticSearch(arena, sheet, params, cancel=cancel)
        best = ga.run()
        res = place_instances(build_instances(arena, best.genome), sheet, presorted=True)
        best_fitness = best.fitness
        generations_run = ga.generations_run
    else:
        res = place_instances([], sheet)
        best_fitness = compute_fitness(res, sheet)
        generations_run = 0

    not_placed = merge_rejections(res.rejected)
    res.rejected = invalid + not_placed
    res.issues = issues + rejection_issues(not_placed)
    res.metrics = {"generations": generations_run, "best_fitness": best_fitness}

    for iss in res.issues:
        log.warn(iss.message)
    log.info(
        f"GA: best fitness {best_fitness:.4f} after {generations_run} generation(s), "
        f"{res.total_sheets} sheet(s), avg efficiency {res.average_efficiency:.1f}%"
    )
    return res
