# nest_solver/test_genetic.py
# Genetic search: operators keep valid genomes, search never loses to plain BLF.
#   python -m nest_solver.test_genetic

from __future__ import annotations

import pytest

from nest_solver.solver_bottomleft import solve_bottomleft
from nest_solver.solver_genetic import (
    GeneticParams,
    GeneticSearch,
    Individual,
    compute_fitness,
    search_genetic,
)
from nest_solver.types import PieceRequest, SheetSpec, expand_pieces
from nest_solver.utils import CancelToken, OptimizationCancelled
from nest_solver.validate import raise_on_errors, validate_result


def _pieces():
    return [
        PieceRequest(f"p{i}", 80 + 37 * (i % 5), 60 + 23 * (i % 4), allow_rotation=(i % 3 != 0))
        for i in range(15)
    ]


def _search(params: GeneticParams) -> GeneticSearch:
    return GeneticSearch(expand_pieces(_pieces()), SheetSpec(600, 400, kerf=2), params)


def test_genetic_not_worse_than_bottomleft() -> None:
    sheet = SheetSpec(600, 400, kerf=2)
    pieces = _pieces()
    blf = solve_bottomleft(pieces, sheet)
    ga = search_genetic(pieces, sheet, GeneticParams(population_size=20, generations=100, seed=3))

    assert compute_fitness(ga, sheet) >= compute_fitness(blf, sheet) - 1e-12
    assert ga.metrics["best_fitness"] == pytest.approx(compute_fitness(ga, sheet))
    assert 1 <= ga.metrics["generations"] <= 100
    raise_on_errors(validate_result(ga, sheet, pieces))


def test_seeded_runs_are_reproducible() -> None:
    sheet = SheetSpec(600, 400, kerf=2)
    params = GeneticParams(population_size=12, generations=10, seed=42)
    a = search_genetic(_pieces(), sheet, params)
    b = search_genetic(_pieces(), sheet, params)
    key = lambda r: [(p.uid, p.sheet_index, p.x, p.y, p.rotation) for p in r.placements()]
    assert key(a) == key(b)


def test_worker_pool_matches_serial() -> None:
    sheet = SheetSpec(600, 400, kerf=2)
    serial = search_genetic(_pieces(), sheet, GeneticParams(population_size=10, generations=5, seed=4, workers=1))
    pooled = search_genetic(_pieces(), sheet, GeneticParams(population_size=10, generations=5, seed=4, workers=2))
    key = lambda r: [(p.uid, p.sheet_index, p.x, p.y, p.rotation) for p in r.placements()]
    assert key(pooled) == key(serial)
    assert pooled.metrics == serial.metrics


def test_initial_population_seeds() -> None:
    ga = _search(GeneticParams(population_size=8, seed=1))
    pop = ga.initial_population()
    assert len(pop) == 8
    areas = [ga.arena[k].area for k in pop[0].order]
    assert areas == sorted(areas, reverse=True)
    assert not any(pop[0].flips)
    for ind in pop:
        assert sorted(ind.order) == list(range(len(ga.arena)))
        for k, flipped in enumerate(ind.flips):
            if flipped:
                assert ga.arena[k].can_rotate


def test_crossover_and_mutation_keep_permutations() -> None:
    ga = _search(GeneticParams(population_size=6, seed=5))
    pop = ga.initial_population()
    n = len(ga.arena)
    for _ in range(50):
        c1, c2 = ga.crossover(pop[1], pop[3])
        for child in (c1, c2, ga.mutate(c1), ga.mutate(c2)):
            assert sorted(child.order) == list(range(n))
            assert len(child.flips) == n
            for k, flipped in enumerate(child.flips):
                if flipped:
                    assert ga.arena[k].can_rotate


def test_mutation_does_not_touch_parent() -> None:
    ga = _search(GeneticParams(seed=9))
    parent = Individual(order=tuple(range(len(ga.arena))), flips=(False,) * len(ga.arena))
    for _ in range(30):
        ga.mutate(parent)
    assert parent.order == tuple(range(len(ga.arena)))
    assert not any(parent.flips)


def test_early_stop_without_improvement() -> None:
    sheet = SheetSpec(1000, 1000)
    pieces = [PieceRequest("sq", 100, 100, quantity=4)]
    res = search_genetic(pieces, sheet, GeneticParams(population_size=6, generations=100, patience=5, seed=0))
    assert res.metrics["generations"] == 5


def test_bad_params_raise() -> None:
    with pytest.raises(ValueError):
        GeneticParams(population_size=0)
    with pytest.raises(ValueError):
        GeneticParams(mutation_rate=1.5)
    with pytest.raises(ValueError):
        GeneticParams(population_size=4, elite_size=5)


def test_empty_input() -> None:
    res = search_genetic([], SheetSpec(1000, 1000))
    assert res.total_sheets == 0
    assert res.metrics["generations"] == 0


def test_cancelled_between_generations() -> None:
    token = CancelToken()
    token.cancel()
    with pytest.raises(OptimizationCancelled):
        search_genetic(_pieces(), SheetSpec(600, 400), GeneticParams(population_size=4, generations=5, elite_size=2), cancel=token)


def main() -> None:
    print("Running genetic tests...")
    test_genetic_not_worse_than_bottomleft()
    test_seeded_runs_are_reproducible()
    test_worker_pool_matches_serial()
    test_initial_population_seeds()
    test_crossover_and_mutation_keep_permutations()
    test_mutation_does_not_touch_parent()
    test_early_stop_without_improvement()
    test_bad_params_raise()
    test_empty_input()
    test_cancelled_between_generations()
    print("OK")


if __name__ == "__main__":
    main()
