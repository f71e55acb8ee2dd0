# nest_solver/test_run.py
# Orchestrator: engine selection, scoring, sequencing, sensitivity, background runs.
#   python -m nest_solver.test_run

from __future__ import annotations

import json

import pytest

from nest_solver.cli import main as cli_main
from nest_solver.run import (
    ALGORITHMS,
    DEFAULT_VARIATIONS,
    ObjectiveWeights,
    OrchestratorConfig,
    Variation,
    analyze_sensitivity,
    export_configuration,
    objective_values,
    optimize,
    score,
    submit_optimize,
    thermal_spread,
)
from nest_solver.solver_genetic import GeneticParams
from nest_solver.types import Circle, PieceRequest, SheetSpec
from nest_solver.utils import CancelToken, OptimizationCancelled, result_to_dict
from nest_solver.validate import raise_on_errors, validate_result

SMALL_GA = GeneticParams(population_size=8, generations=5, seed=1)


def _pieces(n_types: int = 4):
    return [PieceRequest(f"p{i}", 100 + 20 * i, 80 + 10 * (i % 3), quantity=2) for i in range(n_types)]


def test_every_algorithm_produces_valid_layout() -> None:
    sheet = SheetSpec(800, 500, kerf=2)
    pieces = _pieces() + [PieceRequest("disc", 120, 120, geometry=Circle(60))]
    for algorithm in ALGORITHMS:
        res = optimize(pieces, sheet, OrchestratorConfig(algorithm=algorithm, genetic=SMALL_GA))
        raise_on_errors(validate_result(res, sheet, pieces))
        assert res.placed_count() == 9
        assert res.metrics["algorithm"] == algorithm
        assert len(res.cut_paths) == res.total_sheets
        assert len(res.programs) == res.total_sheets


def test_every_sheet_is_sequenced() -> None:
    sheet = SheetSpec(500, 500, kerf=2)
    pieces = [PieceRequest("sq", 300, 300, quantity=3)]
    res = optimize(pieces, sheet)
    assert res.total_sheets == 3
    assert [cp.sheet_index for cp in res.cut_paths] == [0, 1, 2]
    assert all(cp.pierce_points == 1 for cp in res.cut_paths)
    assert res.cut_path is res.cut_paths[0]
    assert res.program is res.programs[0]


def test_hybrid_uses_genetic_only_for_many_piece_types() -> None:
    sheet = SheetSpec(1200, 800, kerf=2)
    few = optimize(_pieces(4), sheet, OrchestratorConfig(algorithm="Hybrid", genetic=SMALL_GA))
    assert list(few.metrics["candidate_scores"]) == ["BLF"]

    many = optimize(_pieces(11), sheet, OrchestratorConfig(algorithm="Hybrid", genetic=SMALL_GA))
    scores = many.metrics["candidate_scores"]
    assert set(scores) == {"BLF", "Genetic"}
    assert many.metrics["score"] == max(scores.values())


def test_hybrid_with_worker_pool() -> None:
    sheet = SheetSpec(1200, 800, kerf=2)
    pieces = _pieces(12)
    ga = GeneticParams(population_size=10, generations=5, seed=4, workers=2)
    res = optimize(pieces, sheet, OrchestratorConfig(algorithm="Hybrid", genetic=ga))
    assert set(res.metrics["candidate_scores"]) == {"BLF", "Genetic"}
    assert len(res.cut_paths) == res.total_sheets
    raise_on_errors(validate_result(res, sheet, pieces))


def test_empty_input() -> None:
    for pieces in ([], None):
        res = optimize(pieces, SheetSpec(1000, 1000), OrchestratorConfig(algorithm="Hybrid"))
        assert res.total_sheets == 0
        assert res.cut_paths == [] and res.program is None
        assert res.metrics["selected"] == "BLF"


def test_score_uses_enabled_objectives_only() -> None:
    sheet = SheetSpec(500, 500, kerf=2)
    res = optimize([PieceRequest("A", 100, 100, quantity=2)], sheet)
    v = objective_values(res, sheet)
    assert v["efficiency"] == pytest.approx(0.08)
    assert v["cutting_time"] == pytest.approx(0.5)
    expected = 0.4 * v["efficiency"] + 0.3 * v["waste_reduction"] + 0.2 * v["cutting_time"]
    assert score(res, sheet) == pytest.approx(expected)

    weights = ObjectiveWeights(thermal_distortion_enabled=True)
    assert score(res, sheet, weights) == pytest.approx(expected + 0.1 * v["thermal_distortion"])


def test_thermal_spread_range() -> None:
    sheet = SheetSpec(1000, 1000)
    res = optimize([PieceRequest("A", 50, 50, quantity=6)], sheet)
    assert 0.0 < thermal_spread(res, sheet) <= 1.0
    single = optimize([PieceRequest("A", 50, 50)], sheet)
    assert thermal_spread(single, sheet) == 0.0


def test_unknown_algorithm_raises() -> None:
    with pytest.raises(ValueError):
        OrchestratorConfig(algorithm="Simulated")


def test_sensitivity_defaults() -> None:
    sheet = SheetSpec(1000, 600, kerf=2)
    rows = analyze_sensitivity(_pieces(), sheet)
    assert [r.variation for r in rows] == list(DEFAULT_VARIATIONS)
    kerfs = [r.sheet.kerf for r in rows]
    assert kerfs == [3.0, 1.5, 2.0, 2.0]
    assert rows[2].sheet.width == 1100 and rows[3].sheet.height == 800
    # Bigger plate, same pieces: efficiency can only drop
    assert rows[2].efficiency_delta < 0


def test_sensitivity_custom_variation() -> None:
    sheet = SheetSpec(500, 500, kerf=2)
    pieces = [PieceRequest("sq", 300, 300, quantity=2)]
    (row,) = analyze_sensitivity(pieces, sheet, [Variation("wide", width_delta=200)])
    # 700 mm fits both squares side by side
    assert row.sheets == 1 and row.sheets_delta == -1


def test_export_configuration_is_json() -> None:
    cfg = OrchestratorConfig(algorithm="Genetic", genetic=SMALL_GA, thermal_sequencing=True)
    out = export_configuration(cfg, SheetSpec(3000, 1500))
    text = json.dumps(out)
    assert out["algorithm"] == "Genetic"
    assert out["objectives"]["thermal_distortion"] == {"weight": 0.1, "enabled": False}
    assert out["genetic"]["population_size"] == 8
    assert out["sheet"]["width"] == 3000
    assert "sequencing" in json.loads(text)


def test_result_to_dict_roundtrips_through_json() -> None:
    res = optimize(_pieces(), SheetSpec(800, 500))
    data = json.loads(json.dumps(result_to_dict(res)))
    assert data["totals"]["placed"] == res.placed_count()
    assert len(data["cut_paths"]) == res.total_sheets
    assert data["metrics"]["algorithm"] == "BLF"


def test_submit_optimize_returns_future() -> None:
    fut = submit_optimize(_pieces(), SheetSpec(800, 500))
    res = fut.result(timeout=60)
    assert res.placed_count() == 8


def test_cancelled_run_raises() -> None:
    token = CancelToken()
    token.cancel()
    with pytest.raises(OptimizationCancelled):
        optimize(_pieces(), SheetSpec(800, 500), cancel=token)
    fut = submit_optimize(_pieces(), SheetSpec(800, 500), cancel=token)
    with pytest.raises(OptimizationCancelled):
        fut.result(timeout=60)


def test_cli_writes_result_and_programs(tmp_path) -> None:
    job = {
        "sheet": {"width": 500, "height": 500, "kerf": 2},
        "pieces": [{"id": "sq", "width": 300, "height": 300, "quantity": 2}],
        "settings": {"algorithm": "BLF", "process": "oxyfuel"},
    }
    job_path = tmp_path / "job.json"
    job_path.write_text(json.dumps(job), encoding="utf-8")
    out = tmp_path / "out"
    cli_main(["--job", str(job_path), "--out", str(out), "--quiet", "--sensitivity"])

    data = json.loads((out / "result.json").read_text(encoding="utf-8"))
    assert data["totals"]["total_sheets"] == 2
    programs = sorted(p.name for p in out.glob("*.nc"))
    assert programs == ["sheet_1.nc", "sheet_2.nc"]
    assert "M07 ; pierce" in (out / "sheet_1.nc").read_text(encoding="utf-8")


def main() -> None:
    import tempfile
    from pathlib import Path

    print("Running orchestrator tests...")
    test_every_algorithm_produces_valid_layout()
    test_every_sheet_is_sequenced()
    test_hybrid_uses_genetic_only_for_many_piece_types()
    test_hybrid_with_worker_pool()
    test_empty_input()
    test_score_uses_enabled_objectives_only()
    test_thermal_spread_range()
    test_unknown_algorithm_raises()
    test_sensitivity_defaults()
    test_sensitivity_custom_variation()
    test_export_configuration_is_json()
    test_result_to_dict_roundtrips_through_json()
    test_submit_optimize_returns_future()
    test_cancelled_run_raises()
    with tempfile.TemporaryDirectory() as d:
        test_cli_writes_result_and_programs(Path(d))
    print("OK")


if __name__ == "__main__":
    main()
