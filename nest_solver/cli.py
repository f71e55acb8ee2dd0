# nest_solver/cli.py
# Command-line runner for JSON jobs:
# - algorithm / process / sequencing switches (override the job settings)
# - prints totals, per-sheet summary and rejections
# - optional export folder: result.json + one .nc program per sheet
# - optional sensitivity analysis
#
# Run:
#   python -m nest_solver --job job.json --algorithm Hybrid --out out/
#   python -m nest_solver --job job.json --sheet 3000x1500 --kerf 2.5 --sensitivity

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import DEFAULTS, clamp_int, parse_sheet_text
from .debug import print_result, summary_lines
from .io_json import load_job_json
from .logger import LEVELS, set_enabled, set_level, set_verbose
from .run import ALGORITHMS, OrchestratorConfig, analyze_sensitivity, optimize
from .sequence import PROCESSES, TOURS
from .solver_genetic import GeneticParams
from .utils import save_programs, save_result_json
from .validate import raise_on_errors, validate_result


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Plate nesting for plasma / oxy-fuel cutting")
    p.add_argument("--job", type=str, required=True, help="Path to job JSON (sheet/pieces/settings)")

    p.add_argument("--algorithm", type=str, default=None, choices=ALGORITHMS, help="Placement engine")
    p.add_argument("--process", type=str, default=None, choices=PROCESSES, help="Cutting process")
    p.add_argument("--thermal", action="store_true", help="Thermal-aware cut order")
    p.add_argument("--tour", type=str, default=None, choices=TOURS, help="Cut tour: nearest or cpsat")

    # Sheet overrides
    p.add_argument("--sheet", type=str, default="", help="Override sheet WxH in mm, e.g. 3000x1500")
    p.add_argument("--kerf", type=float, default=-1.0, help="Override kerf (mm). -1 = use job")

    # Genetic tuning
    p.add_argument("--population", type=int, default=None, help="GA population size")
    p.add_argument("--generations", type=int, default=None, help="GA generations")
    p.add_argument("--seed", type=int, default=None, help="GA random seed")
    p.add_argument("--workers", type=int, default=None, help="GA fitness worker processes")

    p.add_argument("--sensitivity", action="store_true", help="Also run the sensitivity analysis")
    p.add_argument("--details", action="store_true", help="Print every placement")
    p.add_argument("--out", type=str, default="", help="Output directory for result.json + .nc programs")
    p.add_argument("--quiet", action="store_true", help="Silence engine logging")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    p.add_argument("--log_level", type=str, default="", choices=["", *LEVELS], help="Log level threshold (overrides --verbose)")
    return p


def _pick(cli_value: Any, settings: Dict[str, Any], key: str, default: Any) -> Any:
    if cli_value is not None:
        return cli_value
    return settings.get(key, default)


def build_config(args: argparse.Namespace, settings: Dict[str, Any]) -> OrchestratorConfig:
    population = max(1, int(_pick(args.population, settings, "population", DEFAULTS.ga_population_size)))
    genetic = GeneticParams(
        population_size=population,
        elite_size=min(DEFAULTS.ga_elite_size, population),
        generations=int(_pick(args.generations, settings, "generations", DEFAULTS.ga_generations)),
        seed=_pick(args.seed, settings, "seed", None),
        workers=clamp_int(_pick(args.workers, settings, "workers", 1), 1, 64),
    )
    return OrchestratorConfig(
        algorithm=_pick(args.algorithm, settings, "algorithm", "BLF"),
        process=_pick(args.process, settings, "process", DEFAULTS.default_process),
        thermal_sequencing=bool(args.thermal or settings.get("thermal", False)),
        tour=_pick(args.tour, settings, "tour", "nearest"),
        genetic=genetic,
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)
    set_enabled(not args.quiet)
    set_verbose(args.verbose)
    if args.log_level:
        set_level(args.log_level)

    job_path = Path(args.job)
    if not job_path.exists():
        raise SystemExit(f"Job JSON not found: {job_path}")

    loaded = load_job_json(job_path)
    sheet = loaded.sheet
    if args.sheet.strip():
        w, h = parse_sheet_text(args.sheet)
        sheet = replace(sheet, width=w, height=h)
    if args.kerf >= 0:
        sheet = replace(sheet, kerf=float(args.kerf))
    if not loaded.pieces:
        raise SystemExit("No pieces found in job.")

    config = build_config(args, loaded.settings)
    result = optimize(loaded.pieces, sheet, config)

    # Validate
    raise_on_errors(validate_result(result, sheet, loaded.pieces))

    print(f"Algorithm: {config.algorithm} (selected {result.metrics['selected']})")
    print(f"Sheet: {sheet.width:g}x{sheet.height:g} mm  kerf={sheet.kerf:g} mm  {sheet.material} {sheet.thickness:g} mm")
    print_result(result, details=args.details)
    for line in summary_lines(result):
        print(line)

    if args.sensitivity:
        print("-- Sensitivity (BLF) --")
        for s in analyze_sensitivity(loaded.pieces, sheet):
            print(
                f"{s.variation.name:22s} efficiency {s.efficiency_delta:+.2f}%  "
                f"sheets {s.sheets_delta:+d}  waste {s.waste_delta:+,.0f} mm²"
            )

    # Exports
    out_dir = args.out.strip()
    if out_dir:
        outp = Path(out_dir)
        save_result_json(result, outp / "result.json")
        written = save_programs(result, outp)
        print(f"Exported result.json + {len(written)} program(s) to: {outp}")


if __name__ == "__main__":
    main()
