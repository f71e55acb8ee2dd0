# nest_solver/utils.py
# Small utilities used across the project:
# - timing context manager
# - cancellation token for long searches
# - JSON export for results (sheets + placements + sequencing + metrics)
#
# Keeps dependencies minimal (stdlib only).

from __future__ import annotations

import json
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .types import CutPath, OptimizationResult, PlacedPiece


class OptimizationCancelled(RuntimeError):
    """Raised by an engine when its CancelToken was set."""


class CancelToken:
    """
    Thread-safe cancellation flag. Engines call check() between scan rows
    and between generations.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise OptimizationCancelled("optimization cancelled")


def check_cancel(token: Optional[CancelToken]) -> None:
    if token is not None:
        token.check()


@contextmanager
def timer(label: str = "timer") -> Iterator[Dict[str, float]]:
    """
    Usage:
      with timer("solve") as t:
          ...
      print(t["seconds"])
    """
    t0 = time.perf_counter()
    payload: Dict[str, float] = {}
    try:
        yield payload
    finally:
        payload["seconds"] = time.perf_counter() - t0


def _to_jsonable(obj: Any) -> Any:
    """Convert dataclasses and other objects to JSON-serializable structures."""
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    if isinstance(obj, Path):
        return str(obj)
    return obj


def _placement_to_dict(pl: PlacedPiece) -> Dict[str, Any]:
    return {
        "uid": pl.uid,
        "piece_id": pl.piece.id if pl.piece is not None else None,
        "tag": pl.tag,
        "x": pl.x,
        "y": pl.y,
        "width": pl.width,
        "height": pl.height,
        "rotation": pl.rotation,
    }


def cut_path_to_dict(path: CutPath) -> Dict[str, Any]:
    return {
        "sheet_index": path.sheet_index,
        "total_distance_mm": round(path.total_distance, 3),
        "pierce_points": path.pierce_points,
        "points": [{"x": p.x, "y": p.y, "kind": p.kind, "uid": p.piece.uid} for p in path.points],
    }


def result_to_dict(result: OptimizationResult) -> Dict[str, Any]:
    """
    Convert OptimizationResult to a JSON-friendly dict.
    Piece requests are referenced by id, not embedded.
    """
    out: Dict[str, Any] = {
        "sheets": [],
        "totals": {
            "total_sheets": result.total_sheets,
            "total_waste_area_mm2": result.total_waste_area,
            "average_efficiency_pct": result.average_efficiency,
            "total_weight_kg": result.total_weight,
            "material_cost": result.material_cost,
            "placed": result.placed_count(),
            "rejected": result.rejected_count(),
        },
        "rejected": [
            {"piece_id": r.piece.id, "count": r.count, "kind": r.kind, "reason": r.reason}
            for r in result.rejected
        ],
        "issues": [_to_jsonable(i) for i in result.issues],
        "cut_paths": [cut_path_to_dict(cp) for cp in result.cut_paths],
        "metrics": _to_jsonable(result.metrics) if result.metrics is not None else None,
    }

    for sh in result.sheets:
        out["sheets"].append(
            {
                "id": sh.id,
                "sheet_index": sh.sheet_index,
                "placements": [_placement_to_dict(pl) for pl in sh.placements],
                "metrics": {
                    "efficiency_pct": sh.efficiency,
                    "waste_area_mm2": sh.waste_area,
                    "utilized_area_mm2": sh.utilized_area,
                    "weight_kg": sh.weight,
                },
            }
        )

    return out


def save_result_json(result: OptimizationResult, path: str | Path, *, indent: int = 2) -> None:
    """Save result (placements + sequencing + metrics) into JSON for integration."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = result_to_dict(result)
    with path.open("w", encoding="utf-8") as f:
        json.dump(_to_jsonable(payload), f, ensure_ascii=False, indent=indent)


def save_programs(result: OptimizationResult, out_dir: str | Path, *, prefix: str = "sheet") -> List[Path]:
    """Write one machine program (.nc) per sequenced sheet."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for i, lines in enumerate(result.programs):
        p = out_dir / f"{prefix}_{i + 1}.nc"
        p.write_text("\n".join(lines) + "\n", encoding="utf-8")
        written.append(p)
    return written


def sort_placements_readable(placements: List[PlacedPiece]) -> List[PlacedPiece]:
    """
    Stable readable ordering: by sheet, then y, then x, then uid.
    Helpful for debugging diffs.
    """
    return sorted(placements, key=lambda p: (p.sheet_index, p.y, p.x, p.uid))
