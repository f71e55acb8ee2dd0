# nest_solver/io_json.py
# Load a nesting job from JSON into SheetSpec + [PieceRequest] + run settings.
#
# Expected JSON shape:
# {
#   "sheet": {"width": 3000, "height": 1500, "kerf": 2, "thickness": 6, "material": "A36"},
#   "pieces": [
#     {"id": "flange", "width": 200, "height": 200, "quantity": 4, "allow_rotation": true,
#      "tag": "F1", "geometry": {"type": "circle", "radius": 100}},
#     {"id": "gusset", "w": 300, "h": 150, "count": 2,
#      "geometry": {"type": "polygon", "points": [[0, 0], [300, 0], [0, 150]]}}
#   ],
#   "settings": {"algorithm": "Hybrid", "process": "plasma", "thermal": false, "tour": "nearest",
#                "seed": 7, "population": 50, "generations": 100}
# }
#
# "sheet" may be omitted (defaults from config.py); "w"/"h"/"count"/"can_rotate"
# are accepted as aliases.

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import make_default_sheet
from .types import Circle, Complex, Geometry, PieceRequest, Polygon, Rectangle, SheetSpec


@dataclass(frozen=True)
class JsonLoadResult:
    sheet: SheetSpec
    pieces: List[PieceRequest]
    settings: Dict[str, Any] = field(default_factory=dict)


def _first(d: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


def parse_geometry(g: Optional[Dict[str, Any]]) -> Optional[Geometry]:
    if not g:
        return None
    kind = str(g.get("type", "")).strip().lower()
    if kind == "rectangle":
        return Rectangle(float(g["width"]), float(g["height"]))
    if kind == "circle":
        return Circle(float(g["radius"]))
    points = tuple((float(p[0]), float(p[1])) for p in g.get("points") or [])
    if kind == "polygon":
        return Polygon(points)
    if kind == "complex":
        return Complex(points, str(g.get("source_file", "")))
    raise ValueError(f"Unknown geometry type: {g.get('type')!r}")


def parse_sheet(s: Optional[Dict[str, Any]]) -> SheetSpec:
    s = s or {}
    return make_default_sheet(
        width=_first(s, "width", "w"),
        height=_first(s, "height", "h"),
        kerf=_first(s, "kerf"),
        thickness=_first(s, "thickness"),
        material=_first(s, "material"),
    )


def parse_piece(it: Dict[str, Any]) -> PieceRequest:
    pid = str(_first(it, "id", "name", default="")).strip()
    if not pid:
        raise ValueError(f"Piece missing id/name: {it}")
    geometry = parse_geometry(it.get("geometry"))
    w = _first(it, "width", "w")
    h = _first(it, "height", "h")
    if (w is None or h is None) and geometry is not None:
        w, h = geometry.bounding_box
    if w is None or h is None:
        raise ValueError(f"Piece {pid}: missing width/height")
    return PieceRequest(
        id=pid,
        width=float(w),
        height=float(h),
        quantity=int(_first(it, "quantity", "count", "qty", default=1)),
        allow_rotation=bool(_first(it, "allow_rotation", "can_rotate", default=True)),
        tag=str(it.get("tag", "")),
        geometry=geometry,
        material=it.get("material"),
        thickness=float(it["thickness"]) if it.get("thickness") is not None else None,
    )


def load_job_dict(data: Dict[str, Any]) -> JsonLoadResult:
    items = data.get("pieces") or data.get("items") or []
    return JsonLoadResult(
        sheet=parse_sheet(data.get("sheet")),
        pieces=[parse_piece(it) for it in items],
        settings=dict(data.get("settings") or {}),
    )


def load_job_json(path: str | Path) -> JsonLoadResult:
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return load_job_dict(data)
