"""OBJ/MTL material reader: dissolve (``d``), ``Tr`` and ``map_d``."""

from __future__ import annotations

import logging
from pathlib import Path

from model_import.transparency.descriptor import (
    FORMAT_OBJ,
    DescriptorMap,
    TransparencyDescriptor,
    name_key,
)

logger = logging.getLogger(__name__)

# d below this, or Tr above this, counts as see-through.
DISSOLVE_THRESHOLD = 0.99
TR_THRESHOLD = 0.01


def _mtllib_paths(obj_path: Path) -> list[Path]:
    out: list[Path] = []
    with obj_path.open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            stripped = line.strip()
            if not stripped.startswith("mtllib"):
                continue
            parts = stripped.split(None, 1)
            if len(parts) != 2 or parts[0] != "mtllib":
                continue
            out.append(obj_path.parent / parts[1].strip())
    return out


def _float(token: str, default: float) -> float:
    try:
        return float(token)
    except ValueError:
        return default


def _parse_mtl(mtl_path: Path, out: DescriptorMap) -> None:
    current: str | None = None
    fields: dict[str, object] = {}

    def flush() -> None:
        if current is None:
            return
        dissolve = float(fields.get("dissolve", 1.0))
        tr = float(fields.get("transparency", 0.0))
        opacity_map = fields.get("opacity_map")
        out[name_key(current)] = TransparencyDescriptor(
            material_name=current,
            format=FORMAT_OBJ,
            is_transparent=dissolve < DISSOLVE_THRESHOLD or tr > TR_THRESHOLD or bool(opacity_map),
            fields={"dissolve": dissolve, "transparency": tr, "opacity_map": opacity_map},
        )

    with mtl_path.open("r", encoding="utf-8", errors="replace") as fh:
        for raw in fh:
            tokens = raw.split()
            if not tokens or tokens[0].startswith("#"):
                continue
            key = tokens[0].lower()
            if key == "newmtl":
                flush()
                current = raw.strip()[len(tokens[0]) :].strip() or None
                fields = {}
            elif current is None or len(tokens) < 2:
                continue
            elif key == "d":
                fields["dissolve"] = _float(tokens[1], 1.0)
            elif key == "tr":
                fields["transparency"] = _float(tokens[1], 0.0)
            elif key == "map_d":
                # Options may precede the path; the path is the last token.
                fields["opacity_map"] = tokens[-1]
    flush()


def parse(path: Path) -> DescriptorMap:
    path = Path(path)
    out: DescriptorMap = {}
    try:
        libs = _mtllib_paths(path)
    except OSError as e:
        logger.warning("obj: cannot read %s – %s", path, e)
        return out
    for mtl in libs:
        if not mtl.is_file():
            logger.debug("obj: material library %s not found", mtl)
            continue
        try:
            _parse_mtl(mtl, out)
        except OSError as e:
            logger.warning("obj: cannot read %s – %s", mtl, e)
    return out
