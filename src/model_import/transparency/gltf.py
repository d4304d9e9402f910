"""glTF (JSON) material reader: alphaMode, alphaCutoff, baseColorFactor, texture indices.

Binary ``.glb`` containers are not read here; the generic ingest path covers them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from model_import.transparency.descriptor import (
    FORMAT_GLTF,
    DescriptorMap,
    TransparencyDescriptor,
    name_key,
)

logger = logging.getLogger(__name__)

_TRANSPARENT_MODES: frozenset[str] = frozenset({"BLEND", "MASK"})


def _load_json(path: Path) -> dict | None:
    if path.suffix.lower() != ".gltf":
        return None
    try:
        doc = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("gltf: cannot read %s – %s", path, e)
        return None
    return doc if isinstance(doc, dict) else None


def _texture_index(obj: Any) -> int | None:
    if not isinstance(obj, dict):
        return None
    idx = obj.get("index")
    if isinstance(idx, int) and not isinstance(idx, bool):
        return idx
    return None


def _base_color(pbr: dict) -> tuple[float, float, float, float]:
    raw = pbr.get("baseColorFactor")
    if not isinstance(raw, list):
        return (1.0, 1.0, 1.0, 1.0)
    vals: list[float] = []
    for v in raw[:4]:
        try:
            vals.append(float(v))
        except (TypeError, ValueError):
            vals.append(0.0)
    # Missing RGB components read as 0, missing alpha as 1.
    while len(vals) < 3:
        vals.append(0.0)
    if len(vals) < 4:
        vals.append(1.0)
    return (vals[0], vals[1], vals[2], vals[3])


def parse(path: Path) -> DescriptorMap:
    doc = _load_json(Path(path))
    if doc is None:
        return {}
    materials = doc.get("materials")
    if not isinstance(materials, list):
        return {}

    out: DescriptorMap = {}
    for mat in materials:
        if not isinstance(mat, dict):
            continue
        name = str(mat.get("name") or "").strip()
        if not name:
            continue
        alpha_mode = str(mat.get("alphaMode") or "OPAQUE").strip().upper()
        try:
            alpha_cutoff = float(mat.get("alphaCutoff", 0.5))
        except (TypeError, ValueError):
            alpha_cutoff = 0.5
        pbr = mat.get("pbrMetallicRoughness")
        pbr = pbr if isinstance(pbr, dict) else {}
        base_color = _base_color(pbr)

        indices: dict[str, int] = {}
        for key, obj in (
            ("base_color", pbr.get("baseColorTexture")),
            ("metallic_roughness", pbr.get("metallicRoughnessTexture")),
            ("normal", mat.get("normalTexture")),
            ("occlusion", mat.get("occlusionTexture")),
            ("emissive", mat.get("emissiveTexture")),
        ):
            idx = _texture_index(obj)
            if idx is not None:
                indices[key] = idx

        transparent = alpha_mode in _TRANSPARENT_MODES or base_color[3] < 0.99
        out[name_key(name)] = TransparencyDescriptor(
            material_name=name,
            format=FORMAT_GLTF,
            is_transparent=transparent,
            fields={
                "alpha_mode": alpha_mode,
                "alpha_cutoff": alpha_cutoff,
                "base_color_factor": base_color,
            },
            texture_indices=indices,
        )
        logger.debug("gltf: %s alphaMode=%s alpha=%.3f", name, alpha_mode, base_color[3])
    return out


def texture_paths(path: Path) -> dict[int, str]:
    """Map glTF texture index -> image URI (``textures[i].source`` -> ``images[].uri``)."""
    doc = _load_json(Path(path))
    if doc is None:
        return {}
    textures = doc.get("textures")
    images = doc.get("images")
    if not isinstance(textures, list) or not isinstance(images, list):
        return {}

    out: dict[int, str] = {}
    for i, tex in enumerate(textures):
        if not isinstance(tex, dict):
            continue
        src = tex.get("source")
        if not isinstance(src, int) or isinstance(src, bool) or not (0 <= src < len(images)):
            continue
        img = images[src]
        uri = img.get("uri") if isinstance(img, dict) else None
        if isinstance(uri, str) and uri.strip():
            out[i] = uri.strip()
    return out
