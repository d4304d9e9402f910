"""``.meta`` sidecars: ``{"guid": ..., "type": ...}`` next to every persisted asset."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta"

TYPE_MATERIAL = "Material"
TYPE_MESH_ASSET = "MeshAsset"
TYPE_TEXTURE_2D = "Texture2D"

_MODEL_TYPES: dict[str, str] = {
    ".fbx": "ModelFBX",
    ".obj": "ModelOBJ",
    ".gltf": "ModelGLTF",
    ".glb": "ModelGLB",
    ".dae": "ModelDAE",
}


def model_asset_type(extension: str) -> str:
    return _MODEL_TYPES.get(extension.lower(), "Model")


def meta_path(asset_path: Path) -> Path:
    asset_path = Path(asset_path)
    return asset_path.with_name(asset_path.name + META_SUFFIX)


def write_meta(asset_path: Path, guid: uuid.UUID, asset_type: str) -> Path:
    p = meta_path(asset_path)
    p.write_text(
        json.dumps({"guid": str(guid), "type": asset_type}, indent=2) + "\n",
        encoding="utf-8",
    )
    return p


def read_meta_guid(asset_path: Path) -> uuid.UUID | None:
    """GUID from *asset_path*'s sidecar, or None when absent or malformed."""
    p = meta_path(asset_path)
    if not p.is_file():
        return None
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
        return uuid.UUID(str(raw["guid"]))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("meta: ignoring malformed sidecar %s – %s", p, e)
        return None
