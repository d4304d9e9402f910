"""Import settings stored at ~/.irun/model_import/config.json."""

from __future__ import annotations

import json
import logging
import os
import secrets
from dataclasses import asdict, dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({".fbx", ".gltf", ".glb", ".obj", ".dae"})

# Generic opacity below this marks a material as Blend.
OPACITY_BLEND_THRESHOLD = 0.95


@dataclass(frozen=True)
class ImportConfig:
    """User-tunable import settings.  Every field has a working default."""

    # Shader id written into every extracted material.
    shader: str = "ForwardBase"
    # Default parent folder (under the assets root) for imported models.
    models_dir_name: str = "Models"
    # Subfolders created inside each model folder.
    materials_dir_name: str = "Materials"
    textures_dir_name: str = "Textures"
    # Pick up loose images next to the model in addition to referenced ones.
    scan_additional_textures: bool = True
    # Fall back to a recursive search when a referenced texture is not found nearby.
    recursive_texture_search: bool = True
    # Refuse albedo references that look like tangent-space normal maps.
    reject_normal_maps_as_albedo: bool = True


# ── persistence ──────────────────────────────────────────────


def _config_dir() -> Path:
    override = os.environ.get("IRUN_MODEL_IMPORT_CONFIG_DIR")
    if override:
        return Path(override)
    return Path.home() / ".irun" / "model_import"


def config_path() -> Path:
    return _config_dir() / "config.json"


def _coerce_bool(val: object) -> bool | None:
    if isinstance(val, bool):
        return val
    if isinstance(val, (int, float)):
        return bool(val)
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes", "on")
    return None


def load_config(path: Path | None = None) -> ImportConfig:
    p = Path(path) if path is not None else config_path()
    if not p.exists():
        return ImportConfig()
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("model_import config: unreadable %s – %s; using defaults", p, e)
        return ImportConfig()
    if not isinstance(raw, dict):
        return ImportConfig()

    kwargs: dict = {}
    for fld in fields(ImportConfig):
        if fld.name not in raw:
            continue
        val = raw[fld.name]
        # Coerce types to match field annotations.
        if fld.type == "bool":
            coerced = _coerce_bool(val)
            if coerced is not None:
                kwargs[fld.name] = coerced
        elif fld.type == "str" and isinstance(val, str) and val.strip():
            kwargs[fld.name] = val.strip()
    return ImportConfig(**kwargs)


def save_config(cfg: ImportConfig, path: Path | None = None) -> None:
    p = Path(path) if path is not None else config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_name(f"{p.name}.{os.getpid()}.{secrets.token_hex(4)}.tmp")
    tmp.write_text(
        json.dumps(asdict(cfg), indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    tmp.replace(p)
