"""Texture extraction: embedded payloads, referenced files and loose images.

The :class:`TextureExtractor` is the default :class:`TextureResolver` handed
to the pipeline.  It copies every texture it can find into the model's
``Textures`` folder, gives each one a ``Texture2D`` sidecar and returns a
reference -> GUID map that the material extractor resolves against.
"""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from PIL import Image

from model_import.app_config import ImportConfig
from model_import.assets.meta import TYPE_TEXTURE_2D, read_meta_guid, write_meta
from model_import.common.diagnostics import ImportDiagnostics
from model_import.common.paths import unique_path
from model_import.scene.scene_graph import MaterialInfo, SceneGraph

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {".png", ".jpg", ".jpeg", ".tga", ".bmp", ".dds", ".tiff", ".exr", ".hdr"}
)

# Subfolders next to a model that commonly hold its textures.
_TEXTURE_SUBDIRS: tuple[str, ...] = ("textures", "Textures", "texture", "images", "Images")

# Embedded-texture format hints written verbatim as the file extension.
_EMBEDDED_HINTS: frozenset[str] = frozenset({"png", "jpg", "jpeg", "tga", "bmp", "dds"})

# Filename fragments per slot, checked in this order; a file is assigned to the
# first slot it matches.
_AUTO_ASSIGN_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("albedo", ("basecolor", "albedo", "diffuse", "color", "_d.", "_col.", "_base.", "diff")),
    ("normal", ("normal", "norm", "_n.", "nm.", "normalmap", "bump")),
    ("metallic", ("metallic", "metal", "_m.", "metalness")),
    ("roughness", ("rough", "_r.", "roughness")),
    ("metallic_roughness", ("metallicroughness", "metalrough", "orm")),
    ("occlusion", ("ao", "ambientocclusion", "ambient", "occlusion")),
    ("emissive", ("emissive", "emit", "emission", "glow")),
    ("opacity", ("opacity", "alpha", "transparency", "transparent")),
)

_NORMAL_SAMPLE_LIMIT = 2048


@dataclass(frozen=True)
class TextureSet:
    """Textures guessed from file naming conventions for one material."""

    albedo: uuid.UUID | None = None
    normal: uuid.UUID | None = None
    metallic: uuid.UUID | None = None
    roughness: uuid.UUID | None = None
    metallic_roughness: uuid.UUID | None = None
    occlusion: uuid.UUID | None = None
    emissive: uuid.UUID | None = None
    opacity: uuid.UUID | None = None


class TextureResolver(Protocol):
    def extract(self, scene: SceneGraph, materials: Sequence[MaterialInfo]) -> dict[str, uuid.UUID]:
        """Make textures available and return reference string -> GUID."""
        ...

    def auto_assign(self, material_name: str) -> TextureSet:
        """Guess textures for *material_name* from naming conventions."""
        ...


# ---------------------------------------------------------------------------
# Normal-map detection
# ---------------------------------------------------------------------------


_NAME_TOKEN_SPLIT = re.compile(r"[_\-. ]+")


def _normal_map_by_name(path: Path) -> bool:
    stem = path.stem.lower()
    if "normal" in stem:
        return True
    # "nm" only as a whole token, so column_albedo or environment_basecolor pass.
    tokens = _NAME_TOKEN_SPLIT.split(stem)
    return "nm" in tokens or tokens[-1] == "n"


def _normal_map_by_pixels(path: Path) -> bool:
    """Average colour of the first pixels is the flat tangent-space blue (≈128,128,>135)."""
    try:
        with Image.open(path) as img:
            raw = img.convert("RGB").tobytes()[: _NORMAL_SAMPLE_LIMIT * 3]
    except (OSError, ValueError) as e:
        logger.debug("textures: cannot sample %s – %s", path.name, e)
        return False
    if len(raw) < 3:
        return False
    n = float(len(raw) // 3)
    avg_r = sum(raw[0::3]) / n
    avg_g = sum(raw[1::3]) / n
    avg_b = sum(raw[2::3]) / n
    return abs(avg_r - 128.0) < 25.0 and abs(avg_g - 128.0) < 25.0 and avg_b > 135.0


def looks_like_normal_map(path: Path) -> bool:
    return _normal_map_by_name(path) or _normal_map_by_pixels(path)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class TextureExtractor:
    """Filesystem texture resolver for one model import.

    Args:
        source_dir: Directory of the original model file; referenced textures
            are searched relative to it.
        textures_dir: Output folder (``<model folder>/Textures``).
        model_name: Used to name extracted embedded textures.
    """

    def __init__(
        self,
        source_dir: Path,
        textures_dir: Path,
        model_name: str,
        *,
        config: ImportConfig | None = None,
        diagnostics: ImportDiagnostics | None = None,
    ) -> None:
        self._source_dir = Path(source_dir)
        self._textures_dir = Path(textures_dir)
        self._model_name = model_name
        self._config = config or ImportConfig()
        self._diagnostics = diagnostics
        # reference string / file name -> GUID
        self._extracted: dict[str, uuid.UUID] = {}

    @property
    def textures_dir(self) -> Path:
        return self._textures_dir

    def extract(self, scene: SceneGraph, materials: Sequence[MaterialInfo]) -> dict[str, uuid.UUID]:
        self._textures_dir.mkdir(parents=True, exist_ok=True)
        self._extract_embedded(scene)
        for info in materials:
            for slot, ref in info.textures.items():
                self._extract_referenced(ref, slot)
        if self._config.scan_additional_textures:
            self._scan_additional()
        logger.info(
            "textures: %d reference(s) resolved into %s",
            len(self._extracted), self._textures_dir,
        )
        return dict(self._extracted)

    # -- embedded -----------------------------------------------------------

    def _extract_embedded(self, scene: SceneGraph) -> None:
        for tex in scene.textures:
            if not tex.data:
                continue
            hint = tex.format_hint if tex.format_hint in _EMBEDDED_HINTS else "png"
            out = unique_path(self._textures_dir, f"{self._model_name}_embedded_{tex.index}", f".{hint}")
            try:
                out.write_bytes(tex.data)
            except OSError as e:
                self._report(f"embedded texture {tex.index}", e)
                continue
            guid = self._register(out)
            self._extracted[f"*{tex.index}"] = guid
            logger.debug("textures: extracted embedded texture %s", out.name)

    # -- referenced ---------------------------------------------------------

    def find_texture(self, ref: str) -> Path | None:
        """Locate *ref* on disk, or None."""
        normalized = ref.replace("\\", "/").strip()
        if not normalized:
            return None
        ref_path = Path(normalized)
        filename = ref_path.name

        candidates: list[Path] = []
        if not ref_path.is_absolute():
            candidates.append(self._source_dir / ref_path)
        if filename:
            candidates.append(self._source_dir / filename)
            candidates.extend(self._source_dir / sub / filename for sub in _TEXTURE_SUBDIRS)
        if ref_path.is_absolute():
            candidates.append(ref_path)

        for c in candidates:
            if c.is_file():
                return c.resolve()

        if filename and self._config.recursive_texture_search:
            for hit in sorted(self._source_dir.rglob(filename)):
                if hit.is_file():
                    logger.debug("textures: found %s via recursive search", filename)
                    return hit.resolve()
        return None

    def _extract_referenced(self, ref: str, slot: str) -> None:
        if not ref or ref.startswith("*") or ref in self._extracted:
            return
        src = self.find_texture(ref)
        if src is None:
            logger.warning("textures: %s texture %r not found near %s", slot, ref, self._source_dir)
            return
        if slot == "albedo" and self._config.reject_normal_maps_as_albedo and looks_like_normal_map(src):
            logger.info("textures: skipping %s as albedo – looks like a normal map", src.name)
            return
        try:
            guid = self._copy_in(src)
        except OSError as e:
            self._report(f"texture {ref}", e)
            return
        self._extracted[ref] = guid
        self._extracted[src.name] = guid

    def _scan_additional(self) -> None:
        if not self._source_dir.is_dir():
            return
        out_dir = self._textures_dir.resolve()
        for p in sorted(self._source_dir.rglob("*")):
            if not p.is_file() or p.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            if p.name in self._extracted or out_dir in p.resolve().parents:
                continue
            if (self._textures_dir / p.name).exists():
                continue
            try:
                self._extracted[p.name] = self._copy_in(p)
            except OSError as e:
                self._report(f"additional texture {p.name}", e)

    # -- helpers ------------------------------------------------------------

    def _copy_in(self, src: Path) -> uuid.UUID:
        dest = self._textures_dir / src.name
        if not dest.exists():
            shutil.copy2(src, dest)
            logger.debug("textures: copied %s", src.name)
        return self._register(dest)

    def _register(self, path: Path) -> uuid.UUID:
        """GUID of *path*, reusing an existing sidecar so re-imports keep texture identity."""
        guid = read_meta_guid(path)
        if guid is None:
            guid = uuid.uuid4()
            write_meta(path, guid, TYPE_TEXTURE_2D)
        return guid

    def _report(self, context: str, exc: BaseException) -> None:
        if self._diagnostics is not None:
            self._diagnostics.log_exception(context=f"textures: {context}", exc=exc)
        else:
            logger.warning("textures: %s failed – %s", context, exc)

    # -- auto assignment ----------------------------------------------------

    def auto_assign(self, material_name: str) -> TextureSet:
        found: dict[str, uuid.UUID] = {}
        if not self._textures_dir.is_dir():
            return TextureSet()
        material_key = material_name.lower()
        for tex in sorted(self._textures_dir.iterdir()):
            if not tex.is_file() or tex.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            guid = self._extracted.get(tex.name) or read_meta_guid(tex)
            if guid is None:
                continue
            filename = tex.name.lower()
            for slot, patterns in _AUTO_ASSIGN_PATTERNS:
                if slot in found:
                    continue
                matches = any(p in filename for p in patterns)
                if slot == "albedo" and not matches:
                    matches = tex.stem.lower() == material_key
                if matches:
                    found[slot] = guid
                    logger.debug("textures: auto-assigned %s -> %s", slot, tex.name)
                    break
        return TextureSet(**found)
