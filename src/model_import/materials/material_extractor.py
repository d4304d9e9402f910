"""Material extraction: scene materials -> persisted ``.material`` assets.

Each source material goes through the same steps:

1. Pick a file-safe name.
2. Apply the glTF base colour override when the glTF file describes it.
3. Decide Opaque vs. Blend with the ordered :data:`TRANSPARENCY_RULES`.
4. Resolve texture references to GUIDs (glTF texture indices fill gaps).
5. Auto-assign albedo/normal from file naming conventions when still missing.
6. Save ``<Name>.material`` (``<Name>_1.material`` … on collision) plus its sidecar.

A failure in one material is recorded and the rest of the batch continues.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from model_import.app_config import OPACITY_BLEND_THRESHOLD, ImportConfig
from model_import.assets.material_asset import (
    MATERIAL_SUFFIX,
    TEXTURE_CHANNELS,
    MaterialAsset,
    TransparencyMode,
)
from model_import.assets.meta import TYPE_MATERIAL, write_meta
from model_import.common.diagnostics import ImportDiagnostics
from model_import.common.paths import sanitize_file_name, unique_path
from model_import.scene.scene_graph import ALPHA_BLEND, MaterialInfo, SceneGraph
from model_import.textures.texture_extractor import TextureResolver
from model_import.transparency import gltf
from model_import.transparency.descriptor import (
    FORMAT_GLTF,
    GLTF_TEXTURE_SLOTS,
    DescriptorMap,
    TransparencyDescriptor,
    lookup,
)
from model_import.transparency.fbx import is_transparent_by_name
from model_import.transparency.registry import TransparencyParser, parse_transparency

logger = logging.getLogger(__name__)

# Name assimp gives materials it had to invent.
_DEFAULT_MATERIAL_NAME = "DefaultMaterial"


# ---------------------------------------------------------------------------
# Transparency cascade
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransparencyInput:
    """Everything the transparency rules look at for one material."""

    info: MaterialInfo
    name: str
    extension: str  # source extension, lowercase with the dot
    descriptor: TransparencyDescriptor | None


TransparencyRule = tuple[str, Callable[[TransparencyInput], bool], bool]

# Evaluated in order; the first matching predicate decides.  A texture with an
# alpha channel alone never makes a material transparent.
TRANSPARENCY_RULES: tuple[TransparencyRule, ...] = (
    (
        "format descriptor reports transparency",
        lambda t: t.descriptor is not None and t.descriptor.is_transparent,
        True,
    ),
    (
        "glTF descriptor is authoritative",
        lambda t: t.descriptor is not None and t.descriptor.format == FORMAT_GLTF,
        False,
    ),
    (
        "FBX material name suggests transparency",
        lambda t: t.extension == ".fbx"
        and t.descriptor is None
        and (is_transparent_by_name(t.info.name) or is_transparent_by_name(t.name)),
        True,
    ),
    ("alpha mode BLEND", lambda t: t.info.alpha_mode == ALPHA_BLEND, True),
    ("opacity below threshold", lambda t: t.info.opacity < OPACITY_BLEND_THRESHOLD, True),
    ("explicit opacity texture", lambda t: bool(t.info.textures.get("opacity")), True),
)


def decide_transparency(
    item: TransparencyInput,
    rules: tuple[TransparencyRule, ...] = TRANSPARENCY_RULES,
) -> tuple[bool, str]:
    """Return ``(is_transparent, rule name)``; ``"default"`` when no rule matched."""
    for rule_name, predicate, verdict in rules:
        if predicate(item):
            return verdict, rule_name
    return False, "default"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def material_asset_name(raw_name: str, model_name: str, index: int) -> str:
    name = (raw_name or "").strip()
    if not name or name == _DEFAULT_MATERIAL_NAME:
        return f"{model_name}_Mat{index}"
    return sanitize_file_name(name) or f"{model_name}_Mat{index}"


def resolve_texture_guid(ref: str, texture_map: dict[str, uuid.UUID]) -> uuid.UUID | None:
    """Exact reference first, then file name only."""
    if not ref:
        return None
    hit = texture_map.get(ref)
    if hit is not None:
        return hit
    filename = ref.replace("\\", "/").rsplit("/", 1)[-1]
    if filename:
        return texture_map.get(filename)
    return None


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class MaterialExtractor:
    """Turn scene materials into persisted material assets for one model.

    Args:
        source_path: Original model file; transparency parsers read it directly.
        materials_dir: Output folder (``<model folder>/Materials``).
        textures: Texture resolver used for naming-convention auto-assignment.
        model_name: Prefix for materials that have no usable name.
        parsers: Override of the extension -> transparency parser table.
    """

    def __init__(
        self,
        source_path: Path,
        materials_dir: Path,
        textures: TextureResolver,
        *,
        model_name: str | None = None,
        config: ImportConfig | None = None,
        diagnostics: ImportDiagnostics | None = None,
        parsers: dict[str, TransparencyParser] | None = None,
    ) -> None:
        self._source_path = Path(source_path)
        self._extension = self._source_path.suffix.lower()
        self._materials_dir = Path(materials_dir)
        self._textures = textures
        self._model_name = model_name or self._source_path.stem
        self._config = config or ImportConfig()
        self._diagnostics = diagnostics if diagnostics is not None else ImportDiagnostics()
        self._parsers = parsers
        # source material index -> extracted asset
        self._by_index: dict[int, MaterialAsset] = {}
        self._paths: dict[int, Path] = {}

    def get_material(self, index: int) -> MaterialAsset | None:
        return self._by_index.get(index)

    def material_path(self, index: int) -> Path | None:
        return self._paths.get(index)

    def extract(self, scene: SceneGraph, texture_map: dict[str, uuid.UUID]) -> list[MaterialAsset]:
        """Extract every scene material; returns the assets that were saved, in source order."""
        self._materials_dir.mkdir(parents=True, exist_ok=True)
        descriptors = parse_transparency(self._source_path, self._parsers)
        gltf_textures = gltf.texture_paths(self._source_path) if self._extension == ".gltf" else {}
        logger.info(
            "materials: %d source material(s), %d format descriptor(s)",
            len(scene.materials), len(descriptors),
        )

        out: list[MaterialAsset] = []
        for index, info in enumerate(scene.materials):
            try:
                asset = self._extract_one(index, info, texture_map, descriptors, gltf_textures)
                path = self._save(asset)
            except Exception as e:
                self._diagnostics.log_exception(context=f"materials: material {index} ({info.name!r})", exc=e)
                continue
            self._by_index[index] = asset
            self._paths[index] = path
            out.append(asset)
        return out

    # -- steps --------------------------------------------------------------

    def _extract_one(
        self,
        index: int,
        info: MaterialInfo,
        texture_map: dict[str, uuid.UUID],
        descriptors: DescriptorMap,
        gltf_textures: dict[int, str],
    ) -> MaterialAsset:
        name = material_asset_name(info.name, self._model_name, index)
        descriptor = lookup(descriptors, info.name, name)

        albedo = info.albedo_color
        if descriptor is not None and descriptor.format == FORMAT_GLTF:
            factor = descriptor.get("base_color_factor")
            if factor is not None:
                albedo = tuple(float(c) for c in factor)

        transparent, rule = decide_transparency(
            TransparencyInput(info=info, name=name, extension=self._extension, descriptor=descriptor)
        )
        logger.debug("materials: %s -> %s (%s)", name, "Blend" if transparent else "Opaque", rule)

        asset = MaterialAsset(
            guid=uuid.uuid4(),
            name=name,
            shader=self._config.shader,
            albedo_color=albedo,
            metallic=info.metallic,
            roughness=info.roughness,
            opacity=info.opacity,
            transparency_mode=TransparencyMode.BLEND if transparent else TransparencyMode.OPAQUE,
        )

        self._resolve_textures(asset, info, descriptor, texture_map, gltf_textures)
        self._auto_assign(asset)
        return asset

    def _resolve_textures(
        self,
        asset: MaterialAsset,
        info: MaterialInfo,
        descriptor: TransparencyDescriptor | None,
        texture_map: dict[str, uuid.UUID],
        gltf_textures: dict[int, str],
    ) -> None:
        refs = dict(info.textures)
        if descriptor is not None and descriptor.format == FORMAT_GLTF:
            for key, tex_index in descriptor.texture_indices.items():
                slot = GLTF_TEXTURE_SLOTS.get(key)
                uri = gltf_textures.get(tex_index)
                if slot and uri and not refs.get(slot):
                    refs[slot] = uri

        for slot, ref in refs.items():
            guid = resolve_texture_guid(ref, texture_map)
            if guid is None:
                if ref:
                    logger.debug("materials: %s: %s texture %r unresolved", asset.name, slot, ref)
                continue
            if slot == "opacity":
                # No opacity channel on the asset; transparency already decided.
                logger.debug("materials: %s: opacity texture %s", asset.name, guid)
                continue
            if slot not in TEXTURE_CHANNELS:
                continue
            asset.set_texture(slot, guid)
            if slot == "normal":
                asset.normal_strength = 1.0
            elif slot == "emissive":
                asset.emission = 1.0

    def _auto_assign(self, asset: MaterialAsset) -> None:
        if asset.albedo_texture is not None and asset.normal_texture is not None:
            return
        if asset.is_transparent and asset.texture_count() == 0:
            logger.info(
                "materials: %s is transparent with no textures; skipping naming-convention lookup",
                asset.name,
            )
            return
        found = self._textures.auto_assign(asset.name)
        if asset.albedo_texture is None and found.albedo is not None:
            asset.albedo_texture = found.albedo
            logger.debug("materials: %s: auto-assigned albedo", asset.name)
        if asset.normal_texture is None and found.normal is not None:
            asset.normal_texture = found.normal
            asset.normal_strength = 1.0
            logger.debug("materials: %s: auto-assigned normal", asset.name)

    def _save(self, asset: MaterialAsset) -> Path:
        path = unique_path(self._materials_dir, sanitize_file_name(asset.name) or "Material", MATERIAL_SUFFIX)
        asset.save(path)
        write_meta(path, asset.guid, TYPE_MATERIAL)
        logger.info("materials: saved %s", path.name)
        return path
