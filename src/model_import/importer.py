"""High-level import command: choose a model folder under the assets root and run the pipeline."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from model_import.app_config import SUPPORTED_EXTENSIONS, ImportConfig
from model_import.assets.mesh_asset import MESH_ASSET_SUFFIX
from model_import.assets.meta import meta_path
from model_import.common.paths import sanitize_file_name
from model_import.errors import SourceFileError
from model_import.pipeline import ImportPipeline
from model_import.scene.ingest import IngestFn
from model_import.textures.texture_extractor import TextureResolver

logger = logging.getLogger(__name__)


def is_supported(path: Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def model_folder_for(source: Path, assets_root: Path, target_folder: str) -> Path:
    """``<assets_root>/<target_folder>/<stem>``, suffixed ``_1``, ``_2``, … when taken."""
    base = Path(assets_root) / target_folder
    stem = sanitize_file_name(Path(source).stem) or "Model"
    candidate = base / stem
    n = 1
    while candidate.exists():
        candidate = base / f"{stem}_{n}"
        n += 1
    return candidate


def import_model(
    source: Path,
    assets_root: Path,
    target_folder: str | None = None,
    *,
    config: ImportConfig | None = None,
    ingest: IngestFn | None = None,
    texture_resolver: TextureResolver | None = None,
) -> uuid.UUID:
    """Import *source* into a fresh folder under *assets_root* and return the mesh GUID.

    Raises:
        SourceFileError: the file is missing or its extension is not supported.
        ImportFailedError: a pipeline stage failed.
    """
    source = Path(source)
    cfg = config or ImportConfig()
    if not source.is_file():
        raise SourceFileError(f"source model file not found: {source}")
    if not is_supported(source):
        raise SourceFileError(
            f"unsupported model format {source.suffix!r}; expected one of {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    folder = model_folder_for(source, assets_root, target_folder or cfg.models_dir_name)
    logger.info("importer: %s -> %s", source, folder)
    pipeline = ImportPipeline(
        source,
        assets_root,
        folder,
        ingest=ingest,
        texture_resolver=texture_resolver,
        config=cfg,
    )
    return pipeline.import_()


def delete_imported_model(model_path: Path) -> None:
    """Remove a copied model file, its mesh asset and both sidecars."""
    model_path = Path(model_path)
    mesh_path = model_path.with_name(model_path.name + MESH_ASSET_SUFFIX)
    for p in (model_path, meta_path(model_path), mesh_path, meta_path(mesh_path)):
        if p.exists():
            p.unlink()
            logger.debug("importer: removed %s", p)
