"""Import orchestration: one source file -> mesh, material and texture assets.

``ImportPipeline.import_()`` walks a fixed sequence of stages::

    LOADING -> TEXTURE_EXTRACTION -> MATERIAL_EXTRACTION -> MESH_CONVERSION -> SAVING -> DONE

Any unhandled error moves the pipeline to FAILED and is re-raised as
:class:`~model_import.errors.ImportFailedError` carrying the stage that
failed.  Nothing is resumable; re-running is safe because material names get
collision suffixes and the copied source is only written when absent.

Collaborators (scene ingest, texture resolver, transparency parser table) are
injected through the constructor; the defaults use pyassimp and the
filesystem :class:`~model_import.textures.texture_extractor.TextureExtractor`.
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from model_import.app_config import ImportConfig
from model_import.assets.mesh_asset import MESH_ASSET_SUFFIX, MeshAsset
from model_import.assets.meta import TYPE_MESH_ASSET, model_asset_type, write_meta
from model_import.common.diagnostics import ImportDiagnostics
from model_import.common.paths import relative_posix
from model_import.errors import ImportFailedError, IngestError, SourceFileError
from model_import.materials.material_extractor import MaterialExtractor
from model_import.mesh.mesh_converter import MeshConverter
from model_import.scene.ingest import IngestFn, load_scene, post_process_flags
from model_import.scene.scene_graph import SceneGraph
from model_import.textures.texture_extractor import TextureExtractor, TextureResolver
from model_import.transparency.registry import TransparencyParser

logger = logging.getLogger(__name__)


class ImportStage(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    TEXTURE_EXTRACTION = "texture_extraction"
    MATERIAL_EXTRACTION = "material_extraction"
    MESH_CONVERSION = "mesh_conversion"
    SAVING = "saving"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ImportResult:
    """Summary of one import run."""

    source_path: Path
    stage: ImportStage = ImportStage.IDLE
    guid: uuid.UUID | None = None
    mesh_asset_path: Path | None = None
    material_paths: list[Path] = field(default_factory=list)
    texture_count: int = 0
    sub_mesh_count: int = 0
    vertex_count: int = 0
    triangle_count: int = 0
    elapsed_ms: float = 0.0
    diagnostics: list[str] = field(default_factory=list)


class ImportPipeline:
    """Import *source_path* into *model_folder* (which lives under *assets_root*).

    Args:
        source_path: The external model file (.fbx, .obj, .gltf, .glb, .dae).
        assets_root: Project assets root; the mesh asset stores its source
            path relative to it.
        model_folder: Output folder for this model; created when missing.
        ingest: Scene ingest collaborator (default: pyassimp).
        texture_resolver: Texture collaborator (default: filesystem extractor
            writing into ``<model_folder>/Textures``).
        parsers: Extension -> transparency parser table override.
    """

    def __init__(
        self,
        source_path: Path,
        assets_root: Path,
        model_folder: Path,
        *,
        ingest: IngestFn | None = None,
        texture_resolver: TextureResolver | None = None,
        parsers: dict[str, TransparencyParser] | None = None,
        config: ImportConfig | None = None,
    ) -> None:
        self.source_path = Path(source_path)
        self.assets_root = Path(assets_root)
        self.model_folder = Path(model_folder)
        self.model_name = self.source_path.stem
        self.config = config or ImportConfig()
        self.diagnostics = ImportDiagnostics()
        self._ingest: IngestFn = ingest or load_scene
        self._texture_resolver = texture_resolver
        self._parsers = parsers
        self.stage = ImportStage.IDLE
        self.result = ImportResult(source_path=self.source_path)

        if not self.source_path.is_file():
            raise SourceFileError(f"source model file not found: {self.source_path}")
        self.model_folder.mkdir(parents=True, exist_ok=True)

    @property
    def textures_dir(self) -> Path:
        return self.model_folder / self.config.textures_dir_name

    @property
    def materials_dir(self) -> Path:
        return self.model_folder / self.config.materials_dir_name

    def _enter(self, stage: ImportStage) -> None:
        logger.debug("pipeline: %s -> %s", self.stage.value, stage.value)
        self.stage = stage
        self.result.stage = stage

    def import_(self) -> uuid.UUID:
        """Run every stage and return the mesh asset GUID.

        Raises:
            ImportFailedError: any stage failed; ``.stage`` names it and the
                original exception is chained.
        """
        t0 = time.perf_counter()
        logger.info("pipeline: importing %s", self.source_path.name)
        try:
            self._enter(ImportStage.LOADING)
            scene = self._load_scene()

            self._enter(ImportStage.TEXTURE_EXTRACTION)
            textures = self._texture_resolver or TextureExtractor(
                self.source_path.parent,
                self.textures_dir,
                self.model_name,
                config=self.config,
                diagnostics=self.diagnostics,
            )
            texture_map = textures.extract(scene, scene.materials)
            self.result.texture_count = len(set(texture_map.values()))

            self._enter(ImportStage.MATERIAL_EXTRACTION)
            materials = MaterialExtractor(
                self.source_path,
                self.materials_dir,
                textures,
                model_name=self.model_name,
                config=self.config,
                diagnostics=self.diagnostics,
                parsers=self._parsers,
            )
            materials.extract(scene, texture_map)

            self._enter(ImportStage.MESH_CONVERSION)
            mesh = MeshConverter(diagnostics=self.diagnostics).convert(
                scene, self.source_path, name=self.model_name
            )
            for index in range(len(mesh.material_guids)):
                asset = materials.get_material(index)
                if asset is not None:
                    mesh.material_guids[index] = asset.guid
                path = materials.material_path(index)
                if path is not None:
                    self.result.material_paths.append(path)

            self._enter(ImportStage.SAVING)
            guid = self._save(mesh)
        except Exception as e:
            failed_stage = self.stage
            self._enter(ImportStage.FAILED)
            self._finish(t0)
            logger.error("pipeline: import of %s failed during %s – %s", self.source_path.name, failed_stage.value, e)
            raise ImportFailedError(failed_stage, str(e)) from e

        self._enter(ImportStage.DONE)
        self._finish(t0)
        logger.info(
            "pipeline: imported %s guid=%s sub_meshes=%d materials=%d textures=%d vertices=%d triangles=%d (%.1f ms)",
            self.source_path.name, guid, self.result.sub_mesh_count, len(self.result.material_paths),
            self.result.texture_count, self.result.vertex_count, self.result.triangle_count,
            self.result.elapsed_ms,
        )
        return guid

    run = import_

    def _finish(self, t0: float) -> None:
        self.result.elapsed_ms = (time.perf_counter() - t0) * 1000.0
        self.result.diagnostics = self.diagnostics.summary_lines()

    def _load_scene(self) -> SceneGraph:
        if self.source_path.stat().st_size == 0:
            raise SourceFileError(f"model file is empty: {self.source_path}")
        flags = post_process_flags(self.source_path.suffix)
        try:
            scene = self._ingest(self.source_path, flags)
        except IngestError:
            raise
        except Exception as e:
            raise IngestError(f"failed to load {self.source_path.name}: {e}") from e
        if scene is None:
            raise IngestError(f"ingest returned no scene for {self.source_path.name}")
        if not scene.has_meshes:
            raise IngestError(f"scene contains no meshes: {self.source_path.name}")
        logger.info(
            "pipeline: scene loaded – %d mesh(es), %d material(s), %d embedded texture(s)",
            len(scene.meshes), len(scene.materials), len(scene.textures),
        )
        return scene

    def _save(self, mesh: MeshAsset) -> uuid.UUID:
        guid = uuid.uuid4()
        mesh.guid = guid

        target = self.model_folder / self.source_path.name
        if not target.exists():
            shutil.copy2(self.source_path, target)
            logger.debug("pipeline: copied source to %s", target)
        mesh.source_path = relative_posix(target, self.assets_root)

        mesh_path = target.with_name(target.name + MESH_ASSET_SUFFIX)
        mesh.save(mesh_path)
        write_meta(target, guid, model_asset_type(self.source_path.suffix))
        write_meta(mesh_path, guid, TYPE_MESH_ASSET)

        self.result.guid = guid
        self.result.mesh_asset_path = mesh_path
        self.result.sub_mesh_count = len(mesh.sub_meshes)
        self.result.vertex_count = mesh.vertex_count
        self.result.triangle_count = mesh.triangle_count
        return guid
