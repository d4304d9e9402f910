"""In-memory scene graph produced by the ingest step.

The graph is a read-only snapshot of what the ingest library delivered after
post-processing.  Nothing downstream mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

Vec3 = tuple[float, float, float]
Vec2 = tuple[float, float]

IDENTITY_TRANSFORM: tuple[float, ...] = (
    1.0, 0.0, 0.0, 0.0,
    0.0, 1.0, 0.0, 0.0,
    0.0, 0.0, 1.0, 0.0,
    0.0, 0.0, 0.0, 1.0,
)

# Texture slots a MaterialInfo may carry.
TEXTURE_SLOTS: tuple[str, ...] = (
    "albedo",
    "normal",
    "metallic_roughness",
    "metallic",
    "roughness",
    "occlusion",
    "emissive",
    "opacity",
)

ALPHA_OPAQUE = "OPAQUE"
ALPHA_MASK = "MASK"
ALPHA_BLEND = "BLEND"


@dataclass(frozen=True)
class SceneMesh:
    name: str
    positions: tuple[Vec3, ...]
    faces: tuple[tuple[int, ...], ...]
    normals: tuple[Vec3, ...] | None = None
    uv0: tuple[Vec2, ...] | None = None
    material_index: int = 0


@dataclass(frozen=True)
class SceneNode:
    name: str
    # 16 floats, row-major, column-vector convention (translation in the last column).
    transform: tuple[float, ...] = IDENTITY_TRANSFORM
    mesh_indices: tuple[int, ...] = ()
    children: tuple[SceneNode, ...] = ()


@dataclass(frozen=True)
class MaterialInfo:
    """Generic material record pulled from the ingest library."""

    name: str
    albedo_color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    metallic: float = 0.0
    roughness: float = 0.5
    opacity: float = 1.0
    alpha_mode: str = ALPHA_OPAQUE  # "OPAQUE" | "MASK" | "BLEND"
    alpha_cutoff: float = 0.5
    # slot name (see TEXTURE_SLOTS) -> texture reference as written in the source
    textures: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EmbeddedTexture:
    """Compressed texture payload stored inside the source file, referenced as ``*<index>``."""

    index: int
    data: bytes
    format_hint: str = ""


@dataclass(frozen=True)
class SceneGraph:
    root: SceneNode
    meshes: tuple[SceneMesh, ...] = ()
    materials: tuple[MaterialInfo, ...] = ()
    textures: tuple[EmbeddedTexture, ...] = ()

    @property
    def has_meshes(self) -> bool:
        return len(self.meshes) > 0
