"""Scene ingest: run the Open Asset Import Library over a source file.

``pyassimp`` loads the native assimp shared library at import time, so it is
imported lazily inside :func:`load_scene`.  Everything downstream consumes the
plain :class:`~model_import.scene.scene_graph.SceneGraph` snapshot built here,
which also keeps the rest of the pipeline testable without the native library.
"""

from __future__ import annotations

import ctypes
import enum
import logging
import struct
from pathlib import Path
from typing import Any, Callable, Iterable

from model_import.errors import IngestError
from model_import.scene.scene_graph import (
    ALPHA_BLEND,
    ALPHA_MASK,
    ALPHA_OPAQUE,
    IDENTITY_TRANSFORM,
    EmbeddedTexture,
    MaterialInfo,
    SceneGraph,
    SceneMesh,
    SceneNode,
)

logger = logging.getLogger(__name__)

# Signature of the ingest collaborator injected into the pipeline.
IngestFn = Callable[[Path, "PostProcess"], SceneGraph]


class PostProcess(enum.IntFlag):
    """Subset of assimp's ``aiPostProcessSteps`` bits used by the importer."""

    CALC_TANGENT_SPACE = 0x1
    JOIN_IDENTICAL_VERTICES = 0x2
    TRIANGULATE = 0x8
    GEN_SMOOTH_NORMALS = 0x40
    PRE_TRANSFORM_VERTICES = 0x100
    VALIDATE_DATA_STRUCTURE = 0x400
    IMPROVE_CACHE_LOCALITY = 0x800
    SORT_BY_PTYPE = 0x8000
    FIND_DEGENERATES = 0x10000
    FIND_INVALID_DATA = 0x20000
    OPTIMIZE_MESHES = 0x200000
    FLIP_UVS = 0x800000


_BASE_FLAGS = (
    PostProcess.TRIANGULATE
    | PostProcess.CALC_TANGENT_SPACE
    | PostProcess.JOIN_IDENTICAL_VERTICES
    | PostProcess.SORT_BY_PTYPE
    | PostProcess.GEN_SMOOTH_NORMALS
    | PostProcess.PRE_TRANSFORM_VERTICES
    | PostProcess.VALIDATE_DATA_STRUCTURE
    | PostProcess.FIND_DEGENERATES
    | PostProcess.FIND_INVALID_DATA
    | PostProcess.IMPROVE_CACHE_LOCALITY
    | PostProcess.OPTIMIZE_MESHES
)

# glTF stores UVs with a top-left origin already.
_NO_UV_FLIP_EXTENSIONS: frozenset[str] = frozenset({".gltf", ".glb"})


def post_process_flags(extension: str) -> PostProcess:
    """Post-processing steps requested for a source with *extension*."""
    if extension.lower() in _NO_UV_FLIP_EXTENSIONS:
        return _BASE_FLAGS
    return _BASE_FLAGS | PostProcess.FLIP_UVS


# ---------------------------------------------------------------------------
# Material properties
# ---------------------------------------------------------------------------

# assimp aiTextureType -> our texture slot.  Order matters where two assimp
# types feed the same slot: the first one present wins.
_TEXTURE_TYPE_SLOTS: tuple[tuple[int, str], ...] = (
    (12, "albedo"),  # BASE_COLOR
    (1, "albedo"),  # DIFFUSE
    (6, "normal"),  # NORMALS
    (5, "normal"),  # HEIGHT
    (9, "normal"),  # DISPLACEMENT
    (8, "opacity"),  # OPACITY
    (15, "metallic"),  # METALNESS
    (16, "roughness"),  # DIFFUSE_ROUGHNESS
    (7, "roughness"),  # SHININESS
    (17, "occlusion"),  # AMBIENT_OCCLUSION
    (3, "occlusion"),  # AMBIENT
    (10, "occlusion"),  # LIGHTMAP
    (4, "emissive"),  # EMISSIVE
)
_TEXTURE_TYPE_UNKNOWN = 18

_ALPHA_MODES: frozenset[str] = frozenset({ALPHA_OPAQUE, ALPHA_MASK, ALPHA_BLEND})


def _floats(value: Any) -> list[float]:
    if value is None or isinstance(value, (str, bytes)):
        return []
    if isinstance(value, (int, float)):
        return [float(value)]
    try:
        return [float(v) for v in value]
    except (TypeError, ValueError):
        return []


def _first_float(value: Any, default: float) -> float:
    vals = _floats(value)
    return vals[0] if vals else default


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return ""


def material_info_from_properties(props: dict[tuple[str, int], Any], extension: str) -> MaterialInfo:
    """Build a :class:`MaterialInfo` from assimp material properties.

    Args:
        props: Properties keyed by ``(key, semantic)`` where *key* is the part
            of the assimp key after ``$xxx.`` (``"name"``, ``"diffuse"``,
            ``"file"``, …) and *semantic* is the texture type for texture keys.
            The glTF alpha settings come in as ``("alphaMode", 0)`` and
            ``("alphaCutoff", 0)``, see :func:`raw_gltf_properties`.
        extension: Source file extension (lowercase, with the dot).
    """
    name = _text(props.get(("name", 0))).strip()

    albedo = (1.0, 1.0, 1.0, 1.0)
    base = _floats(props.get(("base", 0))) or _floats(props.get(("diffuse", 0)))
    if len(base) >= 3:
        alpha = base[3] if len(base) >= 4 else 1.0
        albedo = (base[0], base[1], base[2], alpha)

    opacity = _first_float(props.get(("opacity", 0)), 1.0)
    if extension in _NO_UV_FLIP_EXTENSIONS and albedo[3] < 0.99:
        opacity = albedo[3]

    if ("metallicFactor", 0) in props:
        metallic = _first_float(props.get(("metallicFactor", 0)), 0.0)
    else:
        metallic = _first_float(props.get(("shininess", 0)), 0.0) / 1000.0
    if ("roughnessFactor", 0) in props:
        roughness = _first_float(props.get(("roughnessFactor", 0)), 0.5)
    elif ("reflectivity", 0) in props:
        roughness = 1.0 - _first_float(props.get(("reflectivity", 0)), 0.5)
    else:
        roughness = 0.5
    metallic = min(1.0, max(0.0, metallic))
    roughness = min(1.0, max(0.0, roughness))

    alpha_mode = ALPHA_OPAQUE
    mode = _text(props.get(("alphaMode", 0))).strip().upper()
    if mode in _ALPHA_MODES:
        alpha_mode = mode
    alpha_cutoff = min(1.0, max(0.0, _first_float(props.get(("alphaCutoff", 0)), 0.5)))

    textures: dict[str, str] = {}
    for semantic, slot in _TEXTURE_TYPE_SLOTS:
        path = _text(props.get(("file", semantic))).strip()
        if path and slot not in textures:
            textures[slot] = path
    unknown = _text(props.get(("file", _TEXTURE_TYPE_UNKNOWN))).strip()
    if unknown:
        low = unknown.lower()
        if "metallic" in low and "rough" in low:
            textures["metallic_roughness"] = unknown
    if "opacity" in textures and alpha_mode == ALPHA_OPAQUE:
        alpha_mode = ALPHA_BLEND

    return MaterialInfo(
        name=name,
        albedo_color=albedo,
        metallic=metallic,
        roughness=roughness,
        opacity=opacity,
        alpha_mode=alpha_mode,
        alpha_cutoff=alpha_cutoff,
        textures=textures,
    )


# ---------------------------------------------------------------------------
# pyassimp scene -> SceneGraph
# ---------------------------------------------------------------------------


def _vec3_list(rows: Any) -> tuple[tuple[float, float, float], ...]:
    if rows is None:
        return ()
    return tuple((float(r[0]), float(r[1]), float(r[2])) for r in rows)


def _convert_mesh(mesh: Any) -> SceneMesh:
    positions = _vec3_list(mesh.vertices)
    normals = _vec3_list(getattr(mesh, "normals", None))
    uv0 = None
    coords = getattr(mesh, "texturecoords", None)
    if coords is not None and len(coords) > 0 and coords[0] is not None and len(coords[0]) > 0:
        uv0 = tuple((float(t[0]), float(t[1])) for t in coords[0])
    faces = tuple(tuple(int(i) for i in f) for f in (mesh.faces if mesh.faces is not None else ()))
    return SceneMesh(
        name=str(getattr(mesh, "name", "") or ""),
        positions=positions,
        faces=faces,
        normals=normals if len(normals) == len(positions) and normals else None,
        uv0=uv0 if uv0 is not None and len(uv0) == len(positions) else None,
        material_index=int(getattr(mesh, "materialindex", 0) or 0),
    )


def _convert_node(node: Any, meshes: list[Any]) -> SceneNode:
    matrix = getattr(node, "transformation", None)
    transform = IDENTITY_TRANSFORM
    if matrix is not None:
        flat = [float(v) for row in matrix for v in row]
        if len(flat) == 16:
            transform = tuple(flat)

    mesh_indices: list[int] = []
    for m in getattr(node, "meshes", None) or ():
        if isinstance(m, int):
            mesh_indices.append(m)
            continue
        # pyassimp resolves node mesh indices to mesh objects.
        for i, candidate in enumerate(meshes):
            if candidate is m:
                mesh_indices.append(i)
                break

    return SceneNode(
        name=str(getattr(node, "name", "") or ""),
        transform=transform,
        mesh_indices=tuple(mesh_indices),
        children=tuple(_convert_node(c, meshes) for c in (getattr(node, "children", None) or ())),
    )


def _texture_bytes(data: Any) -> bytes:
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    tobytes = getattr(data, "tobytes", None)
    if callable(tobytes):
        return tobytes()
    return bytes(bytearray(int(b) & 0xFF for b in data))


def _convert_textures(textures: Iterable[Any]) -> tuple[EmbeddedTexture, ...]:
    out: list[EmbeddedTexture] = []
    for i, tex in enumerate(textures or ()):
        # height == 0 marks a compressed payload (png/jpg bytes); raw texel
        # arrays are not supported.
        if int(getattr(tex, "height", 0) or 0) != 0:
            logger.debug("ingest: skipping uncompressed embedded texture %d", i)
            continue
        hint = _text(getattr(tex, "achformathint", "")).strip("\x00 ").lower()
        out.append(EmbeddedTexture(index=i, data=_texture_bytes(getattr(tex, "data", None)), format_hint=hint))
    return tuple(out)


# pyassimp keys its property dict by the second dotted component of the assimp
# key, so every ``$mat.gltf.*`` property lands in the same ``("gltf", 0)`` slot.
# These are read from the raw property array instead.
_RAW_GLTF_KEYS: dict[bytes, str] = {
    b"$mat.gltf.alphaMode": "alphaMode",
    b"$mat.gltf.alphaCutoff": "alphaCutoff",
}
_PTI_FLOAT = 1
_PTI_DOUBLE = 2
_PTI_STRING = 3


def _raw_property_value(prop: Any) -> Any:
    size = int(prop.mDataLength)
    if not prop.mData or size <= 0:
        return None
    payload = ctypes.string_at(prop.mData, size)
    kind = int(prop.mType)
    if kind == _PTI_STRING and size >= 4:
        (length,) = struct.unpack_from("<I", payload)
        return payload[4 : 4 + length].decode("utf-8", errors="replace")
    if kind == _PTI_FLOAT:
        return list(struct.unpack_from(f"<{size // 4}f", payload))
    if kind == _PTI_DOUBLE:
        return list(struct.unpack_from(f"<{size // 8}d", payload))
    return None


def raw_gltf_properties(material: Any) -> dict[tuple[str, int], Any]:
    """glTF alpha properties of a pyassimp material, keyed like its property dict."""
    # pyassimp hands out either the Material struct or a pointer to it.
    contents = getattr(material, "contents", material)
    if not hasattr(contents, "mNumProperties"):
        return {}
    out: dict[tuple[str, int], Any] = {}
    for i in range(int(contents.mNumProperties)):
        prop = contents.mProperties[i].contents
        name = _RAW_GLTF_KEYS.get(bytes(prop.mKey.data))
        if name is None:
            continue
        value = _raw_property_value(prop)
        if value is not None:
            out[(name, 0)] = value
    return out


def _material_properties(material: Any) -> dict[tuple[str, int], Any]:
    props = dict(dict.items(material.properties))
    props.update(raw_gltf_properties(material))
    return props


def scene_from_assimp(scene: Any, extension: str) -> SceneGraph:
    """Snapshot a loaded pyassimp scene into a :class:`SceneGraph`."""
    meshes = list(scene.meshes or ())
    materials = tuple(
        material_info_from_properties(_material_properties(m), extension)
        for m in (scene.materials or ())
    )
    root = _convert_node(scene.rootnode, meshes) if scene.rootnode is not None else SceneNode(name="")
    return SceneGraph(
        root=root,
        meshes=tuple(_convert_mesh(m) for m in meshes),
        materials=materials,
        textures=_convert_textures(getattr(scene, "textures", None) or ()),
    )


def load_scene(path: Path, flags: PostProcess) -> SceneGraph:
    """Default ingest collaborator backed by pyassimp.

    Raises:
        IngestError: the library is unavailable or rejected the file.
    """
    try:
        import pyassimp
        from pyassimp.errors import AssimpError
    except ImportError as e:
        raise IngestError(f"pyassimp is not available: {e}") from e

    path = Path(path)
    logger.info("ingest: loading %s (flags=0x%x)", path, int(flags))
    try:
        with pyassimp.load(str(path), processing=int(flags)) as scene:
            if scene is None:
                raise IngestError(f"no scene produced for {path}")
            return scene_from_assimp(scene, path.suffix.lower())
    except AssimpError as e:
        raise IngestError(f"assimp failed to load {path}: {e}") from e
