"""Flatten a scene graph into a :class:`~model_import.assets.mesh_asset.MeshAsset`.

One :class:`SubMesh` is produced per (node, mesh) instance.  Positions are
moved into world space with the node's accumulated transform; normals use the
same matrix without translation and are renormalised.  glTF sources are
converted from right-handed to the engine's left-handed space by negating Z
and swapping the last two indices of every triangle.

Matrices follow panda3d's row-vector convention, so the assimp (column-vector)
node transforms are transposed on the way in.
"""

from __future__ import annotations

import logging
from pathlib import Path

from panda3d.core import LMatrix4d, LPoint3d, LVector3d

from model_import.assets.mesh_asset import MeshAsset, SubMesh
from model_import.common.aabb import AABB
from model_import.common.diagnostics import ImportDiagnostics
from model_import.errors import MeshConversionError
from model_import.scene.scene_graph import SceneGraph, SceneMesh, SceneNode

logger = logging.getLogger(__name__)

_HANDEDNESS_FLIP_EXTENSIONS: frozenset[str] = frozenset({".gltf", ".glb"})

# Below this the planar projection divides by 1.0 instead of the extent.
_MIN_UV_EXTENT = 1e-4

_UNIT_Y = (0.0, 1.0, 0.0)


def _panda_matrix(transform: tuple[float, ...]) -> LMatrix4d:
    t = [float(v) for v in transform]
    return LMatrix4d(
        t[0], t[4], t[8], t[12],
        t[1], t[5], t[9], t[13],
        t[2], t[6], t[10], t[14],
        t[3], t[7], t[11], t[15],
    )


def _normalized(v: LVector3d) -> tuple[float, float, float]:
    if v.length_squared() <= 1e-24:
        return _UNIT_Y
    v = LVector3d(v)
    v.normalize()
    return (v.x, v.y, v.z)


def planar_uvs(positions: list[tuple[float, float, float]]) -> list[tuple[float, float]]:
    """Axis-aligned planar projection: XZ unless the mesh is taller than it is wide and deep."""
    if not positions:
        return []
    box = AABB.from_points(positions)
    size = box.size
    extent = max(size.x, size.y, size.z)
    if extent < _MIN_UV_EXTENT:
        extent = 1.0
    lo = box.minimum
    if size.x >= size.y or size.z >= size.y:
        return [((p[0] - lo.x) / extent, (p[2] - lo.z) / extent) for p in positions]
    return [((p[0] - lo.x) / extent, (p[1] - lo.y) / extent) for p in positions]


def generate_normals(
    positions: list[tuple[float, float, float]],
    indices: list[int],
) -> list[tuple[float, float, float]]:
    """Per-vertex normals from accumulated unit face normals; unit Y for unused vertices."""
    acc = [LVector3d(0, 0, 0) for _ in positions]
    for i in range(0, len(indices) - 2, 3):
        a, b, c = indices[i], indices[i + 1], indices[i + 2]
        pa, pb, pc = LVector3d(*positions[a]), LVector3d(*positions[b]), LVector3d(*positions[c])
        face = (pb - pa).cross(pc - pa)
        if face.length_squared() <= 1e-24:
            continue
        face.normalize()
        acc[a] += face
        acc[b] += face
        acc[c] += face
    return [_normalized(n) for n in acc]


class MeshConverter:
    """Scene graph -> mesh asset for one source file."""

    def __init__(self, *, diagnostics: ImportDiagnostics | None = None) -> None:
        self._diagnostics = diagnostics if diagnostics is not None else ImportDiagnostics()

    def convert(self, scene: SceneGraph, source_path: Path, *, name: str | None = None) -> MeshAsset:
        """Build the mesh asset.

        Raises:
            MeshConversionError: the scene has no meshes, a mesh instance has
                no usable geometry, or nothing could be converted.
        """
        source_path = Path(source_path)
        if not scene.meshes:
            raise MeshConversionError(f"{source_path.name}: scene contains no meshes")
        flip = source_path.suffix.lower() in _HANDEDNESS_FLIP_EXTENSIONS

        sub_meshes: list[SubMesh] = []
        stack: list[tuple[SceneNode, LMatrix4d]] = [(scene.root, LMatrix4d.ident_mat())]
        while stack:
            node, parent_world = stack.pop()
            world = _panda_matrix(node.transform) * parent_world
            try:
                sub_meshes.extend(self._convert_node(scene, node, world, flip, len(sub_meshes)))
            except MeshConversionError:
                raise
            except Exception as e:
                self._diagnostics.log_exception(context=f"mesh: node {node.name!r}", exc=e)
            # Reverse so children are visited in declaration order.
            stack.extend((child, world) for child in reversed(node.children))

        if not sub_meshes:
            raise MeshConversionError(f"{source_path.name}: no sub-meshes could be converted")

        bounds = AABB.from_points(p for s in sub_meshes for p in s.positions())
        asset = MeshAsset(
            name=name or source_path.stem,
            sub_meshes=sub_meshes,
            bounds=bounds,
            material_guids=[None] * len(scene.materials),
        )
        logger.info(
            "mesh: %s – %d sub-mesh(es), %d vertices, %d triangles",
            asset.name, len(sub_meshes), asset.vertex_count, asset.triangle_count,
        )
        return asset

    def _convert_node(
        self,
        scene: SceneGraph,
        node: SceneNode,
        world: LMatrix4d,
        flip: bool,
        first_index: int,
    ) -> list[SubMesh]:
        out: list[SubMesh] = []
        for mesh_index in node.mesh_indices:
            if not (0 <= mesh_index < len(scene.meshes)):
                self._diagnostics.log_message(
                    context=f"mesh: node {node.name!r}",
                    message=f"mesh index {mesh_index} out of range",
                )
                continue
            out.append(
                self.convert_mesh(
                    scene.meshes[mesh_index],
                    world,
                    flip=flip,
                    node_name=node.name,
                    fallback_name=f"SubMesh_{first_index + len(out)}",
                )
            )
        return out

    def convert_mesh(
        self,
        mesh: SceneMesh,
        world: LMatrix4d | None = None,
        *,
        flip: bool = False,
        node_name: str = "",
        fallback_name: str = "SubMesh_0",
    ) -> SubMesh:
        name = mesh.name or fallback_name
        if not mesh.positions or not mesh.faces:
            raise MeshConversionError(f"sub-mesh {name!r} has no vertices or faces")
        world = world if world is not None else LMatrix4d.ident_mat()
        z_sign = -1.0 if flip else 1.0

        positions: list[tuple[float, float, float]] = []
        for p in mesh.positions:
            w = world.xform_point(LPoint3d(*p))
            positions.append((w.x, w.y, w.z * z_sign))

        count = len(positions)
        indices: list[int] = []
        skipped = 0
        for face in mesh.faces:
            if len(face) != 3 or not all(0 <= i < count for i in face):
                skipped += 1
                continue
            i0, i1, i2 = face
            if flip:
                indices.extend((i0, i2, i1))
            else:
                indices.extend((i0, i1, i2))
        if skipped:
            self._diagnostics.log_message(
                context=f"mesh: sub-mesh {name!r}",
                message=f"skipped {skipped} non-triangular or out-of-range face(s)",
            )
        if not indices:
            raise MeshConversionError(f"sub-mesh {name!r} has no valid triangles")

        if mesh.normals is not None:
            normals = []
            for n in mesh.normals:
                w = world.xform_vec(LVector3d(*n))
                normals.append(_normalized(LVector3d(w.x, w.y, w.z * z_sign)))
        else:
            normals = generate_normals(positions, indices)

        if mesh.uv0 is not None:
            uvs = [(float(u), float(v)) for u, v in mesh.uv0]
        else:
            logger.debug("mesh: %s has no UVs; generating planar projection", name)
            uvs = planar_uvs(positions)

        if not (len(positions) == len(normals) == len(uvs)):
            raise MeshConversionError(
                f"sub-mesh {name!r}: attribute count mismatch "
                f"(positions={len(positions)}, normals={len(normals)}, uvs={len(uvs)})"
            )

        vertices: list[float] = []
        for p, n, t in zip(positions, normals, uvs):
            vertices.extend((p[0], p[1], p[2], n[0], n[1], n[2], t[0], t[1]))

        center = AABB.from_points(positions).center
        return SubMesh(
            name=name,
            vertices=vertices,
            indices=indices,
            material_index=mesh.material_index,
            node_name=node_name,
            bounds_center=(center.x, center.y, center.z),
        )
