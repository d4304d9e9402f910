from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from model_import.common.aabb import AABB

MESH_ASSET_SUFFIX = ".meshasset"

# position (3) + normal (3) + uv (2)
VERTEX_STRIDE = 8


@dataclass
class SubMesh:
    name: str
    vertices: list[float]  # interleaved, VERTEX_STRIDE floats per vertex
    indices: list[int]
    material_index: int = 0
    node_name: str = ""
    bounds_center: tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices) // VERTEX_STRIDE

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    def positions(self) -> list[tuple[float, float, float]]:
        v = self.vertices
        return [(v[i], v[i + 1], v[i + 2]) for i in range(0, len(v), VERTEX_STRIDE)]

    def normals(self) -> list[tuple[float, float, float]]:
        v = self.vertices
        return [(v[i + 3], v[i + 4], v[i + 5]) for i in range(0, len(v), VERTEX_STRIDE)]

    def uvs(self) -> list[tuple[float, float]]:
        v = self.vertices
        return [(v[i + 6], v[i + 7]) for i in range(0, len(v), VERTEX_STRIDE)]

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "vertices": list(self.vertices),
            "indices": list(self.indices),
            "material_index": self.material_index,
            "node_name": self.node_name,
            "bounds_center": list(self.bounds_center),
        }

    @classmethod
    def from_json(cls, d: dict) -> SubMesh:
        c = d.get("bounds_center") or [0.0, 0.0, 0.0]
        return cls(
            name=str(d.get("name", "")),
            vertices=[float(x) for x in d.get("vertices", [])],
            indices=[int(x) for x in d.get("indices", [])],
            material_index=int(d.get("material_index", 0)),
            node_name=str(d.get("node_name", "")),
            bounds_center=(float(c[0]), float(c[1]), float(c[2])),
        )


@dataclass
class MeshAsset:
    """Flattened, renderer-ready geometry for one imported model."""

    name: str
    sub_meshes: list[SubMesh]
    bounds: AABB
    # Minted when the asset is saved.
    guid: uuid.UUID | None = None
    # Index-aligned with the source material list; None for unresolved slots.
    material_guids: list[uuid.UUID | None] = field(default_factory=list)
    source_path: str = ""

    @property
    def vertex_count(self) -> int:
        return sum(s.vertex_count for s in self.sub_meshes)

    @property
    def triangle_count(self) -> int:
        return sum(s.triangle_count for s in self.sub_meshes)

    def to_json(self) -> dict:
        return {
            "guid": str(self.guid) if self.guid is not None else None,
            "name": self.name,
            "source_path": self.source_path,
            "bounds": self.bounds.to_json(),
            "vertex_count": self.vertex_count,
            "triangle_count": self.triangle_count,
            "material_guids": [str(g) if g is not None else None for g in self.material_guids],
            "sub_meshes": [s.to_json() for s in self.sub_meshes],
        }

    @classmethod
    def from_json(cls, d: dict) -> MeshAsset:
        return cls(
            guid=uuid.UUID(str(d["guid"])) if d.get("guid") else None,
            name=str(d.get("name", "")),
            sub_meshes=[SubMesh.from_json(s) for s in d.get("sub_meshes", [])],
            bounds=AABB.from_json(d.get("bounds") or {}),
            material_guids=[uuid.UUID(g) if g else None for g in d.get("material_guids", [])],
            source_path=str(d.get("source_path", "")),
        )

    def save(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_json(), indent=2) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> MeshAsset:
        return cls.from_json(json.loads(Path(path).read_text(encoding="utf-8")))
