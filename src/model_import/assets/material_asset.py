from __future__ import annotations

import enum
import json
import uuid
from dataclasses import dataclass, fields
from pathlib import Path

MATERIAL_SUFFIX = ".material"


class TransparencyMode(enum.IntEnum):
    OPAQUE = 0
    BLEND = 1


# Texture channels persisted as optional GUID references.
TEXTURE_CHANNELS: tuple[str, ...] = (
    "albedo",
    "normal",
    "metallic_roughness",
    "metallic",
    "roughness",
    "occlusion",
    "emissive",
)


@dataclass
class MaterialAsset:
    """PBR metallic-roughness material as consumed by the renderer."""

    guid: uuid.UUID
    name: str
    shader: str = "ForwardBase"

    # -- scalar parameters --
    albedo_color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    metallic: float = 0.0
    roughness: float = 0.5
    opacity: float = 1.0
    transparency_mode: TransparencyMode = TransparencyMode.OPAQUE
    normal_strength: float = 1.0
    occlusion_strength: float = 1.0
    emissive_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    emission: float = 0.0
    texture_tiling: tuple[float, float] = (1.0, 1.0)
    texture_offset: tuple[float, float] = (0.0, 0.0)

    # -- texture references (GUIDs of Texture2D assets) --
    albedo_texture: uuid.UUID | None = None
    normal_texture: uuid.UUID | None = None
    metallic_roughness_texture: uuid.UUID | None = None
    metallic_texture: uuid.UUID | None = None
    roughness_texture: uuid.UUID | None = None
    occlusion_texture: uuid.UUID | None = None
    emissive_texture: uuid.UUID | None = None

    @property
    def is_transparent(self) -> bool:
        return self.transparency_mode == TransparencyMode.BLEND

    def texture(self, channel: str) -> uuid.UUID | None:
        return getattr(self, f"{channel}_texture")

    def set_texture(self, channel: str, guid: uuid.UUID | None) -> None:
        if channel not in TEXTURE_CHANNELS:
            raise KeyError(channel)
        setattr(self, f"{channel}_texture", guid)

    def texture_count(self) -> int:
        return sum(1 for ch in TEXTURE_CHANNELS if self.texture(ch) is not None)

    def to_json(self) -> dict:
        out: dict = {}
        for f in fields(self):
            val = getattr(self, f.name)
            if isinstance(val, uuid.UUID):
                val = str(val)
            elif isinstance(val, TransparencyMode):
                val = int(val)
            elif isinstance(val, tuple):
                val = list(val)
            out[f.name] = val
        return out

    @classmethod
    def from_json(cls, d: dict) -> MaterialAsset:
        kwargs: dict = {"guid": uuid.UUID(str(d["guid"])), "name": str(d.get("name", ""))}
        for f in fields(cls):
            if f.name in kwargs or f.name not in d:
                continue
            val = d[f.name]
            if f.name.endswith("_texture"):
                kwargs[f.name] = uuid.UUID(val) if val else None
            elif f.name == "transparency_mode":
                kwargs[f.name] = TransparencyMode(int(val))
            elif isinstance(val, list):
                kwargs[f.name] = tuple(float(x) for x in val)
            else:
                kwargs[f.name] = val
        return cls(**kwargs)

    def save(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_json(), indent=2) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> MaterialAsset:
        return cls.from_json(json.loads(Path(path).read_text(encoding="utf-8")))
