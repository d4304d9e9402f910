from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

FORMAT_GLTF = "gltf"
FORMAT_FBX = "fbx"
FORMAT_OBJ = "obj"
FORMAT_DAE = "dae"

# glTF texture-index keys carried on a descriptor, mapped to material slots.
GLTF_TEXTURE_SLOTS: dict[str, str] = {
    "base_color": "albedo",
    "metallic_roughness": "metallic_roughness",
    "normal": "normal",
    "occlusion": "occlusion",
    "emissive": "emissive",
}


@dataclass(frozen=True)
class TransparencyDescriptor:
    """Per-material transparency facts read straight from a source file.

    ``fields`` holds the format-native raw values (see the parser modules for
    the keys each format fills); ``texture_indices`` is only populated for glTF.
    """

    material_name: str
    format: str
    is_transparent: bool
    fields: dict[str, Any] = field(default_factory=dict)
    texture_indices: dict[str, int] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


DescriptorMap = dict[str, TransparencyDescriptor]


def name_key(name: str) -> str:
    """Case-insensitive lookup key for material names."""
    return str(name).strip().casefold()


def lookup(descriptors: DescriptorMap, *names: str) -> TransparencyDescriptor | None:
    """First descriptor matching any of *names* (case-insensitive)."""
    for n in names:
        if not n:
            continue
        hit = descriptors.get(name_key(n))
        if hit is not None:
            return hit
    return None
