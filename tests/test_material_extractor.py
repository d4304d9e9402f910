from __future__ import annotations

import json
import uuid
from pathlib import Path

import pytest

from model_import.assets.material_asset import MaterialAsset, TransparencyMode
from model_import.common.diagnostics import ImportDiagnostics
from model_import.materials.material_extractor import (
    MaterialExtractor,
    TransparencyInput,
    decide_transparency,
    material_asset_name,
    resolve_texture_guid,
)
from model_import.scene.scene_graph import MaterialInfo, SceneGraph, SceneMesh, SceneNode
from model_import.textures.texture_extractor import TextureSet
from model_import.transparency.descriptor import FORMAT_FBX, FORMAT_GLTF, FORMAT_OBJ, TransparencyDescriptor


class _FakeTextures:
    def __init__(self, found: TextureSet | None = None, fail_for: str = "") -> None:
        self.found = found or TextureSet()
        self.fail_for = fail_for
        self.auto_assign_calls: list[str] = []

    def extract(self, scene: SceneGraph, materials) -> dict[str, uuid.UUID]:
        return {}

    def auto_assign(self, material_name: str) -> TextureSet:
        self.auto_assign_calls.append(material_name)
        if material_name == self.fail_for:
            raise RuntimeError("texture folder unreadable")
        return self.found


def _scene(*materials: MaterialInfo) -> SceneGraph:
    mesh = SceneMesh(name="m", positions=((0, 0, 0), (1, 0, 0), (0, 1, 0)), faces=((0, 1, 2),))
    return SceneGraph(root=SceneNode(name="root", mesh_indices=(0,)), meshes=(mesh,), materials=tuple(materials))


def _touch(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _extractor(tmp_path: Path, source: Path, textures=None, diagnostics=None) -> MaterialExtractor:
    return MaterialExtractor(
        source,
        tmp_path / "out" / "Materials",
        textures or _FakeTextures(),
        diagnostics=diagnostics,
    )


# ── naming / lookup helpers ──────────────────────────────────


def test_material_asset_name_fallbacks() -> None:
    assert material_asset_name("", "crate", 3) == "crate_Mat3"
    assert material_asset_name("  ", "crate", 0) == "crate_Mat0"
    assert material_asset_name("DefaultMaterial", "crate", 1) == "crate_Mat1"
    assert material_asset_name('Metal:Rusty/"old"', "crate", 0) == "Metal_Rusty__old_"


def test_resolve_texture_guid_exact_then_file_name() -> None:
    a, b = uuid.uuid4(), uuid.uuid4()
    texture_map = {"textures/brick.png": a, "wood.png": b}
    assert resolve_texture_guid("textures/brick.png", texture_map) == a
    assert resolve_texture_guid("C:\\art\\wood.png", texture_map) == b
    assert resolve_texture_guid("missing.png", texture_map) is None
    assert resolve_texture_guid("", texture_map) is None


# ── transparency cascade ─────────────────────────────────────


def _desc(fmt: str, transparent: bool) -> TransparencyDescriptor:
    return TransparencyDescriptor(material_name="M", format=fmt, is_transparent=transparent)


def test_cascade_descriptor_transparent_wins_over_opaque_generic() -> None:
    item = TransparencyInput(
        info=MaterialInfo(name="M", opacity=1.0), name="M", extension=".obj", descriptor=_desc(FORMAT_OBJ, True)
    )
    assert decide_transparency(item) == (True, "format descriptor reports transparency")


def test_cascade_gltf_descriptor_is_authoritative_when_opaque() -> None:
    item = TransparencyInput(
        info=MaterialInfo(name="Glass", opacity=0.2, alpha_mode="BLEND"),
        name="Glass",
        extension=".gltf",
        descriptor=_desc(FORMAT_GLTF, False),
    )
    assert decide_transparency(item) == (False, "glTF descriptor is authoritative")


def test_cascade_fbx_name_heuristic_only_without_descriptor() -> None:
    info = MaterialInfo(name="WindowGlass_01")
    assert decide_transparency(TransparencyInput(info, "WindowGlass_01", ".fbx", None))[0] is True
    # An FBX descriptor that says opaque falls through to the generic checks.
    with_desc = TransparencyInput(info, "WindowGlass_01", ".fbx", _desc(FORMAT_FBX, False))
    assert decide_transparency(with_desc) == (False, "default")
    # The name heuristic is FBX-only.
    assert decide_transparency(TransparencyInput(info, "WindowGlass_01", ".obj", None)) == (False, "default")


@pytest.mark.parametrize(
    "info, expected",
    [
        (MaterialInfo(name="a", alpha_mode="BLEND"), True),
        (MaterialInfo(name="b", opacity=0.94), True),
        (MaterialInfo(name="c", opacity=0.96), False),
        (MaterialInfo(name="d", textures={"opacity": "mask.png"}), True),
        (MaterialInfo(name="e", textures={"albedo": "with_alpha.png"}), False),
    ],
)
def test_cascade_generic_rules(info: MaterialInfo, expected: bool) -> None:
    verdict, _ = decide_transparency(TransparencyInput(info, info.name, ".dae", None))
    assert verdict is expected


# ── extraction ───────────────────────────────────────────────


def test_parser_transparency_beats_generic_opacity(tmp_path: Path) -> None:
    src = _touch(tmp_path / "src" / "box.obj", "mtllib box.mtl\n")
    _touch(tmp_path / "src" / "box.mtl", "newmtl Glass\nd 0.3\n")

    ex = _extractor(tmp_path, src)
    assets = ex.extract(_scene(MaterialInfo(name="Glass", opacity=1.0)), {})

    assert len(assets) == 1
    assert assets[0].transparency_mode == TransparencyMode.BLEND
    saved = MaterialAsset.load(tmp_path / "out" / "Materials" / "Glass.material")
    assert saved.guid == assets[0].guid
    assert saved.transparency_mode == TransparencyMode.BLEND


def test_gltf_base_color_factor_overrides_generic_albedo(tmp_path: Path) -> None:
    doc = {"materials": [{"name": "Tinted", "pbrMetallicRoughness": {"baseColorFactor": [1, 1, 1, 0.4]}}]}
    src = _touch(tmp_path / "src" / "tint.gltf", json.dumps(doc))

    ex = _extractor(tmp_path, src)
    (asset,) = ex.extract(_scene(MaterialInfo(name="Tinted", albedo_color=(0.2, 0.2, 0.2, 1.0))), {})

    assert asset.albedo_color == pytest.approx((1.0, 1.0, 1.0, 0.4))
    assert asset.transparency_mode == TransparencyMode.BLEND


def test_gltf_texture_indices_fill_only_empty_slots(tmp_path: Path) -> None:
    doc = {
        "materials": [
            {
                "name": "Brick",
                "pbrMetallicRoughness": {"baseColorTexture": {"index": 0}},
                "normalTexture": {"index": 1},
                "emissiveTexture": {"index": 2},
            }
        ],
        "textures": [{"source": 0}, {"source": 1}, {"source": 2}],
        "images": [{"uri": "from_gltf_albedo.png"}, {"uri": "brick_n.png"}, {"uri": "glow.png"}],
    }
    src = _touch(tmp_path / "src" / "brick.gltf", json.dumps(doc))
    generic_albedo, gltf_albedo, normal, glow = (uuid.uuid4() for _ in range(4))
    texture_map = {
        "generic_albedo.png": generic_albedo,
        "from_gltf_albedo.png": gltf_albedo,
        "brick_n.png": normal,
        "glow.png": glow,
    }

    ex = _extractor(tmp_path, src)
    info = MaterialInfo(name="Brick", textures={"albedo": "maps/generic_albedo.png"})
    (asset,) = ex.extract(_scene(info), texture_map)

    assert asset.albedo_texture == generic_albedo
    assert asset.normal_texture == normal
    assert asset.normal_strength == pytest.approx(1.0)
    assert asset.emissive_texture == glow
    assert asset.emission == pytest.approx(1.0)


def test_reextracting_never_overwrites_material_files(tmp_path: Path) -> None:
    src = _touch(tmp_path / "src" / "box.obj", "v 0 0 0\n")
    scene = _scene(MaterialInfo(name="Glass"), MaterialInfo(name="Glass"))

    first = _extractor(tmp_path, src).extract(scene, {})
    second = _extractor(tmp_path, src).extract(scene, {})

    mats = tmp_path / "out" / "Materials"
    names = sorted(p.name for p in mats.glob("*.material"))
    assert names == ["Glass.material", "Glass_1.material", "Glass_2.material", "Glass_3.material"]
    guids = {a.guid for a in first + second}
    assert len(guids) == 4
    meta = json.loads((mats / "Glass.material.meta").read_text(encoding="utf-8"))
    assert meta == {"guid": str(first[0].guid), "type": "Material"}


def test_unnamed_materials_get_model_prefixed_names(tmp_path: Path) -> None:
    src = _touch(tmp_path / "src" / "crate.dae", "<COLLADA/>")
    ex = _extractor(tmp_path, src)
    assets = ex.extract(_scene(MaterialInfo(name=""), MaterialInfo(name="DefaultMaterial")), {})
    assert [a.name for a in assets] == ["crate_Mat0", "crate_Mat1"]
    assert all(a.shader == "ForwardBase" for a in assets)


def test_auto_assign_fills_missing_albedo_and_normal(tmp_path: Path) -> None:
    src = _touch(tmp_path / "src" / "wall.obj", "v 0 0 0\n")
    albedo, normal, rough = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    fake = _FakeTextures(TextureSet(albedo=albedo, normal=normal, roughness=rough))

    (asset,) = _extractor(tmp_path, src, fake).extract(_scene(MaterialInfo(name="Wall")), {})

    assert fake.auto_assign_calls == ["Wall"]
    assert asset.albedo_texture == albedo
    assert asset.normal_texture == normal
    # Only albedo and normal are auto-filled.
    assert asset.roughness_texture is None


def test_auto_assign_skipped_for_transparent_textureless_material(tmp_path: Path) -> None:
    src = _touch(tmp_path / "src" / "pane.obj", "v 0 0 0\n")
    fake = _FakeTextures(TextureSet(albedo=uuid.uuid4()))

    (asset,) = _extractor(tmp_path, src, fake).extract(_scene(MaterialInfo(name="Pane", opacity=0.5)), {})

    assert asset.is_transparent
    assert fake.auto_assign_calls == []
    assert asset.albedo_texture is None


def test_one_failing_material_does_not_abort_batch(tmp_path: Path) -> None:
    src = _touch(tmp_path / "src" / "mix.obj", "v 0 0 0\n")
    diagnostics = ImportDiagnostics()
    fake = _FakeTextures(fail_for="Broken")

    ex = _extractor(tmp_path, src, fake, diagnostics)
    assets = ex.extract(_scene(MaterialInfo(name="Good"), MaterialInfo(name="Broken"), MaterialInfo(name="Fine")), {})

    assert [a.name for a in assets] == ["Good", "Fine"]
    assert ex.get_material(0) is assets[0]
    assert ex.get_material(1) is None
    assert ex.get_material(2) is assets[1]
    assert len(diagnostics) == 1
    assert "texture folder unreadable" in diagnostics.items()[0].message
