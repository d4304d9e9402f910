"""Tests for the per-format transparency readers and the extension table."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from model_import.transparency import dae, fbx, gltf, obj
from model_import.transparency.descriptor import FORMAT_DAE, FORMAT_FBX, FORMAT_GLTF, FORMAT_OBJ, lookup
from model_import.transparency.registry import TRANSPARENCY_PARSERS, parse_transparency


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


_ASCII_FBX = """; FBX 7.4.0 project file
; ----------------------------------------------------

Definitions:  {
	ObjectType: "Material" {
		PropertyTemplate: "FbxSurfacePhong" {
			Properties70:  {
				P: "TransparentColor", "Color", "", "A",0,0,0
			}
		}
	}
}

Objects:  {
	Material: 140, "Material::Glass", "" {
		Version: 102
		ShadingModel: "phong"
		Properties70:  {
			P: "TransparencyFactor", "Number", "", "A",0.7
			P: "Opacity", "double", "Number", "",0.3
		}
	}
	Material: 141, "Material::Wood", "" {
		Properties70:  {
			P: "DiffuseColor", "Color", "", "A",0.8,0.6,0.4
			P: "Opacity", "double", "Number", "",1
		}
	}
	Material: 142, "Material::Tinted", "" {
		Properties70:  {
			P: "TransparentColor", "Color", "", "A",1,1,1
		}
	}
}
"""


# ── glTF ─────────────────────────────────────────────────────


def test_gltf_reads_alpha_mode_and_pads_base_color(tmp_path: Path) -> None:
    doc = {
        "materials": [
            {"name": "Glass", "alphaMode": "blend", "pbrMetallicRoughness": {"baseColorFactor": [0.1, 0.2, 0.3]}},
            {"name": "Leaves", "alphaMode": "MASK", "alphaCutoff": 0.25},
            {"name": "Solid", "pbrMetallicRoughness": {"baseColorFactor": [0.5]}},
            {"name": ""},
        ]
    }
    path = _write(tmp_path / "scene.gltf", json.dumps(doc))

    out = gltf.parse(path)

    assert set(out) == {"glass", "leaves", "solid"}
    glass = out["glass"]
    assert glass.format == FORMAT_GLTF
    assert glass.is_transparent
    assert glass.get("alpha_mode") == "BLEND"
    assert glass.get("base_color_factor") == (0.1, 0.2, 0.3, 1.0)

    leaves = out["leaves"]
    assert leaves.is_transparent
    assert leaves.get("alpha_cutoff") == pytest.approx(0.25)

    solid = out["solid"]
    assert not solid.is_transparent
    assert solid.get("alpha_mode") == "OPAQUE"
    assert solid.get("alpha_cutoff") == pytest.approx(0.5)
    assert solid.get("base_color_factor") == (0.5, 0.0, 0.0, 1.0)


def test_gltf_low_base_alpha_is_transparent(tmp_path: Path) -> None:
    doc = {"materials": [{"name": "Tint", "pbrMetallicRoughness": {"baseColorFactor": [1, 1, 1, 0.4]}}]}
    out = gltf.parse(_write(tmp_path / "tint.gltf", json.dumps(doc)))
    assert out["tint"].is_transparent
    assert out["tint"].get("alpha_mode") == "OPAQUE"


def test_gltf_texture_indices_and_image_map(tmp_path: Path) -> None:
    doc = {
        "materials": [
            {
                "name": "Brick",
                "pbrMetallicRoughness": {
                    "baseColorTexture": {"index": 0},
                    "metallicRoughnessTexture": {"index": 1},
                },
                "normalTexture": {"index": 2},
                "emissiveTexture": {"index": 7},
            }
        ],
        "textures": [{"source": 0}, {"source": 1}, {"source": 2}, {"source": 9}],
        "images": [{"uri": "brick_albedo.png"}, {"uri": "brick_mr.png"}, {"uri": "brick_normal.png"}],
    }
    path = _write(tmp_path / "brick.gltf", json.dumps(doc))

    desc = gltf.parse(path)["brick"]
    assert desc.texture_indices == {"base_color": 0, "metallic_roughness": 1, "normal": 2, "emissive": 7}
    assert gltf.texture_paths(path) == {0: "brick_albedo.png", 1: "brick_mr.png", 2: "brick_normal.png"}


def test_gltf_glb_and_broken_json_yield_empty(tmp_path: Path) -> None:
    assert gltf.parse(_write(tmp_path / "model.glb", "glTF binary")) == {}
    assert gltf.parse(_write(tmp_path / "broken.gltf", "{not json")) == {}
    assert gltf.texture_paths(tmp_path / "missing.gltf") == {}


# ── FBX ──────────────────────────────────────────────────────


def test_fbx_ascii_scan_reads_properties_per_material(tmp_path: Path) -> None:
    out = fbx.parse(_write(tmp_path / "house.fbx", _ASCII_FBX))

    assert set(out) == {"glass", "wood", "tinted"}
    glass = out["glass"]
    assert glass.format == FORMAT_FBX
    assert glass.material_name == "Glass"
    assert glass.is_transparent
    assert glass.get("transparency_factor") == pytest.approx(0.7)
    assert glass.get("opacity") == pytest.approx(0.3)
    assert glass.get("has_transparent_color") is False

    assert not out["wood"].is_transparent
    assert out["tinted"].is_transparent
    assert out["tinted"].get("has_transparent_color") is True


def test_fbx_binary_is_skipped(tmp_path: Path) -> None:
    path = tmp_path / "car.fbx"
    path.write_bytes(b"Kaydara FBX Binary  \x00\x1a\x00" + b"\x00" * 64)
    assert not fbx.is_ascii_fbx(path)
    assert fbx.parse(path) == {}


@pytest.mark.parametrize(
    "name, expected",
    [
        ("WindowGlass_01", True),
        ("OCEAN_WATER", True),
        ("IceCube", True),
        ("crystal_ball", True),
        ("Brick_Wall", False),
        ("", False),
    ],
)
def test_fbx_name_heuristic(name: str, expected: bool) -> None:
    assert fbx.is_transparent_by_name(name) is expected


# ── OBJ / MTL ────────────────────────────────────────────────


def test_obj_reads_every_mtllib(tmp_path: Path) -> None:
    _write(
        tmp_path / "a.mtl",
        "# exported\nnewmtl Glass\nKd 1 1 1\nd 0.3\n\nnewmtl Wood\nd 1.0\nTr 0.0\n",
    )
    _write(
        tmp_path / "sub" / "b.mtl",
        "newmtl Decal\nmap_d -clamp on decal_alpha.png\nnewmtl Nearly\nTr 0.005\nnewmtl Veil\nTr 0.5\n",
    )
    path = _write(tmp_path / "scene.obj", "mtllib a.mtl\nmtllib sub/b.mtl\nmtllib missing.mtl\nv 0 0 0\n")

    out = obj.parse(path)

    assert set(out) == {"glass", "wood", "decal", "nearly", "veil"}
    assert out["glass"].format == FORMAT_OBJ
    assert out["glass"].is_transparent
    assert out["glass"].get("dissolve") == pytest.approx(0.3)
    assert not out["wood"].is_transparent
    assert out["decal"].is_transparent
    assert out["decal"].get("opacity_map") == "decal_alpha.png"
    assert not out["nearly"].is_transparent
    assert out["veil"].is_transparent


def test_obj_without_mtllib_is_empty(tmp_path: Path) -> None:
    assert obj.parse(_write(tmp_path / "plain.obj", "v 0 0 0\nf 1 1 1\n")) == {}
    assert obj.parse(tmp_path / "missing.obj") == {}


# ── DAE ──────────────────────────────────────────────────────

_DAE = """<?xml version="1.0" encoding="utf-8"?>
<COLLADA {ns} version="1.4.1">
  <library_effects>
    <effect id="Glass-effect">
      <profile_COMMON><technique sid="common"><phong>
        <transparency><float sid="transparency">0.4</float></transparency>
      </phong></technique></profile_COMMON>
    </effect>
    <effect id="Wood-effect">
      <profile_COMMON><technique sid="common"><lambert>
        <diffuse><color>0.8 0.6 0.4 1</color></diffuse>
      </lambert></technique></profile_COMMON>
    </effect>
    <effect id="Film-effect">
      <profile_COMMON><technique sid="common"><blinn>
        <transparent opaque="A_ONE"><color>1 1 1 1</color></transparent>
      </blinn></technique></profile_COMMON>
    </effect>
  </library_effects>
  <library_materials>
    <material id="Glass-material" name="Glass"><instance_effect url="#Glass-effect"/></material>
    <material id="Wood-material"><instance_effect url="#Wood-effect"/></material>
    <material id="Film-material" name="Film"><instance_effect url="#Film-effect"/></material>
    <material id="Ghost-material" name="Ghost"><instance_effect url="#Nope"/></material>
  </library_materials>
</COLLADA>
"""


@pytest.mark.parametrize("ns", ['xmlns="http://www.collada.org/2005/11/COLLADASchema"', ""])
def test_dae_reads_effects_with_and_without_namespace(tmp_path: Path, ns: str) -> None:
    out = dae.parse(_write(tmp_path / "room.dae", _DAE.replace("{ns}", ns)))

    assert set(out) == {"glass", "wood-material", "film"}
    glass = out["glass"]
    assert glass.format == FORMAT_DAE
    assert glass.is_transparent
    assert glass.get("transparency") == pytest.approx(0.4)
    assert glass.get("effect_id") == "Glass-effect"
    assert not out["wood-material"].is_transparent
    assert out["film"].is_transparent
    assert out["film"].get("has_transparent_tag") is True


def test_dae_malformed_xml_is_empty(tmp_path: Path) -> None:
    assert dae.parse(_write(tmp_path / "bad.dae", "<COLLADA><library_materials>")) == {}


# ── registry ─────────────────────────────────────────────────


def test_registry_dispatches_by_extension(tmp_path: Path) -> None:
    assert set(TRANSPARENCY_PARSERS) == {".gltf", ".fbx", ".obj", ".dae"}
    path = _write(tmp_path / "HOUSE.FBX", _ASCII_FBX)
    out = parse_transparency(path)
    assert lookup(out, "GLASS") is out["glass"]
    assert parse_transparency(_write(tmp_path / "thing.glb", "x")) == {}


def test_registry_swallows_parser_errors(tmp_path: Path) -> None:
    def boom(path: Path) -> dict:
        raise RuntimeError("parser exploded")

    path = _write(tmp_path / "x.obj", "v 0 0 0\n")
    assert parse_transparency(path, {".obj": boom}) == {}
