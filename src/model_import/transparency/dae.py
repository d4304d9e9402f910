"""Collada (DAE) material reader.

Two passes over the document: ``library_materials`` gives material name ->
effect id, then each referenced ``library_effects/effect`` is inspected for
``<transparent>``, ``<transparency>`` and ``blend_mode``.  Files written with
the COLLADA 1.4.1 namespace and files without any namespace are both accepted.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree
from pathlib import Path

from model_import.transparency.descriptor import (
    FORMAT_DAE,
    DescriptorMap,
    TransparencyDescriptor,
    name_key,
)

logger = logging.getLogger(__name__)

COLLADA_NAMESPACE = "http://www.collada.org/2005/11/COLLADASchema"

_TECHNIQUES: tuple[str, ...] = ("phong", "lambert", "blinn", "constant")


def _strip_namespaces(root: xml.etree.ElementTree.Element) -> None:
    for el in root.iter():
        if isinstance(el.tag, str) and el.tag.startswith("{"):
            el.tag = el.tag.split("}", 1)[1]


def _material_effects(root: xml.etree.ElementTree.Element) -> list[tuple[str, str]]:
    out: list[tuple[str, str]] = []
    for mat in root.iterfind("library_materials/material"):
        name = (mat.get("name") or mat.get("id") or "").strip()
        inst = mat.find("instance_effect")
        if not name or inst is None:
            continue
        url = (inst.get("url") or "").strip().lstrip("#")
        if url:
            out.append((name, url))
    return out


def _technique(effect: xml.etree.ElementTree.Element) -> xml.etree.ElementTree.Element | None:
    for tag in _TECHNIQUES:
        found = effect.find(f".//{tag}")
        if found is not None:
            return found
    return None


def _describe(name: str, effect: xml.etree.ElementTree.Element) -> TransparencyDescriptor:
    technique = _technique(effect)
    has_tag = False
    transparency = 1.0
    if technique is not None:
        has_tag = technique.find("transparent") is not None
        node = technique.find("transparency")
        if node is not None:
            try:
                transparency = float("".join(node.itertext()).strip())
            except ValueError:
                transparency = 1.0

    blend_mode = None
    blend = effect.find(".//blend_mode")
    if blend is not None:
        text = "".join(blend.itertext()).strip().upper()
        blend_mode = text or None

    transparent = (
        has_tag
        or (blend_mode is not None and blend_mode != "OPAQUE")
        or 0.0 < transparency < 0.99
    )
    return TransparencyDescriptor(
        material_name=name,
        format=FORMAT_DAE,
        is_transparent=transparent,
        fields={
            "effect_id": effect.get("id"),
            "transparency": transparency,
            "has_transparent_tag": has_tag,
            "blend_mode": blend_mode,
        },
    )


def parse(path: Path) -> DescriptorMap:
    path = Path(path)
    try:
        root = xml.etree.ElementTree.parse(path).getroot()
    except (OSError, xml.etree.ElementTree.ParseError) as e:
        logger.warning("dae: cannot parse %s – %s", path, e)
        return {}
    _strip_namespaces(root)

    effects = {e.get("id"): e for e in root.iterfind("library_effects/effect") if e.get("id")}
    out: DescriptorMap = {}
    for name, effect_id in _material_effects(root):
        effect = effects.get(effect_id)
        if effect is None:
            logger.debug("dae: material %s references missing effect %s", name, effect_id)
            continue
        out[name_key(name)] = _describe(name, effect)
    return out
