"""ASCII FBX material scanner.

Binary FBX is left to the generic ingest path; only the text flavour (header
starting with ``; FBX``) is scanned.  The scan is one pass over the lines,
folding each line into an immutable :class:`_ScanState`.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, replace
from pathlib import Path

from model_import.transparency.descriptor import (
    FORMAT_FBX,
    DescriptorMap,
    TransparencyDescriptor,
    name_key,
)

logger = logging.getLogger(__name__)

_ASCII_HEADER = "; FBX"

# Material-name fragments that usually mean "see-through" when the file
# itself carries no usable transparency data.
_TRANSPARENT_NAME_HINTS: tuple[str, ...] = (
    "glass",
    "window",
    "transparent",
    "alpha",
    "opacity",
    "water",
    "ice",
    "crystal",
)


def is_transparent_by_name(name: str) -> bool:
    low = str(name or "").casefold()
    return any(hint in low for hint in _TRANSPARENT_NAME_HINTS)


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------

# (material name, field, value) records emitted while scanning.
_Record = tuple[str, str, object]


@dataclass(frozen=True)
class _ScanState:
    current: str | None = None
    records: tuple[_Record, ...] = ()


def _material_name(line: str) -> str | None:
    first = line.find('"')
    if first < 0:
        return None
    second = line.find('"', first + 1)
    if second < 0:
        return None
    name = line[first + 1 : second].replace("Material::", "").strip()
    return name or None


def _property_value(line: str) -> float | None:
    # P: "Opacity", "double", "Number", "",0.5
    parts = line.split(",")
    if len(parts) < 5:
        return None
    try:
        return float(parts[4].strip())
    except ValueError:
        return None


def _step(state: _ScanState, line: str) -> _ScanState:
    if "Material:" in line and '"' in line:
        name = _material_name(line)
        if name is None:
            return state
        return _ScanState(current=name, records=state.records + ((name, "seen", True),))
    if state.current is None:
        return state

    if 'P: "TransparencyFactor"' in line:
        value = _property_value(line)
        if value is not None:
            return replace(state, records=state.records + ((state.current, "transparency_factor", value),))
    elif 'P: "Opacity"' in line:
        value = _property_value(line)
        if value is not None:
            return replace(state, records=state.records + ((state.current, "opacity", value),))
    elif 'P: "TransparentColor"' in line:
        return replace(state, records=state.records + ((state.current, "has_transparent_color", True),))
    return state


def _descriptors(records: tuple[_Record, ...]) -> DescriptorMap:
    collected: dict[str, tuple[str, dict[str, object]]] = {}
    for name, key, value in records:
        _, fields = collected.setdefault(name_key(name), (name, {}))
        if key != "seen":
            fields[key] = value

    out: DescriptorMap = {}
    for key, (name, fields) in collected.items():
        opacity = float(fields.get("opacity", 1.0))
        factor = float(fields.get("transparency_factor", 0.0))
        has_color = bool(fields.get("has_transparent_color", False))
        out[key] = TransparencyDescriptor(
            material_name=name,
            format=FORMAT_FBX,
            is_transparent=has_color or factor > 0.0 or opacity < 0.99,
            fields={
                "opacity": opacity,
                "transparency_factor": factor,
                "has_transparent_color": has_color,
            },
        )
    return out


def is_ascii_fbx(path: Path) -> bool:
    try:
        with Path(path).open("rb") as fh:
            head = fh.read(10)
    except OSError:
        return False
    return head.decode("latin-1").startswith(_ASCII_HEADER)


def parse(path: Path) -> DescriptorMap:
    path = Path(path)
    if not is_ascii_fbx(path):
        logger.debug("fbx: %s is binary or unreadable; skipping scan", path)
        return {}
    try:
        with path.open("r", encoding="utf-8", errors="replace") as fh:
            state = functools.reduce(_step, fh, _ScanState())
    except OSError as e:
        logger.warning("fbx: cannot read %s – %s", path, e)
        return {}
    out = _descriptors(state.records)
    logger.debug("fbx: %s – %d material(s) scanned", path.name, len(out))
    return out
