"""Extension -> transparency parser table."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from model_import.transparency import dae, fbx, gltf, obj
from model_import.transparency.descriptor import DescriptorMap

logger = logging.getLogger(__name__)

TransparencyParser = Callable[[Path], DescriptorMap]

# Formats without an entry (e.g. .glb) rely on the generic ingest properties only.
TRANSPARENCY_PARSERS: dict[str, TransparencyParser] = {
    ".gltf": gltf.parse,
    ".fbx": fbx.parse,
    ".obj": obj.parse,
    ".dae": dae.parse,
}


def parse_transparency(
    path: Path,
    parsers: dict[str, TransparencyParser] | None = None,
) -> DescriptorMap:
    """Run the parser registered for *path*'s extension.  Never raises."""
    path = Path(path)
    table = TRANSPARENCY_PARSERS if parsers is None else parsers
    parser = table.get(path.suffix.lower())
    if parser is None:
        return {}
    try:
        return parser(path)
    except Exception as e:
        logger.warning("transparency: %s parser failed on %s – %s", path.suffix.lower(), path, e)
        return {}
