from __future__ import annotations

import re
from pathlib import Path

# Characters that are invalid in file names on at least one supported platform.
_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_file_name(name: str) -> str:
    """Replace invalid file-name characters with ``_`` and strip surrounding whitespace."""
    return _INVALID_NAME_CHARS.sub("_", str(name)).strip()


def unique_path(directory: Path, stem: str, suffix: str) -> Path:
    """Return ``directory/stem+suffix``, or ``stem_1``, ``stem_2``, … when taken."""
    candidate = directory / f"{stem}{suffix}"
    n = 1
    while candidate.exists():
        candidate = directory / f"{stem}_{n}{suffix}"
        n += 1
    return candidate


def relative_posix(path: Path, root: Path) -> str:
    """*path* relative to *root* with forward slashes; absolute when outside *root*."""
    p = Path(path).resolve()
    try:
        return p.relative_to(Path(root).resolve()).as_posix()
    except ValueError:
        return p.as_posix()
