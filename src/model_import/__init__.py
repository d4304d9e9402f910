"""Model import pipeline: external 3D files to engine mesh/material/texture assets."""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
