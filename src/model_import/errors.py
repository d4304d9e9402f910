"""Exception hierarchy raised by the model import pipeline."""

from __future__ import annotations


class ModelImportError(Exception):
    """Base class for every import failure surfaced to callers."""


class SourceFileError(ModelImportError):
    """The source file is missing, empty, or has an unsupported extension."""


class IngestError(ModelImportError):
    """The scene ingest library could not produce a usable scene."""


class MeshConversionError(ModelImportError):
    """Geometry could not be flattened into a valid mesh asset."""


class ImportFailedError(ModelImportError):
    """Raised by the pipeline when a stage fails; the cause is chained."""

    def __init__(self, stage: object, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
