"""Per-archive conversion errors.

Every stage of the pipeline raises a subclass of :class:`ConversionError`. The
pipeline catches them at the archive boundary and turns them into a ``Failed``
outcome, so none of these ever escape a batch.
"""
from __future__ import annotations

from typing import Optional


class ConversionError(RuntimeError):
    """Base class for a failed conversion of one archive."""

    stage = "convert"

    def __init__(self, archive_name: str, message: str):
        super().__init__(message)
        self.archive_name = archive_name


class ExtractionError(ConversionError):
    """Archive could not be opened or decompressed."""

    stage = "extract"


class EmptyArchiveError(ConversionError):
    """Archive extracted fine but holds no usable entry."""

    stage = "order"


class UnsupportedImageError(ConversionError):
    """An entry could not be decoded as an image."""

    stage = "assemble"

    def __init__(self, archive_name: str, message: str, entry: Optional[str] = None):
        super().__init__(archive_name, message)
        self.entry = entry


class WriteError(ConversionError):
    """The output document could not be written."""

    stage = "write"
