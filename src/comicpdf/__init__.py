"""comicpdf: turn .cbz comic archives into PDF documents.

Public API:
- convert(paths, output_dir=None, **options) -> BatchResult
- convert_one(archive, cfg) / convert_batch(archives, cfg) for finer control

Each archive is converted on its own: a broken archive shows up as a
``Failed`` outcome and the rest of the batch carries on.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Union

from .config import Config
from .errors import (
    ConversionError,
    EmptyArchiveError,
    ExtractionError,
    UnsupportedImageError,
    WriteError,
)
from .types_ import Archive, BatchResult, Converted, Failed
from .worker import convert_batch, convert_one

__all__ = [
    "Archive",
    "BatchResult",
    "Config",
    "ConversionError",
    "Converted",
    "EmptyArchiveError",
    "ExtractionError",
    "Failed",
    "UnsupportedImageError",
    "WriteError",
    "convert",
    "convert_batch",
    "convert_one",
]


def convert(
    paths: Iterable[Union[str, Path]],
    output_dir: Optional[Union[str, Path]] = None,
    **options,
) -> BatchResult:
    """Convert every archive in `paths` into `<output_dir>/<name>.pdf`.

    Extra keyword arguments are :class:`Config` fields (``ordering``,
    ``exclude``, ``nb_worker``...). Raises ValueError for invalid options;
    per-archive problems are reported in the returned outcomes.
    """
    cfg = Config(output_dir=output_dir, **options).validate()
    return convert_batch(paths, cfg)
