from __future__ import annotations

import io
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple, TypeAlias, Union

from PIL import Image

DOCUMENT_EXTENSION = ".pdf"

# Ordered entry names, never empty once built by the orderer.
PageSequence: TypeAlias = Tuple[str, ...]


class Archive(NamedTuple):
    """A comic archive to convert, identified by its source path."""

    source: Path

    @property
    def base_name(self) -> str:
        """File name without its last extension, e.g. ``issue-01``."""
        return self.source.stem

    @property
    def output_name(self) -> str:
        return f"{self.base_name}{DOCUMENT_EXTENSION}"


class ScratchSet(NamedTuple):
    """Scratch directory holding one archive's extracted entries.

    `entries` are the names found directly inside `directory`, unordered.
    """

    directory: Path
    entries: List[str]


class AssembledDocument:
    """In-memory paginated document: one decoded image per page.

    `names[i]` is the entry the page at index `i` was decoded from. Pages are
    only ever appended, so the order is the order of the page sequence.
    """

    def __init__(self):
        self.names: List[str] = []
        self.pages: List[Image.Image] = []

    def insert(self, index: int, name: str, page: Image.Image):
        if index != len(self.pages):
            raise IndexError(f"page {name} inserted at {index}, expected {len(self.pages)}")
        self.names.append(name)
        self.pages.append(page)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def to_bytes(self, resolution: float = 72.0) -> bytes:
        """Serialize every page into a single PDF byte string."""
        if not self.pages:
            raise ValueError("cannot serialize a document without pages")
        buf = io.BytesIO()
        first, rest = self.pages[0], self.pages[1:]
        first.save(
            buf,
            format="PDF",
            save_all=True,
            append_images=rest,
            resolution=resolution,
        )
        return buf.getvalue()

    def close(self):
        for page in self.pages:
            page.close()


class Converted(NamedTuple):
    """Successful conversion: the document was written to `output_path`."""

    archive_name: str
    output_path: Path
    page_count: int
    scratch_removed: bool = True

    @property
    def ok(self) -> bool:
        return True


class Failed(NamedTuple):
    """Failed conversion, with the stage that failed and a readable reason."""

    archive_name: str
    reason: str
    stage: str

    @property
    def ok(self) -> bool:
        return False


ConversionOutcome: TypeAlias = Union[Converted, Failed]


class BatchResult(NamedTuple):
    """Outcomes of a batch, one per input archive, in input order."""

    outcomes: List[ConversionOutcome]

    @property
    def outputs(self) -> List[Path]:
        return [o.output_path for o in self.outcomes if isinstance(o, Converted)]

    @property
    def failures(self) -> List[Failed]:
        return [o for o in self.outcomes if isinstance(o, Failed)]

    @property
    def all_failed(self) -> bool:
        return not self.outputs

    def find(self, archive_name: str) -> Optional[ConversionOutcome]:
        for o in self.outcomes:
            if o.archive_name == archive_name:
                return o
        return None
