from pathlib import Path

import pytest
from pypdf import PdfReader

from comicpdf.config import Config
from comicpdf.testing import make_cbz as _make_cbz
from comicpdf.testing import run_comicpdf as _run_comicpdf


@pytest.fixture
def make_cbz():
    return _make_cbz


@pytest.fixture
def run_comicpdf():
    return _run_comicpdf


@pytest.fixture
def cfg(tmp_path: Path):
    """Config writing into tmp dirs so tests never touch the real temp dir."""
    out = tmp_path / "out"
    out.mkdir()
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return Config(output_dir=out, scratch_root=scratch)


@pytest.fixture
def page_widths():
    """Return the width (in points) of each page of a PDF, in page order."""

    def _page_widths(path: Path):
        reader = PdfReader(str(path))
        return [round(float(page.mediabox.width)) for page in reader.pages]

    return _page_widths
