"""Small helpers exported for tests.

These convenience functions are intended for use by the test suite only.
"""
import io
import os
import subprocess
import sys
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Tuple, Union

from PIL import Image

SRC_DIR = Path(__file__).resolve().parents[1]


def make_image_bytes(size: Tuple[int, int] = (20, 30), fmt: str = "JPEG", color="white") -> bytes:
    """Encode a plain image of `size` pixels."""
    mode = "RGBA" if fmt.upper() == "PNG" else "RGB"
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_cbz(
    path: Path,
    name: str,
    entries: Union[Iterable[str], Dict[str, bytes]] = ("001.jpg", "002.jpg", "003.jpg"),
):
    """Create `path/name` as a zip archive.

    `entries` is either a mapping name -> raw bytes, or a list of names; in
    the latter case entry number i (0-based) gets a JPEG of width 10 * (i + 1)
    so the page order can be read back from the page sizes.
    """
    if not isinstance(entries, dict):
        entries = {
            n: make_image_bytes((10 * (i + 1), 40)) for i, n in enumerate(entries)
        }
    p = Path(path) / name
    with zipfile.ZipFile(p, "w") as z:
        for entry, data in entries.items():
            z.writestr(entry, data)
    return p


def run_comicpdf(args, cwd=None, input_text: str = ""):
    """Run the CLI in a subprocess with `src` on PYTHONPATH."""
    env = os.environ.copy()
    env["PYTHONPATH"] = str(SRC_DIR) + os.pathsep + env.get("PYTHONPATH", "")
    cmd = [sys.executable, "-m", "comicpdf.cli"] + [str(a) for a in args]
    return subprocess.run(cmd, capture_output=True, text=True, input=input_text, cwd=cwd, env=env)
