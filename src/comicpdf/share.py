"""Send converted documents somewhere once a batch is done.

A share target gets the list of produced files and reports back with a
:class:`ShareResult`. It runs synchronously and never touches the process exit
status; the CLI decides what a failed share means.
"""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence

logger = logging.getLogger(__name__)


class ShareResult(NamedTuple):
    sent: List[Path]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _missing(paths: Sequence[Path]) -> List[Path]:
    return [p for p in paths if not p.is_file()]


class DirectoryShare:
    """Copy the files into a target directory (synced folder, mounted device...)."""

    def __init__(self, target_dir: Path):
        self.target_dir = Path(target_dir)

    def describe(self) -> str:
        return f"directory {self.target_dir}"

    def send(self, paths: Sequence[Path]) -> ShareResult:
        paths = [Path(p) for p in paths]
        missing = _missing(paths)
        if missing:
            return ShareResult([], f"missing files: {', '.join(str(p) for p in missing)}")
        if not self.target_dir.is_dir():
            return ShareResult([], f"share directory does not exist: {self.target_dir}")

        sent: List[Path] = []
        for p in paths:
            dest = self.target_dir / p.name
            try:
                shutil.copy2(p, dest)
            except OSError as e:
                return ShareResult(sent, f"cannot copy {p} -> {dest}: {e}")
            logger.debug(f"[share] copied {p} -> {dest}")
            sent.append(dest)
        return ShareResult(sent)


class CommandShare:
    """Run an external command with the file paths appended to its arguments.

    Example: ``CommandShare("upload-to-reader --device kobo")`` runs
    ``upload-to-reader --device kobo a.pdf b.pdf``.
    """

    def __init__(self, command: str, timeout: Optional[float] = None):
        self.argv = shlex.split(command)
        if not self.argv:
            raise ValueError("share command is empty")
        if timeout is not None and timeout <= 0:
            raise ValueError(f"share timeout must be > 0, got {timeout}")
        self.timeout = timeout

    def describe(self) -> str:
        return f"command {self.argv[0]}"

    def send(self, paths: Sequence[Path]) -> ShareResult:
        paths = [Path(p) for p in paths]
        missing = _missing(paths)
        if missing:
            return ShareResult([], f"missing files: {', '.join(str(p) for p in missing)}")

        cmd = self.argv + [str(p) for p in paths]
        logger.debug(f"[share] running: {' '.join(shlex.quote(c) for c in cmd)}")
        try:
            res = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError:
            return ShareResult([], f"share command not found: {self.argv[0]}")
        except subprocess.TimeoutExpired:
            return ShareResult([], f"share command timed out after {self.timeout}s")
        if res.returncode != 0:
            detail = (res.stderr or res.stdout).strip()
            msg = f"share command exited with code {res.returncode}"
            return ShareResult([], f"{msg}: {detail}" if detail else msg)
        return ShareResult(paths)
