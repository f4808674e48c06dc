from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .core import ORDER_LEXICOGRAPHIC, ORDERINGS

SCRATCH_UNIQUE = "unique"
SCRATCH_NAME = "name"
SCRATCH_NAMINGS = (SCRATCH_UNIQUE, SCRATCH_NAME)

DEFAULT_CONFIG_NAME = "comicpdf.yaml"

# Keys the CLI reads from the config file on top of the Config fields.
CLI_ONLY_KEYS = ("share_dir", "share_command", "share_timeout")


@dataclass
class Config:
    """Runtime configuration for a conversion batch.

    Attributes:
        output_dir: directory receiving the PDF files; the system temporary
            directory when None.
        scratch_root: parent of the per-archive scratch directories; the
            system temporary directory when None.
        scratch_naming: "unique" gives each conversion its own fresh scratch
            directory, "name" reuses `<scratch_root>/<base name>`.
        ordering: page ordering strategy, "lexicographic" or "natural".
        exclude: glob patterns of entries dropped before ordering.
        resolution: PDF resolution in dpi.
        nb_worker: number of archives converted in parallel.
    """

    output_dir: Optional[Path] = None
    scratch_root: Optional[Path] = None
    scratch_naming: str = SCRATCH_UNIQUE
    ordering: str = ORDER_LEXICOGRAPHIC
    exclude: Tuple[str, ...] = field(default_factory=tuple)
    resolution: float = 72.0
    nb_worker: int = 1

    def __post_init__(self):
        if self.output_dir is not None:
            self.output_dir = Path(self.output_dir).expanduser()
        if self.scratch_root is not None:
            self.scratch_root = Path(self.scratch_root).expanduser()
        if isinstance(self.exclude, str):
            self.exclude = (self.exclude,)
        self.exclude = tuple(self.exclude or ())

    @property
    def destination_dir(self) -> Path:
        return self.output_dir if self.output_dir is not None else Path(tempfile.gettempdir())

    @property
    def scratch_parent(self) -> Path:
        return self.scratch_root if self.scratch_root is not None else Path(tempfile.gettempdir())

    def validate(self) -> "Config":
        """Check option values, raising ValueError on the first bad one."""
        if self.ordering not in ORDERINGS:
            raise ValueError(
                f"unknown ordering {self.ordering!r} (expected one of: {', '.join(ORDERINGS)})"
            )
        if self.scratch_naming not in SCRATCH_NAMINGS:
            raise ValueError(
                f"unknown scratch naming {self.scratch_naming!r} "
                f"(expected one of: {', '.join(SCRATCH_NAMINGS)})"
            )
        if self.nb_worker < 1:
            raise ValueError(f"nb_worker must be >= 1, got {self.nb_worker}")
        if self.resolution <= 0:
            raise ValueError(f"resolution must be > 0, got {self.resolution}")
        return self

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Config":
        """Build a Config from a mapping, ignoring the CLI-only keys."""
        names = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in names}
        return cls(**kwargs).validate()


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML config file into a plain dict.

    With `path` None, `comicpdf.yaml` in the current directory is used when it
    exists; otherwise an empty dict is returned.

    Raises:
        ValueError: if the file cannot be read, is not valid YAML, its top
                    level is not a mapping, or it holds unknown keys. The
                    caller should treat this as a configuration error.
    """
    if path is None:
        if not os.path.exists(DEFAULT_CONFIG_NAME):
            return {}
        path = DEFAULT_CONFIG_NAME
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid config file ({path}): {e}")
    except OSError as e:
        raise ValueError(f"Invalid config file ({path}): {e.strerror or e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file ({path}): top-level YAML must be a mapping")
    known = {f.name for f in fields(Config)} | set(CLI_ONLY_KEYS)
    unknown = sorted(str(k) for k in data if k not in known)
    if unknown:
        raise ValueError(f"Invalid config file ({path}): unknown keys: {', '.join(unknown)}")
    return data
