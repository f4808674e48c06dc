"""CLI layer: argument parsing, validation, and top-level orchestration."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .config import SCRATCH_NAMINGS, Config, load_config_file
from .core import ORDERINGS
from .share import CommandShare, DirectoryShare
from .types_ import Archive
from .worker import convert_batch

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = ".cbz"

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_SHARE_FAILED = 3


def setup_logging(verbose: bool = False, loglevel: Optional[str] = None):
    """Configure root logger with a compact formatter and emoji prefixes.

    - verbose -> DEBUG level, otherwise INFO
    - loglevel: explicit string level to override verbose (e.g. DEBUG|INFO|WARNING|ERROR)

    Colors are only used when stderr is a terminal.
    """
    root = logging.getLogger()
    root.handlers.clear()

    if loglevel:
        lvl = loglevel.upper()
        if lvl == 'WARN':
            lvl = 'WARNING'
        level = getattr(logging, lvl, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    use_color = hasattr(handler.stream, "isatty") and handler.stream.isatty()
    handler.setFormatter(ColorFormatter(use_color))
    root.setLevel(level)
    root.addHandler(handler)


class ColorFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\x1b[34m',    # blue
        'INFO': '\x1b[32m',     # green
        'WARNING': '\x1b[33m',  # yellow
        'ERROR': '\x1b[31m',    # red
        'CRITICAL': '\x1b[31;1m',
    }
    EMOJI = {
        'DEBUG': '🔧',
        'INFO': '✅',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '💥',
    }
    RESET = '\x1b[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        emoji = self.EMOJI.get(level, '')
        if self.use_color:
            color = self.COLORS.get(level, '')
            prefix = f"{color}{emoji} {level}:{self.RESET}"
        else:
            prefix = f"{emoji} {level}:"
        formatted = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            formatted = f"{formatted}\n{self.formatException(record.exc_info)}"
        return formatted


def validate_files(files: List[Path]) -> Optional[str]:
    """Return an error message for the first invalid input file, or None."""
    if not files:
        return "You have to pass at least one file to convert."
    if any(f.is_dir() for f in files):
        return "You can't convert a directory. Specify the files paths."
    if any(f.suffix.lower() != ARCHIVE_EXTENSION for f in files):
        return f"The tool accepts {ARCHIVE_EXTENSION} archives only."
    if any(not f.exists() for f in files):
        return "At least one file you passed doesn't exist."
    if any(not os.access(f, os.R_OK) for f in files):
        return "No read access to files."
    return None


def validate_output_dir(output_dir: Optional[Path], sharing: bool) -> Optional[str]:
    """Return an error message when the output destination is unusable."""
    if output_dir is None:
        if not sharing:
            return "You have to enable sharing or specify an output directory."
        return None
    if not output_dir.is_dir() or not os.access(output_dir, os.W_OK):
        return "The directory you passed isn't a valid output destination."
    return None


def ask_confirmation(read: Callable[[str], str] = input) -> bool:
    """Ask the user whether to proceed; loops until a yes/no answer.

    End of input counts as "no".
    """
    prompt = "Are you sure you want to proceed? [y/n] "
    while True:
        try:
            answer = read(prompt).strip().lower()
        except EOFError:
            return False
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        prompt = "Invalid input. Type [y/n]: "


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Convert .cbz comic archives into PDF documents")
    p.add_argument('files', nargs='*', type=Path,
                   help=f'comic archives to convert (allowed format: {ARCHIVE_EXTENSION})')
    p.add_argument('--output-directory', '-o', type=Path, default=None,
                   help='directory in which to save the converted files')
    p.add_argument('--share-dir', type=Path, default=None,
                   help='copy converted files into this directory once the batch is done')
    p.add_argument('--share-command', type=str, default=None,
                   help='run this command with the converted file paths appended')
    p.add_argument('--share-timeout', type=float, default=None,
                   help='seconds to wait for --share-command before giving up (default: no limit)')
    p.add_argument('--ordering', choices=sorted(ORDERINGS), default=None,
                   help='page ordering: "lexicographic" (default, 1,10,2) or "natural" (1,2,10)')
    p.add_argument('--exclude', action='append', default=None, metavar='PATTERN',
                   help='glob of archive entries to skip, e.g. "ComicInfo.xml" (repeatable)')
    p.add_argument('--scratch-root', type=Path, default=None,
                   help='parent directory for extracted pages (defaults to the system temp dir)')
    p.add_argument('--scratch-naming', choices=SCRATCH_NAMINGS, default=None,
                   help='"unique" scratch dir per conversion (default) or "name" (<root>/<archive name>)')
    p.add_argument('--resolution', type=float, default=None,
                   help='PDF resolution in dpi (default 72)')
    p.add_argument('--nb-worker', '-w', type=int, default=None,
                   help='number of archives converted in parallel (default 1)')
    p.add_argument('--config', type=str, default=None,
                   help='YAML config file (defaults to ./comicpdf.yaml when present)')
    p.add_argument('--yes', '-y', action='store_true', help='do not ask for confirmation')
    p.add_argument('--dry-run', action='store_true',
                   help="don't convert anything; just show what would be done")
    p.add_argument('--verbose', action='store_true', help='verbose logging')
    p.add_argument('--verbose-prints', action='store_true',
                   help='show information that does not interest everyone')
    p.add_argument('--loglevel', '-l', type=str, default=None,
                   choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL', 'WARN'],
                   help='explicit log level (overrides --verbose)')
    return p


def _merge_options(args: argparse.Namespace, file_config: dict) -> dict:
    """CLI values win over config-file values, which win over defaults."""
    merged = dict(file_config)
    overrides = {
        'output_dir': args.output_directory,
        'scratch_root': args.scratch_root,
        'scratch_naming': args.scratch_naming,
        'ordering': args.ordering,
        'exclude': args.exclude,
        'resolution': args.resolution,
        'nb_worker': args.nb_worker,
        'share_dir': args.share_dir,
        'share_command': args.share_command,
        'share_timeout': args.share_timeout,
    }
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def main(argv=None) -> int:
    """Command-line entry point for the `comicpdf` tool.

    Validates the input archives, converts them one by one into PDF
    documents, then optionally hands the produced files to a share target.

    Returns:
        int: exit code. 0 when the batch ran (even if every archive failed),
        2 on invalid arguments or configuration, 3 when sharing failed.
    """
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose, loglevel=args.loglevel)

    try:
        options = _merge_options(args, load_config_file(args.config))
        cfg = Config.from_mapping(options)
    except (ValueError, TypeError) as e:
        logger.error(str(e))
        return EXIT_USAGE

    share_dir = options.get('share_dir')
    share_command = options.get('share_command')
    sharers = []
    try:
        if share_dir:
            sharers.append(DirectoryShare(Path(share_dir).expanduser()))
        if share_command:
            timeout = options.get('share_timeout')
            sharers.append(CommandShare(
                str(share_command),
                timeout=float(timeout) if timeout is not None else None,
            ))
    except ValueError as e:
        logger.error(str(e))
        return EXIT_USAGE

    files = [Path(f) for f in args.files]
    err = validate_files(files) or validate_output_dir(cfg.output_dir, bool(sharers))
    if err:
        logger.error(err)
        return EXIT_USAGE

    archives = [Archive(f) for f in files]
    logger.info(f"You passed {len(archives)} comic(s) to convert!")
    for a in archives:
        logger.info(f"- {a.base_name}")

    if args.dry_run:
        for a in archives:
            logger.info(f"[dry-run] {a.source} -> {cfg.destination_dir / a.output_name}")
        return EXIT_OK

    if not args.yes and not ask_confirmation():
        logger.info("Aborted, nothing converted.")
        return EXIT_OK

    logger.info("Starting conversion...")
    result = convert_batch(archives, cfg)

    for failed in result.failures:
        logger.debug(f"failed: {failed.archive_name} [{failed.stage}] {failed.reason}")

    if result.all_failed:
        logger.warning("None of your files passed the conversion.")
        return EXIT_OK

    logger.info(f"{len(result.outputs)}/{len(archives)} comic(s) converted.")
    if cfg.output_dir is not None:
        logger.info(f"You can find your converted files in: {cfg.output_dir}")

    rc = EXIT_OK
    for sharer in sharers:
        logger.info(f"Sending {len(result.outputs)} comic(s) to {sharer.describe()}...")
        shared = sharer.send(result.outputs)
        if shared.ok:
            logger.info("Files were sent successfully!")
        else:
            logger.error(f"Sharing failed: {shared.error}")
            rc = EXIT_SHARE_FAILED

    if args.verbose_prints and cfg.output_dir is None:
        logger.info(f"Converted files live in {cfg.destination_dir} and may be removed by the OS later.")
    return rc


if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
