"""Worker primitives: per-stage conversion steps and batch orchestration."""

from __future__ import annotations

import concurrent.futures
import logging
import os
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path
from typing import Iterable, List, Optional, Union

from PIL import Image, UnidentifiedImageError

from .config import SCRATCH_NAME, SCRATCH_UNIQUE, Config
from .core import filter_entries, has_duplicate_names, is_unsafe_member, sort_entries
from .errors import (
    ConversionError,
    EmptyArchiveError,
    ExtractionError,
    UnsupportedImageError,
    WriteError,
)
from .types_ import (
    Archive,
    AssembledDocument,
    BatchResult,
    ConversionOutcome,
    Converted,
    Failed,
    PageSequence,
    ScratchSet,
)

logger = logging.getLogger(__name__)


def allocate_scratch(archive: Archive, cfg: Config) -> Path:
    """Create an empty scratch directory for `archive` and return its path.

    With the "unique" policy every call returns a brand new directory
    (`<root>/<base name>-XXXXXXXX`). With the "name" policy the directory is
    always `<root>/<base name>` and a leftover from an earlier run is removed
    first.
    """
    root = cfg.scratch_parent
    root.mkdir(parents=True, exist_ok=True)
    if cfg.scratch_naming == SCRATCH_NAME:
        scratch = root / archive.base_name
        if scratch.exists():
            logger.debug(f"[worker] removing stale scratch dir: {scratch}")
            if scratch.is_dir():
                shutil.rmtree(scratch)
            else:
                scratch.unlink()
        scratch.mkdir()
        return scratch
    return Path(tempfile.mkdtemp(prefix=f"{archive.base_name}-", dir=root))


def extract_archive(archive: Archive, cfg: Config) -> ScratchSet:
    """Decompress `archive` into its own scratch directory.

    Raises:
        ExtractionError: the archive is missing, not a zip, uses an
            unsupported compression, holds an unsafe member path, or any I/O
            error happens while extracting. A partially extracted scratch
            directory is left where it is.
    """
    name = archive.base_name
    try:
        with zipfile.ZipFile(archive.source, "r") as z:
            for member in z.namelist():
                if is_unsafe_member(member):
                    raise ExtractionError(name, f"Unsafe path in archive: {member}")
            scratch = allocate_scratch(archive, cfg)
            logger.debug(f"[worker] extracting {archive.source} -> {scratch}")
            z.extractall(scratch)
        entries = os.listdir(scratch)
    except ExtractionError:
        raise
    except zipfile.BadZipFile as e:
        raise ExtractionError(name, f"Bad zip file: {archive.source}") from e
    except (zipfile.LargeZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as e:
        raise ExtractionError(name, f"cannot decompress {archive.source}: {e}") from e
    except OSError as e:
        raise ExtractionError(name, f"extraction of {archive.source} failed: {e}") from e

    logger.debug(f"[worker] extracted {len(entries)} entries into {scratch}")
    return ScratchSet(directory=scratch, entries=entries)


def order_pages(archive: Archive, entries: Iterable[str], cfg: Config) -> PageSequence:
    """Turn the extracted entry names into a non-empty page sequence.

    Raises:
        EmptyArchiveError: nothing is left once `cfg.exclude` is applied.
    """
    kept = filter_entries(entries, cfg.exclude)
    if not kept:
        raise EmptyArchiveError(archive.base_name, "archive contains no pages")
    pages = tuple(sort_entries(kept, cfg.ordering))
    logger.debug(f"[worker] page order ({cfg.ordering}): {', '.join(pages)}")
    return pages


def _decode_page(path: Path) -> Image.Image:
    img = Image.open(path)
    try:
        img.load()
        if img.mode in ("RGB", "L"):
            return img
        converted = img.convert("RGB")
    except Exception:
        img.close()
        raise
    img.close()
    return converted


def assemble_document(
    archive: Archive, scratch: ScratchSet, pages: PageSequence
) -> AssembledDocument:
    """Decode every page in order and collect them into one document.

    Raises:
        UnsupportedImageError: on the first entry that is not a decodable
            image. Pages decoded so far are released; no document is
            returned.
    """
    doc = AssembledDocument()
    for index, entry in enumerate(pages):
        path = scratch.directory / entry
        try:
            page = _decode_page(path)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            doc.close()
            raise UnsupportedImageError(
                archive.base_name, f"cannot decode {entry} as an image: {e}", entry=entry
            ) from e
        doc.insert(index, entry, page)
        logger.debug(f"[worker] page {index + 1}/{len(pages)}: {entry} {page.size}")
    return doc


def write_document(document: AssembledDocument, archive: Archive, cfg: Config) -> Path:
    """Write `document` to `<destination dir>/<base name>.pdf`.

    The document is fully serialized in memory before the destination is
    touched; any existing file at that path is then removed and the bytes
    are written with a single call.

    Raises:
        WriteError: on a serialization or I/O failure. The scratch directory
            is left alone, and an existing output survives a failed
            serialization.
    """
    dest = cfg.destination_dir / archive.output_name
    name = archive.base_name
    try:
        data = document.to_bytes(cfg.resolution)
    except (OSError, ValueError) as e:
        raise WriteError(name, f"cannot serialize {dest.name}: {e}") from e

    try:
        if dest.exists() or dest.is_symlink():
            logger.debug(f"[worker] removing existing output: {dest}")
            dest.unlink()
    except OSError as e:
        raise WriteError(name, f"cannot replace {dest}: {e}") from e

    try:
        dest.write_bytes(data)
    except OSError as e:
        try:
            if dest.exists():
                dest.unlink()
        except OSError:
            logger.debug(f"[worker] could not remove partial output {dest}")
        raise WriteError(name, f"cannot write {dest}: {e}") from e
    logger.debug(f"[worker] wrote {len(data)} bytes to {dest}")
    return dest


def clean_scratch(scratch: ScratchSet) -> bool:
    """Remove the scratch directory; failure is only reported, never raised."""
    try:
        shutil.rmtree(scratch.directory)
    except OSError as e:
        logger.warning(f"could not remove scratch dir {scratch.directory}: {e}")
        return False
    logger.debug(f"[worker] removed scratch dir {scratch.directory}")
    return True


def convert_one(archive: Union[Archive, str, Path], cfg: Config) -> ConversionOutcome:
    """Convert one archive into a PDF document.

    Runs extract -> order -> assemble -> write -> clean. The first failing
    stage ends the conversion; its error becomes a ``Failed`` outcome instead
    of propagating, so the caller can carry on with the next archive.

    Args:
        archive: the archive, or its path.
        cfg: runtime Config.

    Returns:
        Converted(archive_name, output_path, page_count, scratch_removed) or
        Failed(archive_name, reason, stage).
    """
    if not isinstance(archive, Archive):
        archive = Archive(Path(archive))
    name = archive.base_name
    logger.debug(f"[worker] start archive={archive.source}")

    document: Optional[AssembledDocument] = None
    try:
        scratch = extract_archive(archive, cfg)
        pages = order_pages(archive, scratch.entries, cfg)
        document = assemble_document(archive, scratch, pages)
        output = write_document(document, archive, cfg)
    except ConversionError as e:
        logger.error(f"conversion of {name} failed ({e.stage}): {e}")
        return Failed(archive_name=name, reason=str(e), stage=e.stage)
    except Exception as e:
        logger.exception(f"conversion of {name} failed unexpectedly")
        return Failed(archive_name=name, reason=f"unexpected error: {e}", stage="internal")
    finally:
        if document is not None:
            document.close()

    removed = clean_scratch(scratch)
    logger.info(f"{name} converted! ({document.page_count} pages)")
    return Converted(
        archive_name=name,
        output_path=output,
        page_count=document.page_count,
        scratch_removed=removed,
    )


def _can_run_parallel(archives: List[Archive], cfg: Config) -> bool:
    if cfg.nb_worker <= 1 or len(archives) <= 1:
        return False
    if cfg.scratch_naming != SCRATCH_UNIQUE:
        logger.warning("parallel conversion needs unique scratch naming; running sequentially")
        return False
    if has_duplicate_names(a.base_name for a in archives):
        logger.warning("archives share a base name; running sequentially")
        return False
    return True


def convert_batch(archives: Iterable[Union[Archive, str, Path]], cfg: Config) -> BatchResult:
    """Convert every archive and return the outcomes in input order.

    A failing archive never stops the batch. With `cfg.nb_worker > 1` and
    unique scratch naming, archives run on a thread pool; outcomes are still
    collected in submission order.
    """
    items = [a if isinstance(a, Archive) else Archive(Path(a)) for a in archives]
    logger.debug(f"[info] converting {len(items)} archive(s)")

    if _can_run_parallel(items, cfg):
        logger.debug(f"[info] Using ThreadPoolExecutor with {cfg.nb_worker} workers")
        with concurrent.futures.ThreadPoolExecutor(max_workers=cfg.nb_worker) as ex:
            futures = [ex.submit(convert_one, a, cfg) for a in items]
            outcomes = [fut.result() for fut in futures]
    else:
        outcomes = []
        for a in items:
            logger.debug(f"[info] processing archive {a.base_name}")
            outcomes.append(convert_one(a, cfg))

    result = BatchResult(outcomes=outcomes)
    logger.debug(
        f"[info] batch done: {len(result.outputs)} converted, {len(result.failures)} failed"
    )
    return result
