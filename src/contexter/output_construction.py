from __future__ import annotations

import hashlib
import io
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from contexter.config import CATEGORY_ORDER, SECTION_TITLES, Category, FileRecord
from contexter.file_manipulation import make_rec
from contexter.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

BANNER = "=" * 40


class AggregatedDocument(BaseModel):
    """Result of one aggregation run."""

    content: str = Field("", description="Category-grouped document")
    files: list[str] = Field(default_factory=list, description="Included paths, in acceptance order")


def content_hash(text: str) -> str:
    """Return the SHA-256 hex digest used to spot duplicate contents.

    Args:
        text (str): decoded file content

    Returns:
        str: the hex digest
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def section_header(category: Category) -> str:
    """Banner that opens a category section."""
    return f"{BANNER}\nSection: {SECTION_TITLES[category]}\n{BANNER}\n"


def file_header(rec: FileRecord, *, include_metadata: bool) -> str:
    """Banner that precedes a file's content.

    Args:
        rec (FileRecord): the file being emitted
        include_metadata (bool): add size in bytes and the modification time,
            as whole seconds since the Unix epoch

    Returns:
        str: the header block, ending with a newline
    """
    out = io.StringIO()
    out.write(f"{BANNER}\n")
    out.write(f"File: {rec.rel}\n")
    if include_metadata:
        out.write(f"Size: {rec.size} bytes\n")
        out.write(f"Last Modified: {int(rec.mtime)}\n")
    out.write(f"{BANNER}\n")
    return out.getvalue()


def order_for_aggregation(files: Sequence[Path]) -> list[Path]:
    """Order files by their final path segment.

    The sort is stable, so files sharing a name keep their relative (discovery) order.
    """
    return sorted(files, key=lambda p: p.name)


def read_text(path: Path) -> str | None:
    """Read a file as UTF-8 text.

    Args:
        path (Path): the file to read

    Returns:
        str | None: the content, or None (after a warning) if the file vanished,
            is unreadable, or is not valid UTF-8
    """
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Skipping %s: %s", path, e)
        return None


def aggregate(
    files: Sequence[Path],
    *,
    include_metadata: bool = True,
    root: Path | None = None,
) -> AggregatedDocument:
    """Assemble files into one document grouped by category.

    Files are processed by file name. A file whose content was already emitted
    (same content hash, whatever its path) is skipped, so only the first file
    by name of a group of duplicates appears. Each emitted file gets a header
    and its content with trailing whitespace trimmed, and is routed to its
    category. Sections are then concatenated in `CATEGORY_ORDER`; empty
    categories get no section header.

    Args:
        files (Sequence[Path]): files to assemble, usually the output of `discover`
        include_metadata (bool): add size and modification time to file headers
        root (Path | None): when given, headers and the returned paths are relative to it

    Returns:
        AggregatedDocument: the document and the included paths, in acceptance order
    """
    seen: set[str] = set()
    included: list[str] = []
    buffers: dict[Category, io.StringIO] = {c: io.StringIO() for c in CATEGORY_ORDER}

    for path in order_for_aggregation(files):
        text = read_text(path)
        if text is None:
            continue
        digest = content_hash(text)
        if digest in seen:
            logger.debug("Skipping duplicate content %s", path)
            continue
        try:
            rec = make_rec(path, root)
        except OSError as e:
            logger.warning("Skipping %s: %s", path, e)
            continue
        seen.add(digest)

        buf = buffers[rec.category]
        buf.write(file_header(rec, include_metadata=include_metadata))
        buf.write(text.rstrip())
        buf.write("\n")
        included.append(rec.rel)

    out = io.StringIO()
    for category in CATEGORY_ORDER:
        body = buffers[category].getvalue()
        if body:
            out.write(section_header(category))
            out.write(body)

    logger.debug("Aggregated %d of %d files", len(included), len(files))
    return AggregatedDocument(content=out.getvalue(), files=included)
