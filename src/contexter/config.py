from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Category(StrEnum):
    """Bucket a file is grouped under in the aggregated document.

    The declaration order is the order sections appear in the output.
    """

    CONFIGURATION = auto()
    DOCUMENTATION = auto()
    SOURCE = auto()
    TEST = auto()


CATEGORY_ORDER: tuple[Category, ...] = tuple(Category)

SECTION_TITLES: dict[Category, str] = {
    Category.CONFIGURATION: "Configuration Files",
    Category.DOCUMENTATION: "Documentation",
    Category.SOURCE: "Source Files",
    Category.TEST: "Tests",
}

EXT2CATEGORY: dict[str, Category] = {
    "json": Category.CONFIGURATION,
    "md": Category.DOCUMENTATION,
    "py": Category.SOURCE,
    "rs": Category.SOURCE,
    "toml": Category.CONFIGURATION,
    "txt": Category.DOCUMENTATION,
    "yaml": Category.CONFIGURATION,
    "yml": Category.CONFIGURATION,
}

# Regular expressions, matched anywhere in a root-relative path.
BUILTIN_EXCLUDES: tuple[str, ...] = (
    r"\.git",
    r"\.svn",
    r"\.hg",
    r"\.DS_Store",
    r"node_modules",
    r"target",
    r"build",
    r"dist",
    r"\.vscode",
    r"\.idea",
    r"\.vs",
    r"package-lock\.json",
    r"\.lock",
)

BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        # executables, libraries, objects
        "a",
        "bin",
        "class",
        "dll",
        "dylib",
        "exe",
        "jar",
        "lib",
        "o",
        "obj",
        "pyc",
        "pyd",
        "pyo",
        "so",
        "wasm",
        # images
        "bmp",
        "gif",
        "ico",
        "jpeg",
        "jpg",
        "png",
        "tif",
        "tiff",
        "webp",
        # audio / video
        "avi",
        "flac",
        "flv",
        "mov",
        "mp3",
        "mp4",
        "ogg",
        "wav",
        "wmv",
        # archives
        "7z",
        "bz2",
        "gz",
        "rar",
        "tar",
        "xz",
        "zip",
        # documents
        "doc",
        "docx",
        "pdf",
        "ppt",
        "pptx",
        "xls",
        "xlsx",
    },
)

BINARY_SNIFF_BYTES = 1024

GITIGNORE_FILENAME = ".gitignore"


def file_extension(path: Path) -> str:
    """Return the lowercase extension of `path` without its leading dot.

    Args:
        path (Path): the file path to inspect

    Returns:
        str: the extension (e.g. "json"), or "" when the name has none
    """
    return path.suffix.lower().removeprefix(".")


def categorize(path: Path) -> Category:
    """Classify a file by its extension.

    Known extensions come from `EXT2CATEGORY`; an unknown extension that contains
    "test" is a test file, everything else is source.

    Args:
        path (Path): the file path to classify

    Returns:
        Category: the section the file belongs to
    """
    ext = file_extension(path)
    if ext in EXT2CATEGORY:
        return EXT2CATEGORY[ext]
    if "test" in ext:
        return Category.TEST
    return Category.SOURCE


class FileRecord(BaseModel):
    """Lightweight metadata for a file picked up by discovery.

    Attributes:
        path: Path to the file on disk, as discovered.
        rel: Path relative to the discovery root, with POSIX separators.
        size: File size in bytes.
        mtime: POSIX mtime (float seconds since epoch).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="File path as discovered")
    rel: str = Field(..., description="File path relative to the discovery root")
    size: int = Field(..., ge=0, description="File size in bytes")
    mtime: float = Field(..., description="POSIX modification time (seconds)")

    @computed_field
    @property
    def extension(self) -> str:
        """Lowercase extension without the leading dot."""
        return file_extension(self.path)

    @computed_field
    @property
    def category(self) -> Category:
        """Section of the aggregated document this file is routed to."""
        return categorize(self.path)
