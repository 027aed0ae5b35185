from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from contexter.config import FileRecord, file_extension
from contexter.filters import ExcludeFilter, GitignoreStack
from contexter.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_hidden(name: str) -> bool:
    """Check if a file or directory name is hidden (dot-prefixed)."""
    return name.startswith(".") and name not in {".", ".."}


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Normalize an extension allowlist.

    Entries are stripped, lowercased and accepted with or without a leading dot.

    Args:
        extensions (Iterable[str]): extensions such as "rs", ".py" or " Toml "

    Returns:
        frozenset[str]: the normalized extensions, without dots
    """
    out: set[str] = set()
    for ext in extensions:
        e = (ext or "").strip().lower().removeprefix(".")
        if e:
            out.add(e)
    return frozenset(out)


def matches_extensions(path: Path, allowed: frozenset[str]) -> bool:
    """Check a path against a normalized allowlist; an empty allowlist accepts all."""
    return not allowed or file_extension(path) in allowed


def _log_walk_error(err: OSError) -> None:
    logger.warning("Cannot read directory %s: %s", err.filename, err)


def _admit_file(
    path: Path,
    rel: str,
    exclude_filter: ExcludeFilter,
    allowed: frozenset[str],
) -> bool:
    """Run the per-file stages: regular file, exclusions and binary sniff, allowlist.

    I/O errors are logged and the file is rejected.
    """
    try:
        st = path.lstat()
    except OSError as e:
        logger.warning("Skipping %s: %s", path, e)
        return False
    if not stat.S_ISREG(st.st_mode):
        logger.debug("Skipping non-regular entry %s", path)
        return False
    try:
        if not exclude_filter.admits(path, rel):
            return False
    except OSError as e:
        logger.warning("Skipping %s: %s", path, e)
        return False
    return matches_extensions(path, allowed)


def _prunes_dir(
    name: str,
    rel: str,
    stack: GitignoreStack,
    exclude_filter: ExcludeFilter,
    *,
    include_hidden: bool,
) -> bool:
    """Check if a directory (and everything below it) is left out of the walk."""
    if not include_hidden and is_hidden(name):
        return True
    return exclude_filter.prunes_directory(rel) or stack.ignores(rel, is_dir=True)


def _skips_file(name: str, rel: str, stack: GitignoreStack, *, include_hidden: bool) -> bool:
    if not include_hidden and is_hidden(name):
        return True
    return stack.ignores(rel)


def scope_stack(
    root: Path,
    directory: Path,
    exclude_filter: ExcludeFilter,
    *,
    include_hidden: bool = False,
) -> GitignoreStack | None:
    """Replay the walk from `root` down to `directory`.

    Every directory on the way is checked like `walk_files` would check it, and
    its `.gitignore` is pushed on the stack.

    Args:
        root (Path): the walk root, where filtering starts
        directory (Path): a directory at or below `root`
        exclude_filter (ExcludeFilter): compiled exclusions for this pass
        include_hidden (bool): also accept dot-directories on the way

    Raises:
        ValueError: if `directory` is not below `root`

    Returns:
        GitignoreStack | None: the stack that applies inside `directory`, or None
            if a directory on the way is pruned
    """
    stack = GitignoreStack().push(root, "")
    current = root
    for part in directory.relative_to(root).parts:
        current = current / part
        rel = relpath(current, root)
        if _prunes_dir(part, rel, stack, exclude_filter, include_hidden=include_hidden):
            logger.debug("Pruning %s", rel)
            return None
        stack = stack.push(current, rel)
    return stack


def walk_files(
    root: Path,
    exclude_filter: ExcludeFilter,
    allowed: frozenset[str] = frozenset(),
    *,
    include_hidden: bool = False,
    start: Path | None = None,
) -> list[Path]:
    """Walk the directory tree rooted at `root` and return the eligible files.

    Directories are pruned when hidden (unless `include_hidden`), ignored by the
    `.gitignore` files met on the way down, or matched by a built-in exclusion.
    Symlinks are never followed.

    Args:
        root (Path): the root directory; filtering is relative to it
        exclude_filter (ExcludeFilter): compiled exclusions for this pass
        allowed (frozenset[str]): normalized extension allowlist (empty accepts all)
        include_hidden (bool): also visit dot-files and dot-directories
        start (Path | None): walk only this directory below `root`; the
            `.gitignore` files and prune rules between `root` and `start` still apply

    Returns:
        list[Path]: the eligible files, in walk order
    """
    base = start if start is not None else root
    seed = scope_stack(root, base, exclude_filter, include_hidden=include_hidden)
    if seed is None:
        return []

    results: list[Path] = []
    stacks: dict[Path, GitignoreStack] = {base: seed}
    for dirpath, dirs, files in os.walk(base, onerror=_log_walk_error):
        current = Path(dirpath)
        stack = stacks.pop(current, GitignoreStack())

        kept: list[str] = []
        for d in dirs:
            child = current / d
            rel = relpath(child, root)
            if _prunes_dir(d, rel, stack, exclude_filter, include_hidden=include_hidden):
                logger.debug("Pruning %s", rel)
                continue
            kept.append(d)
            stacks[child] = stack.push(child, rel)
        dirs[:] = kept

        for f in files:
            p = current / f
            rel = relpath(p, root)
            if _skips_file(f, rel, stack, include_hidden=include_hidden):
                continue
            if _admit_file(p, rel, exclude_filter, allowed):
                results.append(p)
    return results


def discover(
    root_dir: str | Path,
    extensions: Iterable[str] = (),
    excludes: Iterable[str] = (),
    *,
    include_hidden: bool = False,
    within: str | Path | None = None,
) -> list[Path]:
    """Collect the files eligible for aggregation under `root_dir`.

    Exclusion patterns are compiled before anything is read, so an invalid
    pattern aborts the call. Per-entry I/O errors are logged and skipped. A root
    that does not exist yields an empty list; a root that is a regular file is
    checked on its own.

    With `within`, only that directory or file is collected, but it is filtered
    exactly as a walk from `root_dir` would filter it: `.gitignore` files of
    its ancestors apply, and so do hidden and built-in rules on the way down.

    Args:
        root_dir (str | Path): directory (or single file) to collect from
        extensions (Iterable[str]): extension allowlist; empty accepts every extension
        excludes (Iterable[str]): regular expressions searched in root-relative paths,
            on top of the built-in exclusions
        include_hidden (bool): also collect dot-files and dot-directories
        within (str | Path | None): a directory or file at or below `root_dir`

    Raises:
        InvalidExcludePatternError: if one of `excludes` is not a valid regular expression
        ValueError: if `within` is not below `root_dir`

    Returns:
        list[Path]: the eligible files, sorted by path
    """
    exclude_filter = ExcludeFilter(user_patterns=tuple(excludes))
    allowed = normalize_extensions(extensions)
    root = Path(root_dir)
    target = Path(within) if within is not None else root

    if not target.exists():
        logger.info("Discovery root %s does not exist", target)
        return []
    if target == root and root.is_file():
        files = [root] if _admit_file(root, root.name, exclude_filter, allowed) else []
    elif target.is_file():
        files = []
        stack = scope_stack(root, target.parent, exclude_filter, include_hidden=include_hidden)
        rel = relpath(target, root)
        if (
            stack is not None
            and not _skips_file(target.name, rel, stack, include_hidden=include_hidden)
            and _admit_file(target, rel, exclude_filter, allowed)
        ):
            files = [target]
    else:
        files = walk_files(root, exclude_filter, allowed, include_hidden=include_hidden, start=target)

    logger.debug("Discovered %d files under %s", len(files), target)
    return sorted(files)


def make_rec(path: Path, root: Path | None = None) -> FileRecord:
    """Stat a file and build its FileRecord.

    Args:
        path (Path): the file to describe
        root (Path | None): root used for the `rel` field; the path itself when None

    Raises:
        OSError: if the file cannot be stat'ed

    Returns:
        FileRecord: metadata for the file
    """
    st = path.stat()
    rel = relpath(path, root) if root is not None else path.as_posix()
    return FileRecord(path=path, rel=rel, size=st.st_size, mtime=st.st_mtime)


def relative_listing(files: Sequence[Path], root: Path) -> list[str]:
    """Express discovered files relative to `root`, keeping their order."""
    return [relpath(f, root) for f in files]
