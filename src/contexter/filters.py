"""Decide which filesystem entries are eligible for aggregation.

Three independent stages are combined here:

- `.gitignore` files found while walking, evaluated like git does: a file's
  patterns apply to the directory holding it and everything below, deeper
  files win, and `!pattern` re-includes.
- exclusion regular expressions (caller patterns plus `BUILTIN_EXCLUDES`),
  searched in the root-relative POSIX form of a path.
- binary sniffing: a known binary extension, or a NUL byte in the first
  `BINARY_SNIFF_BYTES` bytes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pathspec

from contexter.config import (
    BINARY_EXTENSIONS,
    BINARY_SNIFF_BYTES,
    BUILTIN_EXCLUDES,
    GITIGNORE_FILENAME,
    file_extension,
)
from contexter.exceptions import InvalidExcludePatternError
from contexter.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path


def compile_excludes(patterns: Iterable[str] = ()) -> list[re.Pattern[str]]:
    """Compile caller patterns followed by the built-in exclusions.

    Args:
        patterns (Iterable[str]): caller-supplied regular expressions

    Raises:
        InvalidExcludePatternError: on the first pattern that does not compile

    Returns:
        list[re.Pattern[str]]: the compiled patterns, caller patterns first
    """
    compiled: list[re.Pattern[str]] = []
    for pat in [*patterns, *BUILTIN_EXCLUDES]:
        try:
            compiled.append(re.compile(pat))
        except re.error as e:
            raise InvalidExcludePatternError(pattern=pat, reason=str(e)) from e
    return compiled


def is_excluded(rel: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    """Check if a root-relative path matches any exclusion pattern.

    Args:
        rel (str): the path relative to the discovery root, POSIX separators
        patterns (Sequence[re.Pattern[str]]): compiled exclusion patterns

    Returns:
        bool: True if any pattern matches somewhere in `rel`
    """
    return any(p.search(rel) for p in patterns)


def is_likely_binary(path: Path) -> bool:
    """Check whether a file is probably binary.

    Files with an extension from `BINARY_EXTENSIONS` are binary without being
    opened. Otherwise the first `BINARY_SNIFF_BYTES` bytes are read and the file
    is binary if one of them is zero.

    Args:
        path (Path): the file to check

    Raises:
        OSError: if the file has to be sniffed and cannot be read

    Returns:
        bool: True if the file should be treated as binary
    """
    if file_extension(path) in BINARY_EXTENSIONS:
        return True
    with path.open("rb") as f:
        chunk = f.read(BINARY_SNIFF_BYTES)
    return b"\x00" in chunk


@dataclass(frozen=True)
class GitignoreMatcher:
    """Patterns of a single `.gitignore`, scoped to the directory holding it.

    Attributes:
        base: directory of the `.gitignore`, relative to the walk root ("" for the root)
        spec: the compiled patterns, with git's last-match-wins rules
    """

    base: str
    spec: pathspec.GitIgnoreSpec

    @classmethod
    def from_file(cls, gitignore: Path, base: str) -> GitignoreMatcher | None:
        """Load a `.gitignore` file.

        Args:
            gitignore (Path): the `.gitignore` file to read
            base (str): its directory relative to the walk root

        Returns:
            GitignoreMatcher | None: the matcher, or None if the file is unreadable
                or holds no pattern
        """
        try:
            lines = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.warning("Could not read %s: %s", gitignore, e)
            return None
        spec = pathspec.GitIgnoreSpec.from_lines(lines)
        if not spec.patterns:
            return None
        return cls(base=base, spec=spec)

    def verdict(self, rel: str, *, is_dir: bool) -> bool | None:
        """Evaluate the patterns against a root-relative path.

        Args:
            rel (str): path relative to the walk root
            is_dir (bool): whether the path is a directory

        Returns:
            bool | None: True if ignored, False if re-included by a negation,
                None if no pattern of this file applies
        """
        local = rel[len(self.base) + 1 :] if self.base else rel
        if is_dir:
            local += "/"
        result = self.spec.check_file(local)
        return result.include


@dataclass(frozen=True)
class GitignoreStack:
    """The `.gitignore` matchers that apply to one directory, root first."""

    matchers: tuple[GitignoreMatcher, ...] = ()

    def push(self, directory: Path, base: str) -> GitignoreStack:
        """Return the stack for `directory`, adding its own `.gitignore` if any.

        Args:
            directory (Path): the directory being entered
            base (str): the directory relative to the walk root

        Returns:
            GitignoreStack: a new stack, or `self` when the directory holds no patterns
        """
        gitignore = directory / GITIGNORE_FILENAME
        if not gitignore.is_file():
            return self
        matcher = GitignoreMatcher.from_file(gitignore, base)
        if matcher is None:
            return self
        return GitignoreStack(matchers=(*self.matchers, matcher))

    def ignores(self, rel: str, *, is_dir: bool = False) -> bool:
        """Check if a path is ignored; the deepest matching `.gitignore` wins.

        Args:
            rel (str): path relative to the walk root
            is_dir (bool): whether the path is a directory

        Returns:
            bool: True if the path is ignored
        """
        for matcher in reversed(self.matchers):
            verdict = matcher.verdict(rel, is_dir=is_dir)
            if verdict is not None:
                return verdict
        return False


@dataclass(frozen=True)
class ExcludeFilter:
    """Exclusion patterns and binary sniffing for one discovery pass.

    Building the filter compiles every pattern, so an invalid pattern fails the
    whole pass before any file is touched.
    """

    user_patterns: tuple[str, ...] = ()
    compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False)
    builtin: tuple[re.Pattern[str], ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        compiled = compile_excludes(self.user_patterns)
        object.__setattr__(self, "compiled", tuple(compiled))
        object.__setattr__(self, "builtin", tuple(compiled[len(self.user_patterns) :]))

    def prunes_directory(self, rel: str) -> bool:
        """Check if a whole directory can be skipped.

        Only built-in patterns are used: they are unanchored, so a match on the
        directory is a match on every path below it.

        Args:
            rel (str): directory path relative to the walk root

        Returns:
            bool: True if nothing below the directory can be admitted
        """
        return is_excluded(rel, self.builtin)

    def admits(self, path: Path, rel: str) -> bool:
        """Check a regular file against the exclusion patterns and binary sniffing.

        Args:
            path (Path): the file on disk
            rel (str): the file path relative to the walk root

        Raises:
            OSError: if the file has to be sniffed and cannot be read

        Returns:
            bool: True if the file is eligible
        """
        if is_excluded(rel, self.compiled):
            return False
        return not is_likely_binary(path)
