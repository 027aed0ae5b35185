from __future__ import annotations

import warnings
from pathlib import Path

import pytest

from contexter.config import BUILTIN_EXCLUDES
from contexter.exceptions import InvalidExcludePatternError
from contexter.filters import (
    ExcludeFilter,
    GitignoreStack,
    compile_excludes,
    is_excluded,
    is_likely_binary,
)


@pytest.mark.unit
def test_compile_excludes_puts_caller_patterns_first() -> None:
    compiled = compile_excludes([r"fixtures/"])

    assert compiled[0].pattern == r"fixtures/"
    assert len(compiled) == len(BUILTIN_EXCLUDES) + 1


@pytest.mark.unit
def test_compile_excludes_rejects_invalid_pattern() -> None:
    with pytest.raises(InvalidExcludePatternError) as exc_info:
        compile_excludes(["("])

    assert exc_info.value.pattern == "("
    assert "Invalid exclude pattern" in str(exc_info.value)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("rel", "expected"),
    [
        ("node_modules/x/index.js", True),
        ("src/.git/config", True),
        ("Cargo.lock", True),
        ("web/package-lock.json", True),
        ("target/debug/app.d", True),
        ("src/main.rs", False),
        ("README.md", False),
    ],
)
def test_is_excluded_matches_builtins_anywhere(rel: str, expected: bool) -> None:  # noqa: FBT001
    assert is_excluded(rel, compile_excludes()) is expected


@pytest.mark.unit
def test_is_likely_binary_by_extension_does_not_open_file(tmp_path: Path) -> None:
    missing = tmp_path / "logo.PNG"

    assert is_likely_binary(missing) is True


@pytest.mark.unit
def test_is_likely_binary_sniffs_nul_byte(tmp_path: Path) -> None:
    blob = tmp_path / "blob.dat"
    blob.write_bytes(b"abc\x00def")
    text = tmp_path / "notes.dat"
    text.write_bytes(b"plain text")

    assert is_likely_binary(blob) is True
    assert is_likely_binary(text) is False


@pytest.mark.unit
def test_is_likely_binary_only_sniffs_first_kilobyte(tmp_path: Path) -> None:
    late = tmp_path / "late.dat"
    late.write_bytes(b"a" * 2048 + b"\x00")

    assert is_likely_binary(late) is False


@pytest.mark.unit
def test_exclude_filter_prunes_only_on_builtin_patterns() -> None:
    f = ExcludeFilter(user_patterns=("docs",))

    assert f.prunes_directory("node_modules")
    assert not f.prunes_directory("docs")


@pytest.mark.unit
def test_exclude_filter_admits_applies_user_patterns(tmp_path: Path) -> None:
    f = ExcludeFilter(user_patterns=(r"\.snap$",))
    snap = tmp_path / "a.snap"
    snap.write_text("x", encoding="utf-8")
    keep = tmp_path / "a.rs"
    keep.write_text("fn main() {}", encoding="utf-8")

    assert not f.admits(snap, "a.snap")
    assert f.admits(keep, "a.rs")


@pytest.mark.unit
def test_gitignore_stack_negation_and_nesting(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("*.log\n!keep.log\n", encoding="utf-8")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / ".gitignore").write_text("keep.log\n", encoding="utf-8")

    root_stack = GitignoreStack().push(tmp_path, "")
    sub_stack = root_stack.push(sub, "sub")

    assert root_stack.ignores("debug.log")
    assert not root_stack.ignores("keep.log")
    assert not root_stack.ignores("main.rs")
    assert sub_stack.ignores("sub/keep.log")
    assert sub_stack.ignores("sub/other.log")


@pytest.mark.unit
def test_gitignore_stack_directory_patterns(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("generated/\n", encoding="utf-8")

    stack = GitignoreStack().push(tmp_path, "")

    assert stack.ignores("generated", is_dir=True)
    assert not stack.ignores("generated", is_dir=False)


@pytest.mark.unit
def test_gitignore_stack_without_file_is_unchanged(tmp_path: Path) -> None:
    stack = GitignoreStack()

    assert stack.push(tmp_path, "") is stack


@pytest.mark.unit
def test_gitignore_loading_emits_no_deprecation_warning(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("*.log\n!keep.log\n", encoding="utf-8")

    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        stack = GitignoreStack().push(tmp_path, "")
        ignored = stack.ignores("debug.log")

    assert ignored
    assert not stack.ignores("keep.log")
