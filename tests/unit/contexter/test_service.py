from __future__ import annotations

from pathlib import Path

import pytest

from contexter.exceptions import (
    InvalidRequestError,
    PathOutsideProjectError,
    ProjectNotFoundError,
    UnauthorizedError,
)
from contexter.registry import Registry
from contexter.service import ContextService, resolve_within_root


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "src" / "main.rs").write_text("fn main() {}\n", encoding="utf-8")
    (root / "docs" / "guide.md").write_text("# Guide\n", encoding="utf-8")
    (root / "Cargo.toml").write_text("[package]\n", encoding="utf-8")
    return root


@pytest.fixture
def registry(tmp_path: Path, project: Path) -> Registry:
    reg = Registry.load(tmp_path / "config.json")
    reg.add_project("proj", project)
    return reg


@pytest.fixture
def key(registry: Registry) -> str:
    return registry.generate_credential("tests")


@pytest.mark.unit
def test_resolve_within_root_accepts_nested_path(project: Path) -> None:
    assert resolve_within_root(project, "src/../src") == (project / "src").resolve()


@pytest.mark.unit
@pytest.mark.parametrize("sub_path", ["../", "src/../../..", "/etc", "C:\\Windows"])
def test_resolve_within_root_rejects_escapes(project: Path, sub_path: str) -> None:
    with pytest.raises(PathOutsideProjectError):
        resolve_within_root(project, sub_path)


@pytest.mark.unit
def test_resolve_within_root_rejects_blank(project: Path) -> None:
    with pytest.raises(InvalidRequestError):
        resolve_within_root(project, "   ")


@pytest.mark.unit
def test_unauthorized_comes_before_not_found(registry: Registry, key: str) -> None:
    service = ContextService(registry)

    with pytest.raises(UnauthorizedError):
        service.run_aggregation("wrong", "does-not-exist")
    with pytest.raises(ProjectNotFoundError):
        service.run_aggregation(key, "does-not-exist")


@pytest.mark.unit
def test_no_credentials_means_unauthorized(tmp_path: Path, project: Path) -> None:
    reg = Registry.load(tmp_path / "empty.json")
    reg.add_project("proj", project)
    service = ContextService(reg)

    with pytest.raises(UnauthorizedError):
        service.run_aggregation("", "proj")


@pytest.mark.unit
def test_list_projects_sorted(registry: Registry, key: str, tmp_path: Path) -> None:
    registry.add_project("alpha", tmp_path)
    service = ContextService(registry)

    names = [p.name for p in service.list_projects(key)]

    assert names == ["alpha", "proj"]


@pytest.mark.unit
def test_get_project_metadata_lists_relative_files(registry: Registry, key: str, project: Path) -> None:
    meta = ContextService(registry).get_project_metadata(key, "proj")

    assert meta.path == str(project.resolve())
    assert meta.files == ["Cargo.toml", "docs/guide.md", "src/main.rs"]


@pytest.mark.unit
def test_run_aggregation_whole_project(registry: Registry, key: str) -> None:
    content = ContextService(registry).run_aggregation(key, "proj").content

    assert "File: Cargo.toml" in content
    assert "File: docs/guide.md" in content
    assert "File: src/main.rs" in content
    assert "Size: " in content


@pytest.mark.unit
def test_run_aggregation_sub_paths_only(registry: Registry, key: str) -> None:
    content = ContextService(registry).run_aggregation(key, "proj", ["src"], include_metadata=False).content

    assert "File: src/main.rs" in content
    assert "guide.md" not in content
    assert "Size: " not in content


@pytest.mark.unit
def test_run_aggregation_overlapping_paths_are_merged(registry: Registry, key: str) -> None:
    content = ContextService(registry).run_aggregation(key, "proj", ["src", "src/main.rs"]).content

    assert content.count("File: src/main.rs") == 1


@pytest.mark.unit
def test_run_aggregation_rejects_empty_paths(registry: Registry, key: str) -> None:
    with pytest.raises(InvalidRequestError):
        ContextService(registry).run_aggregation(key, "proj", [])


@pytest.mark.unit
def test_run_aggregation_rejects_escaping_path(registry: Registry, key: str) -> None:
    with pytest.raises(PathOutsideProjectError):
        ContextService(registry).run_aggregation(key, "proj", ["../"])


@pytest.mark.unit
def test_run_aggregation_missing_sub_path_is_empty(registry: Registry, key: str) -> None:
    assert ContextService(registry).run_aggregation(key, "proj", ["nope"]).content == ""


@pytest.mark.unit
def test_run_aggregation_sub_paths_keep_project_filters(registry: Registry, key: str, project: Path) -> None:
    (project / ".gitignore").write_text("*.log\nsrc/generated/\n", encoding="utf-8")
    (project / "src" / "debug.log").write_text("password=hunter2\n", encoding="utf-8")
    (project / "src" / "generated").mkdir()
    (project / "src" / "generated" / "schema.rs").write_text("struct Schema;\n", encoding="utf-8")
    (project / ".secrets").mkdir()
    (project / ".secrets" / "token.txt").write_text("token=abc\n", encoding="utf-8")
    service = ContextService(registry)

    whole = service.run_aggregation(key, "proj").content
    sub = service.run_aggregation(key, "proj", ["src"]).content

    for content in (whole, sub):
        assert "File: src/main.rs" in content
        assert "hunter2" not in content
        assert "schema.rs" not in content
        assert "token=abc" not in content
    for hidden in (["src/debug.log"], ["src/generated"], [".secrets"], [".secrets/token.txt"]):
        assert service.run_aggregation(key, "proj", hidden).content == ""
