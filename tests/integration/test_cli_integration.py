from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from contexter import cli
from contexter.registry import Registry


@pytest.fixture
def store(tmp_path: Path) -> Path:
    return tmp_path / "state" / "config.json"


def _run(store: Path, *argv: str) -> int:
    return cli.main(["--config", str(store), "config", *argv])


@pytest.mark.integration
def test_config_project_lifecycle(
    store: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    project = tmp_path / "api"
    project.mkdir()

    assert _run(store, "add-project", "api", str(project)) == 0
    assert Registry.load(store).get_project("api") == project.resolve()

    assert _run(store, "remove-project", "api") == 0
    assert Registry.load(store).get_project("api") is None

    capsys.readouterr()
    assert _run(store, "remove-project", "api") == 1
    assert "not found" in capsys.readouterr().err


@pytest.mark.integration
def test_config_generate_key_prints_usable_key(
    store: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert _run(store, "generate-key", "laptop") == 0

    out = capsys.readouterr().out
    first_line = out.splitlines()[0]
    key = first_line.rsplit(": ", 1)[1]
    assert "won't be displayed again" in out
    assert Registry.load(store).authorize(key)

    assert _run(store, "list-keys") == 0
    listing = capsys.readouterr().out
    assert "laptop" in listing
    assert key not in listing

    assert _run(store, "remove-key", "laptop") == 0
    assert not Registry.load(store).authorize(key)
    assert _run(store, "remove-key", "laptop") == 1


@pytest.mark.integration
def test_config_listen_settings_and_list(
    store: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert _run(store, "set-port", "4040") == 0
    assert _run(store, "set-address", "0.0.0.0") == 0  # noqa: S104
    capsys.readouterr()

    assert _run(store, "list") == 0

    data = yaml.safe_load(capsys.readouterr().out)
    assert data["port"] == 4040  # noqa: PLR2004
    assert data["listen_address"] == "0.0.0.0"  # noqa: S104


@pytest.mark.integration
def test_config_invalid_port_fails(store: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(store, "set-port", "0") == 1
    assert "Error:" in capsys.readouterr().err
    assert not store.exists()


@pytest.mark.integration
def test_corrupt_registry_is_reported(store: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store.parent.mkdir(parents=True)
    store.write_text("[]", encoding="utf-8")

    assert _run(store, "list") == 1
    assert str(store) in capsys.readouterr().err
