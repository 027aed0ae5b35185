from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)

CONFIG_ENV_VAR = "CONTEXTER_CONFIG"
CONFIG_DIRNAME = "contexter"
CONFIG_FILENAME = "config.json"


def default_config_path() -> Path:
    """Locate the registry file.

    Resolution order: `CONTEXTER_CONFIG` (the environment, or a `.env` file found
    from the working directory), then `$XDG_CONFIG_HOME/contexter/config.json`,
    then `~/.config/contexter/config.json`.

    Returns:
        Path: the registry file location (it may not exist yet)
    """
    if ENV_FILE:
        load_dotenv(ENV_FILE, override=False)
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / CONFIG_DIRNAME / CONFIG_FILENAME


class ServerSettings(BaseModel):
    """Options shared by every command."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    config: Path = Field(default_factory=default_config_path, description="Registry file.")
    log_file: str = Field(default="", description="Log file path.")
    verbose: bool = Field(default=False, description="Debug logging.")
    quiet: bool = Field(default=False, description="Only log warnings and errors of the HTTP server.")


class Settings(ServerSettings):
    """Options of the `gather` command."""

    directory: Path = Field(default_factory=Path.cwd, description="Directory to gather from.")
    extensions: list[str] = Field(default_factory=list, description="Extension allowlist.")
    ignore: list[str] = Field(default_factory=list, description="Exclude regular expressions.")
    no_metadata: bool = Field(default=False, description="Omit size and modification time.")
    include_hidden: bool = Field(default=False, description="Also gather dot-files.")
    output: Path | None = Field(default=None, description="Write the document here instead of stdout.")
