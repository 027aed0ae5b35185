"""
contexter: gather a project's files into a single document for an LLM.

Overview
--------
`contexter gather DIR` walks a directory (honoring `.gitignore` files, built-in
and user exclusions, and skipping binary files), drops files whose content was
already seen, and prints one document with the files grouped into
configuration, documentation, source and test sections.

`contexter server` serves the same operation over HTTP for the projects
registered with `contexter config add-project`, to callers holding an API key
created by `contexter config generate-key`.

Usage
-----
Run `python -m contexter.cli --help` for full options. Common examples:
    - Gather Rust and TOML files, skipping fixtures:
        contexter gather . -e rs -e toml -i "fixtures/"

    - Register a project and a key, then serve:
        contexter config add-project api ~/src/api
        contexter config generate-key laptop
        contexter server
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from contexter import __version__
from contexter.exceptions import ContexterError
from contexter.file_manipulation import discover
from contexter.http_server import run_server
from contexter.logging import logger, setup_logging
from contexter.output_construction import aggregate
from contexter.registry import Registry, RegistryConfig
from contexter.settings import ServerSettings, Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

MASK = "*" * 40


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser.

    Returns:
        argparse.ArgumentParser: the parser for `contexter`
    """
    p = argparse.ArgumentParser(
        prog="contexter",
        description="A context gathering tool for LLMs.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--config", type=str, default="", help="Registry file (default: per-user config dir).")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("--verbose", action="store_true", help="Debug logging.")

    sub = p.add_subparsers(dest="command", required=True)

    server = sub.add_parser("server", help="Run in server mode.")
    server.add_argument("-q", "--quiet", action="store_true", help="Run quietly.")

    gather = sub.add_parser("gather", help="Gather context from files.")
    gather.add_argument("directory", type=str, help="Directory to gather from.")
    gather.add_argument(
        "-e",
        "--extensions",
        action="append",
        default=[],
        help="File extension to include (repeatable).",
    )
    gather.add_argument(
        "-i",
        "--ignore",
        action="append",
        default=[],
        help="Regular expression of paths to ignore (repeatable).",
    )
    gather.add_argument("--no-metadata", action="store_true", help="Omit size and modification time.")
    gather.add_argument("--include-hidden", action="store_true", help="Also gather dot-files.")
    gather.add_argument("-o", "--output", type=str, default="", help="Write to this file instead of stdout.")

    config = sub.add_parser("config", help="Manage configuration.")
    cmds = config.add_subparsers(dest="config_command", required=True)

    add_project = cmds.add_parser("add-project", help="Add a project.")
    add_project.add_argument("name", help="Project name.")
    add_project.add_argument("path", help="Project path.")

    remove_project = cmds.add_parser("remove-project", help="Remove a project.")
    remove_project.add_argument("name", help="Project name.")

    generate_key = cmds.add_parser("generate-key", help="Generate a new API key.")
    generate_key.add_argument("name", help="API key name.")

    remove_key = cmds.add_parser("remove-key", help="Remove an API key.")
    remove_key.add_argument("name", help="API key name.")

    cmds.add_parser("list-keys", help="List API keys.")

    set_port = cmds.add_parser("set-port", help="Set the server port.")
    set_port.add_argument("port", type=int, help="Port number.")

    set_address = cmds.add_parser("set-address", help="Set the listen address.")
    set_address.add_argument("address", help="Listen address.")

    cmds.add_parser("list", help="List current configuration.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def server_settings(args: argparse.Namespace) -> ServerSettings:
    """Build the settings shared by every command from parsed arguments."""
    values: dict[str, object] = {
        "log_file": args.log_file,
        "verbose": args.verbose,
        "quiet": getattr(args, "quiet", False),
    }
    if args.config:
        values["config"] = Path(args.config)
    return ServerSettings.model_validate(values)


def gather_settings(args: argparse.Namespace) -> Settings:
    """Build the `gather` settings from parsed arguments."""
    base = server_settings(args).model_dump()
    return Settings(
        **base,
        directory=Path(args.directory),
        extensions=list(args.extensions),
        ignore=list(args.ignore),
        no_metadata=args.no_metadata,
        include_hidden=args.include_hidden,
        output=Path(args.output) if args.output else None,
    )


def render_config(cfg: RegistryConfig) -> str:
    """Render the configuration as YAML, with key hashes masked."""
    data = {
        "listen_address": cfg.listen_address,
        "port": cfg.port,
        "projects": {name: str(path) for name, path in sorted(cfg.projects.items())},
        "api_keys": dict.fromkeys(sorted(cfg.api_keys), MASK),
    }
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def handle_gather(settings: Settings) -> int:
    files = discover(
        settings.directory,
        extensions=settings.extensions,
        excludes=settings.ignore,
        include_hidden=settings.include_hidden,
    )
    document = aggregate(files, include_metadata=not settings.no_metadata)
    if settings.output is not None:
        settings.output.write_text(document.content, encoding="utf-8")
        print(f"Wrote {settings.output} files={len(document.files)}")
    else:
        sys.stdout.write(document.content)
    return 0


def handle_server(settings: ServerSettings) -> int:
    registry = Registry.load(settings.config)
    if not registry.has_credentials():
        print(
            "No API keys defined. Please generate an API key using `contexter config generate-key <name>`.",
            file=sys.stderr,
        )
        return 1
    run_server(registry, quiet=settings.quiet)
    return 0


def handle_config(settings: ServerSettings, args: argparse.Namespace) -> int:  # noqa: PLR0911
    registry = Registry.load(settings.config)
    cmd = args.config_command

    if cmd == "add-project":
        root = registry.add_project(args.name, args.path)
        print(f"Project '{args.name}' added with path {root}")
        return 0
    if cmd == "remove-project":
        if registry.remove_project(args.name):
            print(f"Project '{args.name}' removed")
            return 0
        print(f"Project '{args.name}' not found", file=sys.stderr)
        return 1
    if cmd == "generate-key":
        key = registry.generate_credential(args.name)
        print(f"New API key generated for '{args.name}': {key}")
        print("Please store this key securely. It won't be displayed again.")
        return 0
    if cmd == "remove-key":
        if registry.remove_credential(args.name):
            print(f"API key '{args.name}' removed")
            return 0
        print(f"API key '{args.name}' not found", file=sys.stderr)
        return 1
    if cmd == "list-keys":
        print("API Keys:")
        for name in registry.credential_names():
            print(f"  {name}: {MASK}")
        return 0
    if cmd == "set-port":
        registry.set_port(args.port)
        print(f"Port set to {args.port}")
        return 0
    if cmd == "set-address":
        registry.set_listen_address(args.address)
        print(f"Listen address set to {args.address}")
        return 0
    # "list"
    sys.stdout.write(render_config(registry.snapshot()))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = server_settings(args)
    if settings.log_file or settings.verbose:
        setup_logging(settings.log_file or None, verbose=settings.verbose, force=True)

    try:
        if args.command == "gather":
            return handle_gather(gather_settings(args))
        if args.command == "server":
            return handle_server(settings)
        return handle_config(settings, args)
    except ContexterError as e:
        logger.error("Command failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
