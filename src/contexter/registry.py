"""Durable registry of projects, API key hashes and listen settings.

The whole registry is one JSON document. It is loaded once, kept in memory
and rewritten in full by every mutation. Readers (authorization, project
lookups) share a reader/writer lock; mutations hold the writer side while the
new document is written, and only swap it in once the write succeeded.
"""

from __future__ import annotations

import contextlib
import hashlib
import hmac
import os
import secrets
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from contexter.exceptions import RegistryError, RegistryPersistenceError
from contexter.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

DEFAULT_PORT = 3030
DEFAULT_LISTEN_ADDRESS = "127.0.0.1"
API_KEY_BYTES = 32

_EMPTY_HASH = hashlib.sha256(b"").hexdigest()


class RegistryConfig(BaseModel):
    """Everything the registry persists."""

    model_config = ConfigDict(validate_assignment=True)

    projects: dict[str, Path] = Field(default_factory=dict, description="Project name to root directory")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="HTTP listen port")
    listen_address: str = Field(default=DEFAULT_LISTEN_ADDRESS, min_length=1, description="HTTP listen address")
    api_keys: dict[str, str] = Field(default_factory=dict, description="API key name to SHA-256 hex digest")


def generate_api_key() -> str:
    """Return a new random API key (32 random bytes, URL-safe base64, no padding)."""
    return secrets.token_urlsafe(API_KEY_BYTES)


def hash_api_key(key: str) -> str:
    """Return the SHA-256 hex digest stored for an API key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Waiting writers block new readers, so a steady stream of reads cannot
    starve a mutation.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def read_registry_file(path: Path) -> RegistryConfig:
    """Load a registry document; a missing file gives the defaults.

    Args:
        path (Path): location of the JSON document

    Raises:
        RegistryPersistenceError: if the file exists but cannot be read or parsed

    Returns:
        RegistryConfig: the loaded (or default) configuration
    """
    if not path.exists():
        logger.info("No registry at %s, using defaults", path)
        return RegistryConfig()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RegistryPersistenceError(path=path, reason=str(e)) from e
    try:
        return RegistryConfig.model_validate_json(raw)
    except ValidationError as e:
        raise RegistryPersistenceError(path=path, reason=f"invalid registry document: {e}") from e


def write_registry_file(path: Path, config: RegistryConfig) -> None:
    """Write a registry document atomically (temporary file, then rename).

    Args:
        path (Path): destination of the JSON document
        config (RegistryConfig): configuration to persist

    Raises:
        RegistryPersistenceError: if the directory or file cannot be written
    """
    payload = config.model_dump_json(indent=2) + "\n"
    tmp_name = ""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
        Path(tmp_name).replace(path)
    except OSError as e:
        if tmp_name:
            with contextlib.suppress(OSError):
                Path(tmp_name).unlink()
        raise RegistryPersistenceError(path=path, reason=str(e)) from e


class Registry:
    """In-memory registry backed by a JSON file.

    Owned by whoever starts the process and handed to the service layer; all
    methods are safe to call from several threads.
    """

    def __init__(self, path: Path, config: RegistryConfig | None = None) -> None:
        self._path = Path(path)
        self._config = config if config is not None else RegistryConfig()
        self._lock = ReadWriteLock()

    @classmethod
    def load(cls, path: str | Path) -> Registry:
        """Load the registry stored at `path` (defaults if the file is missing)."""
        p = Path(path)
        return cls(p, read_registry_file(p))

    @property
    def path(self) -> Path:
        return self._path

    def _mutate(self, change: Callable[[RegistryConfig], bool | None]) -> bool:
        """Apply `change` to a copy of the configuration, persist it, then publish it.

        `change` runs under the writer lock. When it returns False the change is a
        no-op: nothing is written and False is returned.

        Raises:
            RegistryError: if the change produces an invalid configuration
            RegistryPersistenceError: if the new configuration cannot be written;
                the in-memory configuration is left untouched
        """
        with self._lock.write():
            updated = self._config.model_copy(deep=True)
            try:
                applied = change(updated)
            except ValidationError as e:
                raise RegistryError(message=f"Invalid registry value: {e}") from e
            if applied is False:
                return False
            write_registry_file(self._path, updated)
            self._config = updated
        return True

    # ------------------------------ projects --------------------------------

    def add_project(self, name: str, path: str | Path) -> Path:
        """Register (or replace) a project root.

        Args:
            name (str): unique project name
            path (str | Path): project root; stored as an absolute, resolved path

        Returns:
            Path: the stored root
        """
        name = name.strip()
        if not name:
            raise RegistryError(message="Project name must not be empty.")
        root = Path(path).expanduser().resolve()

        def change(cfg: RegistryConfig) -> None:
            cfg.projects[name] = root

        self._mutate(change)
        logger.info("Project '%s' added with path %s", name, root)
        return root

    def remove_project(self, name: str) -> bool:
        """Unregister a project.

        Returns:
            bool: False if no such project exists (nothing is written), True otherwise
        """

        def change(cfg: RegistryConfig) -> bool:
            return cfg.projects.pop(name, None) is not None

        if not self._mutate(change):
            logger.info("Project '%s' not found", name)
            return False
        logger.info("Project '%s' removed", name)
        return True

    def get_project(self, name: str) -> Path | None:
        """Return the root of a project, or None if it is not registered."""
        with self._lock.read():
            return self._config.projects.get(name)

    # ------------------------------ credentials -----------------------------

    def generate_credential(self, name: str) -> str:
        """Create an API key under `name`, replacing any key of the same name.

        Only the key's hash is stored; the returned plaintext cannot be recovered later.

        Returns:
            str: the plaintext API key
        """
        name = name.strip()
        if not name:
            raise RegistryError(message="API key name must not be empty.")
        key = generate_api_key()
        hashed = hash_api_key(key)

        def change(cfg: RegistryConfig) -> None:
            cfg.api_keys[name] = hashed

        self._mutate(change)
        logger.info("New API key generated for '%s'", name)
        return key

    def remove_credential(self, name: str) -> bool:
        """Delete the API key stored under `name`.

        Returns:
            bool: False if no key has this name (nothing is written), True otherwise
        """

        def change(cfg: RegistryConfig) -> bool:
            return cfg.api_keys.pop(name, None) is not None

        if not self._mutate(change):
            logger.info("API key '%s' not found", name)
            return False
        logger.info("API key '%s' removed", name)
        return True

    def credential_names(self) -> list[str]:
        with self._lock.read():
            return sorted(self._config.api_keys)

    def has_credentials(self) -> bool:
        with self._lock.read():
            return bool(self._config.api_keys)

    def authorize(self, secret: str | None) -> bool:
        """Check a presented API key against every stored hash.

        Every stored hash is compared with `hmac.compare_digest` and no comparison
        is skipped after a match. Without stored keys a comparison against a
        dummy digest still runs, and the answer is False.

        Args:
            secret (str | None): the key presented by the caller (None if absent)

        Returns:
            bool: True if the key matches one of the stored hashes
        """
        presented = hash_api_key(secret or "")
        with self._lock.read():
            stored = list(self._config.api_keys.values())
        if not stored:
            hmac.compare_digest(presented, _EMPTY_HASH)
            return False
        matched = False
        for digest in stored:
            matched |= hmac.compare_digest(presented, digest)
        return matched

    # ------------------------------ listen settings -------------------------

    def set_listen_address(self, address: str) -> None:
        def change(cfg: RegistryConfig) -> None:
            cfg.listen_address = address

        self._mutate(change)
        logger.info("Listen address set to %s", address)

    def set_port(self, port: int) -> None:
        def change(cfg: RegistryConfig) -> None:
            cfg.port = port

        self._mutate(change)
        logger.info("Port set to %d", port)

    # ------------------------------ snapshots -------------------------------

    def snapshot(self) -> RegistryConfig:
        """Return a deep copy of the current configuration."""
        with self._lock.read():
            return self._config.model_copy(deep=True)
