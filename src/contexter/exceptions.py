from dataclasses import dataclass
from pathlib import Path


@dataclass(eq=False)
class ContexterError(Exception):
    """Base exception for errors in the contexter package."""


@dataclass(eq=False)
class InvalidExcludePatternError(ContexterError):
    """Raised when an exclusion pattern is not a valid regular expression."""

    pattern: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid exclude pattern {self.pattern!r}: {self.reason}"


@dataclass(eq=False)
class RegistryError(ContexterError):
    """Raised when a registry operation cannot be applied."""

    message: str = "Registry operation failed."

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class RegistryPersistenceError(RegistryError):
    """Raised when the registry store cannot be read or written."""

    path: Path = Path()
    reason: str = ""
    message: str = "Could not access the registry store."

    def __str__(self) -> str:
        return f"{self.message} path={self.path} reason={self.reason}"


@dataclass(eq=False)
class UnauthorizedError(ContexterError):
    """Raised when a caller does not present a valid API key.

    The message never says why the credential was rejected.
    """

    message: str = "Invalid or missing API key"

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class ProjectNotFoundError(ContexterError):
    """Raised when a project name is not registered."""

    name: str

    def __str__(self) -> str:
        return f"Project '{self.name}' not found"


@dataclass(eq=False)
class InvalidRequestError(ContexterError):
    """Raised when a request does not describe what to aggregate in a usable way."""

    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass(eq=False)
class PathOutsideProjectError(InvalidRequestError):
    """Raised when a requested sub-path resolves outside of the project root."""

    path: str = ""
