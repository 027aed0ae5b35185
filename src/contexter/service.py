from __future__ import annotations

from pathlib import PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from contexter.exceptions import (
    InvalidRequestError,
    PathOutsideProjectError,
    ProjectNotFoundError,
    UnauthorizedError,
)
from contexter.file_manipulation import discover, relative_listing
from contexter.logging import logger
from contexter.output_construction import aggregate

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from contexter.registry import Registry


class ProjectSummary(BaseModel):
    name: str
    path: str


class ProjectMetadata(BaseModel):
    name: str
    path: str
    files: list[str] = Field(default_factory=list, description="Eligible files, relative to the project root")


class ProjectContent(BaseModel):
    content: str


def resolve_within_root(root: Path, sub_path: str) -> Path:
    """Resolve a caller-supplied sub-path and make sure it stays inside `root`.

    The path must be relative; it is joined to the root and fully resolved
    (`..` segments and symlinks included) before the containment check.

    Args:
        root (Path): the project root
        sub_path (str): the path requested by the caller

    Raises:
        InvalidRequestError: if `sub_path` is blank
        PathOutsideProjectError: if `sub_path` is absolute or resolves outside `root`

    Returns:
        Path: the resolved path
    """
    cleaned = (sub_path or "").strip()
    if not cleaned:
        raise InvalidRequestError(reason="Empty path in request.")
    win = PureWindowsPath(cleaned)
    if PurePosixPath(cleaned).is_absolute() or win.is_absolute() or win.drive:
        raise PathOutsideProjectError(reason=f"Path '{cleaned}' must be relative to the project root.", path=cleaned)
    resolved_root = root.resolve()
    target = (resolved_root / cleaned).resolve()
    if not target.is_relative_to(resolved_root):
        raise PathOutsideProjectError(reason=f"Path '{cleaned}' is outside of the project root.", path=cleaned)
    return target


class ContextService:
    """Service-layer operations over a Registry.

    Every operation authorizes the caller first; project lookups only happen
    for authorized callers, so an unknown caller cannot probe project names.
    """

    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    def _authorize(self, credential: str | None) -> None:
        if not self.registry.authorize(credential):
            raise UnauthorizedError

    def _project_root(self, name: str) -> Path:
        root = self.registry.get_project(name)
        if root is None:
            logger.warning("Project not found: %s", name)
            raise ProjectNotFoundError(name=name)
        return root.resolve()

    def list_projects(self, credential: str | None) -> list[ProjectSummary]:
        """List registered projects, sorted by name."""
        self._authorize(credential)
        projects = self.registry.snapshot().projects
        summaries = [ProjectSummary(name=n, path=str(p)) for n, p in sorted(projects.items())]
        logger.info("Listed %d projects", len(summaries))
        return summaries

    def get_project_metadata(self, credential: str | None, name: str) -> ProjectMetadata:
        """Describe a project and list its eligible files relative to its root."""
        self._authorize(credential)
        root = self._project_root(name)
        files = discover(root)
        logger.info("Retrieved metadata for project %s", name)
        return ProjectMetadata(name=name, path=str(root), files=relative_listing(files, root))

    def run_aggregation(
        self,
        credential: str | None,
        name: str,
        paths: Sequence[str] | None = None,
        *,
        include_metadata: bool = True,
    ) -> ProjectContent:
        """Aggregate a whole project, or only some of its sub-paths.

        Args:
            credential (str | None): the caller's API key
            name (str): the project name
            paths (Sequence[str] | None): directories or files relative to the project
                root; None aggregates the whole root
            include_metadata (bool): add size and modification time to file headers

        Raises:
            UnauthorizedError: if the credential is missing or wrong
            ProjectNotFoundError: if no project has this name
            InvalidRequestError: if `paths` is empty or one of them is blank, absolute,
                or outside of the project root

        Returns:
            ProjectContent: the aggregated document
        """
        self._authorize(credential)
        root = self._project_root(name)

        if paths is None:
            logger.debug("Running aggregation on entire project %s", name)
            files = discover(root)
        else:
            if not paths:
                raise InvalidRequestError(reason="'paths' must list at least one path, or be omitted.")
            targets = [resolve_within_root(root, p) for p in paths]
            logger.debug("Running aggregation on %d paths of project %s", len(targets), name)
            files = sorted({f for target in targets for f in discover(root, within=target)})

        document = aggregate(files, include_metadata=include_metadata, root=root)
        logger.info("Aggregated %d files for project %s", len(document.files), name)
        return ProjectContent(content=document.content)
