"""
HTTP layer for contexter.

Provides a small FastAPI application over `ContextService`. Every project route
expects the caller's API key in the `X-API-Key` header.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import uvicorn
from fastapi import APIRouter, Body, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from contexter import __version__
from contexter.exceptions import ContexterError, InvalidRequestError, ProjectNotFoundError, UnauthorizedError
from contexter.logging import logger
from contexter.service import ContextService, ProjectContent, ProjectMetadata, ProjectSummary

if TYPE_CHECKING:
    from contexter.registry import Registry

API_KEY_HEADER = "X-API-Key"

_ERROR_STATUS: dict[type[ContexterError], tuple[int, str]] = {
    UnauthorizedError: (401, "UNAUTHORIZED"),
    ProjectNotFoundError: (404, "NOT_FOUND"),
    InvalidRequestError: (400, "BAD_REQUEST"),
}


class ContexterRequest(BaseModel):
    """Body of an aggregation request; every field is optional."""

    paths: list[str] | None = None
    include_metadata: bool = True


class ProjectListResponse(BaseModel):
    projects: list[ProjectSummary]


def _error_payload(code: str, message: str) -> dict[str, dict[str, str]]:
    return {"error": {"code": code, "message": message}}


async def contexter_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map service errors to status codes and the standard error envelope."""
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            status, code = _ERROR_STATUS[cls]
            break
    else:
        status, code = 500, "INTERNAL_ERROR"
    if status >= 500:  # noqa: PLR2004
        logger.error("Error in %s: %s", request.url.path, exc)
        message = "Internal Server Error"
    else:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, code)
        message = str(exc)
    return JSONResponse(status_code=status, content=_error_payload(code, message))


def create_app(registry: Registry) -> FastAPI:
    """
    FastAPI application factory.

    Args:
        registry: the registry owned by the caller; it is shared by every request.
    """
    service = ContextService(registry)

    app = FastAPI(
        title="contexter",
        version=__version__,
        description="HTTP interface to gather project files into a single context document.",
    )
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ContexterError, contexter_error_handler)
    app.add_exception_handler(Exception, contexter_error_handler)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    router = APIRouter(prefix="/api/v1")

    # Sync handlers run in the thread pool.
    @router.get("/projects", response_model=ProjectListResponse)
    def list_projects(
        api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
    ) -> ProjectListResponse:
        return ProjectListResponse(projects=service.list_projects(api_key))

    @router.get("/projects/{name}", response_model=ProjectMetadata)
    def get_project_metadata(
        name: str,
        api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
    ) -> ProjectMetadata:
        return service.get_project_metadata(api_key, name)

    @router.post("/projects/{name}", response_model=ProjectContent)
    def run_contexter(
        name: str,
        body: Annotated[ContexterRequest | None, Body()] = None,
        api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
    ) -> ProjectContent:
        req = body or ContexterRequest()
        return service.run_aggregation(api_key, name, req.paths, include_metadata=req.include_metadata)

    app.include_router(router)
    return app


def run_server(registry: Registry, *, quiet: bool = False) -> None:
    """Serve the application on the address and port stored in the registry.

    Args:
        registry: the registry to serve.
        quiet: only let uvicorn log warnings and errors.
    """
    cfg = registry.snapshot()
    logger.info("Starting server on %s:%d", cfg.listen_address, cfg.port)
    uvicorn.run(
        create_app(registry),
        host=cfg.listen_address,
        port=cfg.port,
        log_level="warning" if quiet else "info",
    )
