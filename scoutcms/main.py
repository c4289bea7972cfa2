"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx
import yaml
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from scoutcms.api.admin import router as admin_router
from scoutcms.api.files import router as files_router
from scoutcms.api.health import router as health_router
from scoutcms.config import Settings
from scoutcms.exceptions import (
    AuthError,
    ConfigError,
    ConflictError,
    InternalServerError,
    MetadataIndexError,
    NotFoundError,
    RemoteVCSError,
    ValidationError,
)
from scoutcms.github.client import GitHubClient
from scoutcms.services.commit_service import ContentCommitService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)


def _error(status_code: int, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "error": message, **extra}
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting ScoutCMS (debug=%s)", settings.debug)

    try:
        config = settings.github_config()
    except ConfigError as exc:
        logger.critical("Invalid GitHub configuration: %s", exc)
        raise

    http_client = httpx.AsyncClient(timeout=config.timeout_seconds)
    try:
        github_client = await GitHubClient.create(config, http_client)
    except Exception as exc:
        logger.critical(
            "Failed to authenticate as GitHub App %s for %s/%s: %s",
            config.app_id,
            config.owner,
            config.repo,
            exc,
        )
        await http_client.aclose()
        raise
    logger.info(
        "Connected to GitHub repository %s/%s (branch %s)",
        config.owner,
        config.repo,
        config.branch,
    )

    app.state.github_client = github_client
    app.state.commit_service = ContentCommitService(
        github_client, conflict_retries=settings.commit_conflict_retries
    )

    yield

    try:
        await http_client.aclose()
    except Exception as exc:
        logger.error("Error during HTTP client shutdown: %s", exc, exc_info=True)

    logger.info("ScoutCMS stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="ScoutCMS",
        description="GitHub-backed content service for the scout group website",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings

    cors_origins = (
        settings.cors_origins
        if settings.cors_origins
        else (["http://localhost:3000", "http://localhost:8000"] if settings.debug else [])
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    trusted_hosts = settings.trusted_hosts or (
        ["localhost", "127.0.0.1", "::1", "test", "testserver"] if settings.debug else []
    )
    if trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    app.include_router(health_router)
    app.include_router(admin_router)
    app.include_router(files_router)

    # Global exception handlers; every error body is {"success": false, "error": ...}

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        response = _error(exc.status_code, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return _error(422, "Invalid request", detail=errors)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning("ValidationError in %s %s: %s", request.method, request.url.path, exc)
        return _error(400, str(exc) or "Invalid request")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.info("NotFoundError in %s %s: %s", request.method, request.url.path, exc)
        return _error(404, f"Not found: {exc.detail}" if exc.detail else "Not found")

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        logger.error("ConflictError in %s %s: %s", request.method, request.url.path, exc)
        return _error(409, "The content branch was changed concurrently; please retry")

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        logger.error(
            "AuthError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return _error(500, "GitHub authentication failed")

    @app.exception_handler(RemoteVCSError)
    async def remote_vcs_error_handler(request: Request, exc: RemoteVCSError) -> JSONResponse:
        logger.error(
            "RemoteVCSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return _error(502, str(exc))

    @app.exception_handler(MetadataIndexError)
    async def metadata_index_error_handler(
        request: Request, exc: MetadataIndexError
    ) -> JSONResponse:
        logger.error(
            "MetadataIndexError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return _error(500, str(exc))

    @app.exception_handler(yaml.YAMLError)
    async def yaml_error_handler(request: Request, exc: yaml.YAMLError) -> JSONResponse:
        logger.error("YAMLError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error(422, "Invalid content format")

    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
        logger.error("ConfigError in %s %s: %s", request.method, request.url.path, exc)
        return _error(500, "Server configuration error")

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        logger.error(
            "InternalServerError in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return _error(500, "Internal server error")

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "scoutcms.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
