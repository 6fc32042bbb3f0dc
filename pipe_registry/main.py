"""FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from pipe_registry import __version__
from pipe_registry.api.routes import pipes, versions
from pipe_registry.core import FILES_URL_PREFIX, PipeRegistryError, Settings, settings
from pipe_registry.core.config import get_cors_origins
from pipe_registry.core.exceptions import ValidationError
from pipe_registry.core.rate_limiter import configure_limiter
from pipe_registry.db.database import Base, create_db_engine, create_session_factory
from pipe_registry.models.common import HealthResponse
from pipe_registry.services.archive_store import ArchiveStore

logger = logging.getLogger(__name__)


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the application with its own engine, session factory and archive store."""
    config = config or settings
    logging.basicConfig(level=config.log_level.upper())

    engine = create_db_engine(config.database_url, echo=config.debug)
    archive_store = ArchiveStore(config.storage_dir, config.base_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        archive_store.ensure_root()
        if config.auto_create_tables:
            Base.metadata.create_all(bind=engine)
        yield
        engine.dispose()

    app = FastAPI(
        title=config.app_name,
        version=__version__,
        description="Registry of versioned pipe archives",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.archive_store = archive_store

    # Register rate limiter with app state
    app.state.limiter = configure_limiter(config)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(config),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(pipes.router, prefix="/pipes", tags=["Pipes"])
    app.include_router(versions.router, prefix="/versions", tags=["Versions"])
    app.mount(
        FILES_URL_PREFIX,
        StaticFiles(directory=archive_store.root, check_dir=False),
        name="files",
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(message="Pipe registry is healthy", timestamp=datetime.now(UTC))

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint."""
        return {
            "name": config.app_name,
            "version": __version__,
            "docs": "/docs",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PipeRegistryError)
    async def pipe_registry_error_handler(request: Request, exc: PipeRegistryError) -> JSONResponse:
        """Handle custom PipeRegistryError exceptions."""
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message, exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Report malformed ids, query params and bodies as 400 with the offending field."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
        field = location[-1] if location else None
        message = f"Invalid value for '{field}': {first.get('msg')}" if field else "Invalid request"
        return JSONResponse(status_code=400, content=ValidationError(message, field=field).to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"},
        )


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
