"""Pipe API routes: registration, CRUD, and archive download."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from pipe_registry.api.dependencies import get_archive_store, get_settings
from pipe_registry.core.config import ARCHIVE_MEDIA_TYPE, DEFAULT_PAGE, DEFAULT_PAGE_SIZE, Settings
from pipe_registry.core.exceptions import (
    MissingFieldError,
    NotFoundError,
    PipeNotFoundError,
    ValidationError,
)
from pipe_registry.core.rate_limiter import UPLOAD_RATE_LIMIT, limiter
from pipe_registry.db.crud import PipeWithVersions
from pipe_registry.db.database import get_db
from pipe_registry.models.common import Envelope, HealthResponse
from pipe_registry.models.pipe import PipeListData, PipeRegistration, PipeResponse, PipeUpdate
from pipe_registry.models.version import VersionResponse
from pipe_registry.services import pipe_service, version_service
from pipe_registry.services.archive_store import ArchiveStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_env_schema(raw: str) -> Any:
    """Multipart fields are text; keep JSON documents structured, anything else verbatim."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# Must be registered before "/{pipe_id}"
@router.get("/health", response_model=HealthResponse)
def pipes_health() -> HealthResponse:
    """Health check for the pipe routes."""
    return HealthResponse(message="Pipe service is healthy", timestamp=datetime.now(UTC))


# =============================================================================
# Registration
# =============================================================================


@router.post("", response_model=Envelope[PipeRegistration], status_code=status.HTTP_201_CREATED)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def create_pipe(
    request: Request,
    name: str | None = Form(None),
    version: str | None = Form(None),
    description: str | None = Form(None),
    env_schema: str | None = Form(None, alias="envSchema"),
    file: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    store: ArchiveStore = Depends(get_archive_store),
    settings: Settings = Depends(get_settings),
) -> Envelope[PipeRegistration]:
    """Register a pipe version with its archive, creating the pipe if needed."""
    if file is None:
        raise ValidationError("No file uploaded", field="file")
    for field_name, value in (("name", name), ("version", version), ("envSchema", env_schema)):
        if not value:
            raise MissingFieldError(field_name)
    if file.content_type != ARCHIVE_MEDIA_TYPE:
        raise ValidationError("Invalid file type. Only TAR files are allowed.", field="file")

    pipe, created = await run_in_threadpool(
        pipe_service.register_version,
        db,
        store,
        name=name,
        version_number=version,
        env_schema=_parse_env_schema(env_schema),
        description=description or None,
        archive=file.file,
        max_archive_bytes=settings.max_upload_size_bytes,
    )

    return Envelope(
        data=PipeRegistration(
            pipe=PipeResponse.from_orm_pipe(pipe),
            version=VersionResponse.from_orm_version(created),
        ),
        message="Pipe created successfully",
    )


# =============================================================================
# Pipe Endpoints
# =============================================================================


@router.get("", response_model=Envelope[PipeListData])
def list_pipes(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    search: str | None = None,
    include_versions: bool = Query(False, alias="includeVersions"),
    db: Session = Depends(get_db),
) -> Envelope[PipeListData]:
    """List pipes newest first with optional search."""
    result = pipe_service.list_pipes(
        db,
        page=page,
        limit=limit,
        search=search,
        include_versions=include_versions,
    )

    pipes = [
        PipeResponse.from_orm_pipe(item.pipe, item.versions)
        if isinstance(item, PipeWithVersions)
        else PipeResponse.from_orm_pipe(item)
        for item in result.items
    ]
    return Envelope(
        data=PipeListData(
            pipes=pipes,
            total_count=result.total_count,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        )
    )


@router.get("/{name}/download", response_class=FileResponse)
def download_latest(
    name: str,
    db: Session = Depends(get_db),
    store: ArchiveStore = Depends(get_archive_store),
) -> FileResponse:
    """Download the archive of the most recent version of a pipe."""
    return _archive_response(db, store, name, None)


@router.get("/{name}/download/{version}", response_class=FileResponse)
def download_version(
    name: str,
    version: str,
    db: Session = Depends(get_db),
    store: ArchiveStore = Depends(get_archive_store),
) -> FileResponse:
    """Download the archive of a specific pipe version."""
    return _archive_response(db, store, name, version)


def _archive_response(
    db: Session,
    store: ArchiveStore,
    name: str,
    version_number: str | None,
) -> FileResponse:
    target = pipe_service.resolve_download(db, store, name, version_number)
    return FileResponse(
        target.path,
        media_type=ARCHIVE_MEDIA_TYPE,
        filename=target.filename,
    )


@router.get("/{pipe_id}", response_model=Envelope[PipeResponse])
def get_pipe(pipe_id: int, db: Session = Depends(get_db)) -> Envelope[PipeResponse]:
    pipe = pipe_service.get_pipe(db, pipe_id)
    if pipe is None:
        raise PipeNotFoundError(pipe_id)
    return Envelope(data=PipeResponse.from_orm_pipe(pipe))


@router.put("/{pipe_id}", response_model=Envelope[PipeResponse])
def update_pipe(
    pipe_id: int,
    request: PipeUpdate,
    db: Session = Depends(get_db),
) -> Envelope[PipeResponse]:
    """Update pipe metadata."""
    pipe = pipe_service.update_pipe(
        db,
        pipe_id,
        name=request.name,
        description=request.description,
    )
    if pipe is None:
        raise PipeNotFoundError(pipe_id)
    return Envelope(data=PipeResponse.from_orm_pipe(pipe), message="Pipe updated successfully")


@router.delete("/{pipe_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_pipe(pipe_id: int, db: Session = Depends(get_db)) -> None:
    """Delete a pipe and all its versions."""
    if not pipe_service.delete_pipe(db, pipe_id):
        raise PipeNotFoundError(pipe_id)


# =============================================================================
# Pipe Version Endpoints
# =============================================================================


@router.get("/{pipe_id}/versions", response_model=Envelope[list[VersionResponse]])
def list_pipe_versions(pipe_id: int, db: Session = Depends(get_db)) -> Envelope[list[VersionResponse]]:
    """List all versions of a pipe, newest first."""
    versions = version_service.list_versions_for_pipe(db, pipe_id)
    return Envelope(data=[VersionResponse.from_orm_version(version) for version in versions])


@router.get("/{pipe_id}/versions/latest", response_model=Envelope[VersionResponse])
def get_latest_pipe_version(pipe_id: int, db: Session = Depends(get_db)) -> Envelope[VersionResponse]:
    version = version_service.get_latest_version(db, pipe_id)
    if version is None:
        raise NotFoundError("No versions found for this pipe")
    return Envelope(data=VersionResponse.from_orm_version(version))
