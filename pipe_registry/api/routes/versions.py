"""Version API routes for CRUD operations and env schema lookup."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pipe_registry.core.config import DEFAULT_PAGE, DEFAULT_PAGE_SIZE
from pipe_registry.core.exceptions import VersionNotFoundError
from pipe_registry.db.database import get_db
from pipe_registry.models.common import Envelope, HealthResponse
from pipe_registry.models.version import (
    VersionCreate,
    VersionListData,
    VersionResponse,
    VersionUpdate,
)
from pipe_registry.services import version_service

router = APIRouter()


# Must be registered before "/{version_id}"
@router.get("/health", response_model=HealthResponse)
def versions_health() -> HealthResponse:
    """Health check for the version routes."""
    return HealthResponse(message="Version service is healthy", timestamp=datetime.now(UTC))


@router.post("", response_model=Envelope[VersionResponse], status_code=status.HTTP_201_CREATED)
def create_version(request: VersionCreate, db: Session = Depends(get_db)) -> Envelope[VersionResponse]:
    """Create a version for an existing pipe without uploading an archive."""
    version = version_service.create_version(
        db,
        pipe_id=request.pipe_id,
        version_number=request.version_number,
        env_schema=request.env_schema,
        asset_url=request.asset_url,
    )
    return Envelope(
        data=VersionResponse.from_orm_version(version),
        message="Version created successfully",
    )


@router.get("", response_model=Envelope[VersionListData])
def list_versions(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    pipe_id: int | None = Query(None, alias="pipeId", ge=1),
    db: Session = Depends(get_db),
) -> Envelope[VersionListData]:
    """List versions newest first, optionally for a single pipe."""
    result = version_service.list_versions(db, page=page, limit=limit, pipe_id=pipe_id)
    return Envelope(
        data=VersionListData(
            versions=[VersionResponse.from_orm_version(version) for version in result.items],
            total_count=result.total_count,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        )
    )


@router.get("/{name}/env-schema/{version}", response_model=Envelope[Any])
def get_env_schema(name: str, version: str, db: Session = Depends(get_db)) -> Envelope[Any]:
    """Return only the env schema stored for a pipe version."""
    return Envelope(data=version_service.get_env_schema(db, name, version))


@router.get("/{version_id}", response_model=Envelope[VersionResponse])
def get_version(version_id: int, db: Session = Depends(get_db)) -> Envelope[VersionResponse]:
    version = version_service.get_version(db, version_id)
    if version is None:
        raise VersionNotFoundError()
    return Envelope(data=VersionResponse.from_orm_version(version))


@router.put("/{version_id}", response_model=Envelope[VersionResponse])
def update_version(
    version_id: int,
    request: VersionUpdate,
    db: Session = Depends(get_db),
) -> Envelope[VersionResponse]:
    """Update a version in place. Only fields present in the body are changed."""
    fields = request.model_dump(exclude_unset=True)
    version = version_service.update_version(db, version_id, **fields)
    if version is None:
        raise VersionNotFoundError()
    return Envelope(
        data=VersionResponse.from_orm_version(version),
        message="Version updated successfully",
    )


@router.delete("/{version_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_version(version_id: int, db: Session = Depends(get_db)) -> None:
    if not version_service.delete_version(db, version_id):
        raise VersionNotFoundError()
