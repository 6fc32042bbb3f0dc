"""Version service.

Forwards to the version repository, refusing to create or list versions for a
pipe that does not exist.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from pipe_registry.core.config import DEFAULT_PAGE, DEFAULT_PAGE_SIZE
from pipe_registry.core.exceptions import PipeNotFoundError, VersionNotFoundError
from pipe_registry.db import crud
from pipe_registry.db.filters import VersionFilter
from pipe_registry.db.models import Pipe, Version
from pipe_registry.utils.pagination import Page, page_offset

logger = logging.getLogger(__name__)


def _require_pipe(db: Session, pipe_id: int) -> Pipe:
    pipe = crud.get_pipe(db, pipe_id)
    if pipe is None:
        raise PipeNotFoundError(pipe_id)
    return pipe


def create_version(
    db: Session,
    *,
    pipe_id: int,
    version_number: str,
    env_schema: Any,
    asset_url: str = "",
) -> Version:
    """Create a version under an existing pipe.

    Raises:
        PipeNotFoundError: ``pipe_id`` does not reference a pipe.
        ConstraintViolationError: the pipe already has ``version_number``.
    """
    pipe = _require_pipe(db, pipe_id)
    version = crud.create_version(
        db,
        pipe_id=pipe.id,
        version_number=version_number,
        env_schema=env_schema,
        asset_url=asset_url,
    )
    logger.info(
        "Version created successfully: %s for pipe %s",
        version.version_number,
        pipe.name,
        extra={"pipe_id": pipe.id, "version_id": version.id},
    )
    return version


def get_version(db: Session, version_id: int) -> Version | None:
    return crud.get_version(db, version_id)


def list_versions_for_pipe(db: Session, pipe_id: int) -> list[Version]:
    _require_pipe(db, pipe_id)
    return crud.list_versions_for_pipe(db, pipe_id)


def get_latest_version(db: Session, pipe_id: int) -> Version | None:
    _require_pipe(db, pipe_id)
    return crud.get_latest_version(db, pipe_id)


def get_version_by_number(db: Session, pipe_id: int, version_number: str) -> Version | None:
    return crud.get_version_by_number(db, pipe_id, version_number)


def list_versions(
    db: Session,
    *,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_PAGE_SIZE,
    pipe_id: int | None = None,
) -> Page[Version]:
    filters = VersionFilter(pipe_id=pipe_id)
    items = crud.list_versions(db, filters, skip=page_offset(page, limit), limit=limit)
    total_count = crud.count_versions(db, filters)
    return Page(items=items, total_count=total_count, page=page, limit=limit)


def update_version(db: Session, version_id: int, **fields: Any) -> Version | None:
    """Merge the given fields into a version. Returns None if it does not exist."""
    version = crud.get_version(db, version_id)
    if version is None:
        return None
    version = crud.update_version(db, version, **fields)
    logger.info("Version updated successfully: %s", version.version_number, extra={"version_id": version.id})
    return version


def delete_version(db: Session, version_id: int) -> bool:
    deleted = crud.delete_version(db, version_id)
    if deleted:
        logger.info("Version deleted successfully: ID %s", version_id)
    return deleted


def get_env_schema(db: Session, pipe_name: str, version_number: str) -> Any:
    """Return the stored env schema for a pipe version addressed by name."""
    pipe = crud.get_pipe_by_name(db, pipe_name)
    if pipe is None:
        raise PipeNotFoundError(pipe_name)
    version = crud.get_version_by_number(db, pipe.id, version_number)
    if version is None:
        raise VersionNotFoundError(pipe_name, version_number)
    return version.env_schema
