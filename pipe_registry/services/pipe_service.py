"""Pipe service for registering versions and resolving downloads.

``register_version`` is the upsert entry point: it creates the pipe on first
use of a name and attaches a new version on every call. ``resolve_download``
maps a pipe name and optional version number to an archive on disk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

from sqlalchemy.orm import Session

from pipe_registry.core.config import DEFAULT_PAGE, DEFAULT_PAGE_SIZE
from pipe_registry.core.exceptions import (
    AssetNotFoundError,
    ConstraintViolationError,
    PipeNotFoundError,
    StorageWriteError,
    VersionNotFoundError,
)
from pipe_registry.db import crud
from pipe_registry.db.crud import PipeWithVersions
from pipe_registry.db.filters import PipeFilter
from pipe_registry.db.models import Pipe, Version
from pipe_registry.services import version_service
from pipe_registry.services.archive_store import ArchiveStore, StagedArchive, archive_name
from pipe_registry.utils.pagination import Page, page_offset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadTarget:
    """A resolved pipe version and the archive file that backs it."""

    pipe: Pipe
    version: Version
    path: Path

    @property
    def filename(self) -> str:
        return archive_name(self.pipe.name, self.version.version_number)


# =============================================================================
# Registration
# =============================================================================


def register_version(
    db: Session,
    store: ArchiveStore,
    *,
    name: str,
    version_number: str,
    env_schema: Any,
    description: str | None = None,
    archive: bytes | BinaryIO | None = None,
    max_archive_bytes: int | None = None,
) -> tuple[Pipe, Version]:
    """Create the pipe if needed and attach a new version to it.

    The archive, when given, is streamed to a staging file before any row is
    written and only moved to its final name once the version row is
    committed. A failed insert discards the staged file, so an existing
    version's archive is never overwritten by a rejected duplicate. If the
    final rename fails, the version row (and the pipe, when this call created
    it) is deleted again so the version can be registered on a retry.

    Args:
        db: Database session
        store: Archive store receiving the upload
        name: Pipe name (the upsert key)
        version_number: Version label, unique within the pipe
        env_schema: Opaque env schema document
        description: Description used only when the pipe is created
        archive: Archive bytes or a readable binary stream
        max_archive_bytes: Upload ceiling enforced while streaming

    Returns:
        Tuple of the (possibly new) pipe and the created version

    Raises:
        StorageWriteError: the archive could not be written
        ArchiveTooLargeError: the archive exceeded ``max_archive_bytes``
        ConstraintViolationError: the pipe already has ``version_number``
    """
    staged: StagedArchive | None = None
    asset_url = ""
    if archive is not None:
        staged = store.stage(archive, archive_name(name, version_number), max_bytes=max_archive_bytes)
        asset_url = store.url_for(staged.name)

    created_pipe = False
    try:
        pipe = crud.get_pipe_by_name(db, name)
        if pipe is None:
            pipe, created_pipe = _create_pipe_for_name(db, name, description)

        version = version_service.create_version(
            db,
            pipe_id=pipe.id,
            version_number=version_number,
            env_schema=env_schema,
            asset_url=asset_url,
        )
    except Exception:
        if staged is not None:
            store.discard(staged)
        raise

    if staged is not None:
        try:
            store.commit(staged)
        except StorageWriteError:
            _undo_registration(db, pipe.id if created_pipe else None, version.id)
            raise

    logger.info("Pipe created/updated successfully: %s:%s", pipe.name, version.version_number)
    return pipe, version


def _create_pipe_for_name(db: Session, name: str, description: str | None) -> tuple[Pipe, bool]:
    """Create a pipe, adopting a concurrently created pipe of the same name.

    Returns the pipe and whether this call created it.
    """
    try:
        return crud.create_pipe(db, name=name, description=description), True
    except ConstraintViolationError:
        existing = crud.get_pipe_by_name(db, name)
        if existing is None:
            raise
        logger.info("Pipe %s was created concurrently; reusing it", name)
        return existing, False


def _undo_registration(db: Session, pipe_id: int | None, version_id: int) -> None:
    """Remove the rows of a registration whose archive never reached its final name."""
    if pipe_id is not None:
        crud.delete_pipe(db, pipe_id)
    else:
        crud.delete_version(db, version_id)
    logger.warning(
        "Registration rolled back after storage failure",
        extra={"pipe_id": pipe_id, "version_id": version_id},
    )


# =============================================================================
# Pipe CRUD
# =============================================================================


def get_pipe(db: Session, pipe_id: int) -> Pipe | None:
    return crud.get_pipe(db, pipe_id)


def list_pipes(
    db: Session,
    *,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_PAGE_SIZE,
    search: str | None = None,
    include_versions: bool = False,
) -> Page[Pipe] | Page[PipeWithVersions]:
    """List pipes newest first, optionally with their versions nested."""
    filters = PipeFilter(search=search)
    if include_versions:
        items: list[Any] = crud.list_pipes_with_versions(db, filters, page=page, limit=limit)
    else:
        items = crud.list_pipes(db, filters, skip=page_offset(page, limit), limit=limit)
    total_count = crud.count_pipes(db, filters)
    return Page(items=items, total_count=total_count, page=page, limit=limit)


def update_pipe(
    db: Session,
    pipe_id: int,
    name: str | None = None,
    description: str | None = None,
) -> Pipe | None:
    pipe = crud.get_pipe(db, pipe_id)
    if pipe is None:
        return None
    pipe = crud.update_pipe(db, pipe, name=name, description=description)
    logger.info("Pipe updated successfully: %s", pipe.name, extra={"pipe_id": pipe.id})
    return pipe


def delete_pipe(db: Session, pipe_id: int) -> bool:
    """Delete a pipe and, through the cascade, all of its versions.

    Stored archives are left in place.
    """
    deleted = crud.delete_pipe(db, pipe_id)
    if deleted:
        logger.info("Pipe deleted successfully: ID %s", pipe_id)
    return deleted


# =============================================================================
# Download
# =============================================================================


def resolve_download(
    db: Session,
    store: ArchiveStore,
    name: str,
    version_number: str | None = None,
) -> DownloadTarget:
    """Locate the archive for a pipe version.

    Without ``version_number`` the most recently created version is used.
    A version row is only downloadable if it has an asset URL and its archive
    is present in the store.

    Raises:
        PipeNotFoundError: no pipe has this name
        VersionNotFoundError: no matching version (or no versions at all)
        AssetNotFoundError: the version has no archive on disk
    """
    pipe = crud.get_pipe_by_name(db, name)
    if pipe is None:
        raise PipeNotFoundError(name)

    if version_number is not None:
        version = crud.get_version_by_number(db, pipe.id, version_number)
    else:
        version = crud.get_latest_version(db, pipe.id)
    if version is None:
        raise VersionNotFoundError(name, version_number)

    if not version.asset_url:
        raise AssetNotFoundError(pipe.name, version.version_number)

    file_name = archive_name(pipe.name, version.version_number)
    if not store.exists(file_name):
        logger.warning("File not found: %s", file_name, extra={"version_id": version.id})
        raise AssetNotFoundError(pipe.name, version.version_number)

    return DownloadTarget(pipe=pipe, version=version, path=store.resolve_path(file_name))
