"""CRUD operations for database models.

Lookups return ``None`` for missing rows; integrity failures are rolled back
and re-raised as ``ConstraintViolationError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pipe_registry.core.exceptions import ConstraintViolationError
from pipe_registry.db.filters import PipeFilter, VersionFilter
from pipe_registry.db.models import Pipe, Version

logger = logging.getLogger(__name__)


@dataclass
class PipeWithVersions:
    """A pipe row together with its versions, newest first."""

    pipe: Pipe
    versions: list[Version] = field(default_factory=list)


def _commit(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError as error:
        db.rollback()
        logger.warning("Integrity error on commit", extra={"error": str(error.orig)})
        raise ConstraintViolationError(conflict_message) from error


# =============================================================================
# Pipe CRUD
# =============================================================================


def create_pipe(db: Session, name: str, description: str | None = None) -> Pipe:
    """Create a new pipe."""
    pipe = Pipe(name=name, description=description)
    db.add(pipe)
    _commit(db, f"Pipe with name '{name}' already exists")
    db.refresh(pipe)
    return pipe


def get_pipe(db: Session, pipe_id: int) -> Pipe | None:
    """Get a pipe by ID."""
    stmt = select(Pipe).where(Pipe.id == pipe_id)
    return db.execute(stmt).scalar_one_or_none()


def get_pipe_by_name(db: Session, name: str) -> Pipe | None:
    """Get a pipe by name."""
    stmt = select(Pipe).where(Pipe.name == name)
    return db.execute(stmt).scalar_one_or_none()


def list_pipes(db: Session, filters: PipeFilter, skip: int = 0, limit: int = 10) -> list[Pipe]:
    """List pipes matching the filter, newest first."""
    stmt = (
        select(Pipe)
        .where(*filters.clauses())
        .order_by(Pipe.created_at.desc(), Pipe.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def list_pipes_with_versions(
    db: Session,
    filters: PipeFilter,
    page: int = 1,
    limit: int = 10,
) -> list[PipeWithVersions]:
    """List pipes with their versions nested.

    The join yields one row per (pipe, version) pair, so a row-level LIMIT
    would cut a pipe's versions short. All matching rows are fetched, grouped
    by pipe in arrival order, and the page is sliced from the grouped list.
    """
    stmt = (
        select(Pipe, Version)
        .outerjoin(Version, Version.pipe_id == Pipe.id)
        .where(*filters.clauses())
        .order_by(
            Pipe.created_at.desc(),
            Pipe.id.desc(),
            Version.created_at.desc(),
            Version.id.desc(),
        )
    )

    grouped: dict[int, PipeWithVersions] = {}
    for pipe, version in db.execute(stmt).all():
        entry = grouped.setdefault(pipe.id, PipeWithVersions(pipe=pipe))
        if version is not None:
            entry.versions.append(version)

    start = (page - 1) * limit
    return list(grouped.values())[start : start + limit]


def count_pipes(db: Session, filters: PipeFilter) -> int:
    """Count pipes matching the filter."""
    stmt = select(func.count()).select_from(Pipe).where(*filters.clauses())
    return db.execute(stmt).scalar_one()


def update_pipe(
    db: Session,
    pipe: Pipe,
    name: str | None = None,
    description: str | None = None,
) -> Pipe:
    """Update pipe metadata. ``updated_at`` is refreshed even when nothing changed."""
    if name is not None:
        pipe.name = name
    if description is not None:
        pipe.description = description
    pipe.updated_at = func.now()
    _commit(db, f"Pipe with name '{pipe.name}' already exists")
    db.refresh(pipe)
    return pipe


def delete_pipe(db: Session, pipe_id: int) -> bool:
    """Delete a pipe; its versions are removed by the foreign key cascade.

    The cascade happens outside the ORM, so version objects of the pipe still
    held by the session are expunged.
    """
    version_ids = set(db.execute(select(Version.id).where(Version.pipe_id == pipe_id)).scalars())
    result = db.execute(delete(Pipe).where(Pipe.id == pipe_id))
    db.commit()

    for instance in list(db.identity_map.values()):
        if isinstance(instance, Version) and inspect(instance).identity[0] in version_ids:
            db.expunge(instance)
    return result.rowcount > 0


# =============================================================================
# Version CRUD
# =============================================================================


def create_version(
    db: Session,
    pipe_id: int,
    version_number: str,
    env_schema: Any,
    asset_url: str = "",
) -> Version:
    """Create a new version for a pipe."""
    version = Version(
        pipe_id=pipe_id,
        version_number=version_number,
        asset_url=asset_url,
        env_schema=env_schema,
    )
    db.add(version)
    _commit(db, f"Version '{version_number}' already exists for this pipe")
    db.refresh(version)
    return version


def get_version(db: Session, version_id: int) -> Version | None:
    """Get a version by ID."""
    stmt = select(Version).where(Version.id == version_id)
    return db.execute(stmt).scalar_one_or_none()


def list_versions_for_pipe(db: Session, pipe_id: int) -> list[Version]:
    """List all versions for a pipe, newest first."""
    stmt = (
        select(Version)
        .where(Version.pipe_id == pipe_id)
        .order_by(Version.created_at.desc(), Version.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def get_version_by_number(db: Session, pipe_id: int, version_number: str) -> Version | None:
    """Get the version of a pipe with an exact version number."""
    stmt = select(Version).where(
        Version.pipe_id == pipe_id,
        Version.version_number == version_number,
    )
    return db.execute(stmt).scalar_one_or_none()


def get_latest_version(db: Session, pipe_id: int) -> Version | None:
    """Get the most recently created version for a pipe."""
    stmt = (
        select(Version)
        .where(Version.pipe_id == pipe_id)
        .order_by(Version.created_at.desc(), Version.id.desc())
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def list_versions(
    db: Session,
    filters: VersionFilter,
    skip: int = 0,
    limit: int = 10,
) -> list[Version]:
    """List versions matching the filter, newest first."""
    stmt = (
        select(Version)
        .where(*filters.clauses())
        .order_by(Version.created_at.desc(), Version.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def count_versions(db: Session, filters: VersionFilter) -> int:
    """Count versions matching the filter."""
    stmt = select(func.count()).select_from(Version).where(*filters.clauses())
    return db.execute(stmt).scalar_one()


_UNSET: Any = object()


def update_version(
    db: Session,
    version: Version,
    version_number: str | None = None,
    asset_url: str | None = None,
    env_schema: Any = _UNSET,
) -> Version:
    """Update a version in place. ``updated_at`` is always refreshed."""
    if version_number is not None:
        version.version_number = version_number
    if asset_url is not None:
        version.asset_url = asset_url
    if env_schema is not _UNSET:
        version.env_schema = env_schema
    version.updated_at = func.now()
    _commit(db, f"Version '{version.version_number}' already exists for this pipe")
    db.refresh(version)
    return version


def delete_version(db: Session, version_id: int) -> bool:
    """Delete a version by ID."""
    result = db.execute(delete(Version).where(Version.id == version_id))
    db.commit()
    return result.rowcount > 0
