"""Pipe request and response models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from pipe_registry.db.models import Pipe, Version
from pipe_registry.models.common import ApiModel
from pipe_registry.models.version import VersionResponse


class PipeResponse(ApiModel):
    """Response schema for a pipe.

    ``versions`` is only populated when the listing asked for them.
    """

    id: int
    name: str
    description: str | None
    created_at: datetime
    updated_at: datetime
    versions: list[VersionResponse] | None = None

    @classmethod
    def from_orm_pipe(cls, pipe: Pipe, versions: list[Version] | None = None) -> "PipeResponse":
        return cls(
            id=pipe.id,
            name=pipe.name,
            description=pipe.description,
            created_at=pipe.created_at,
            updated_at=pipe.updated_at,
            versions=(
                [VersionResponse.from_orm_version(version) for version in versions]
                if versions is not None
                else None
            ),
        )


class PipeListData(ApiModel):
    pipes: list[PipeResponse]
    total_count: int
    page: int
    limit: int
    total_pages: int


class PipeRegistration(ApiModel):
    """A pipe together with the version a registration created."""

    pipe: PipeResponse
    version: VersionResponse


class PipeUpdate(ApiModel):
    """Request schema for updating a pipe."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
