"""Version request and response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from pipe_registry.db.models import Version
from pipe_registry.models.common import ApiModel


class VersionResponse(ApiModel):
    """Response schema for a version."""

    id: int
    pipe_id: int
    version_number: str
    asset_url: str
    env_schema: Any
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_orm_version(cls, version: Version) -> "VersionResponse":
        return cls(
            id=version.id,
            pipe_id=version.pipe_id,
            version_number=version.version_number,
            asset_url=version.asset_url,
            env_schema=version.env_schema,
            created_at=version.created_at,
            updated_at=version.updated_at,
        )


class VersionListData(ApiModel):
    versions: list[VersionResponse]
    total_count: int
    page: int
    limit: int
    total_pages: int


class VersionCreate(ApiModel):
    """Request schema for creating a version without an upload."""

    pipe_id: int = Field(..., ge=1)
    version_number: str = Field(..., min_length=1, max_length=50)
    asset_url: str = Field("", description="Archive URL, empty when there is no archive")
    env_schema: Any = Field(..., description="Opaque env schema document")


class VersionUpdate(ApiModel):
    """Request schema for updating a version. Omitted fields are left unchanged."""

    version_number: str | None = Field(None, min_length=1, max_length=50)
    asset_url: str | None = None
    env_schema: Any = None
