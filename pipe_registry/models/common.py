"""Response envelope and shared API models."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for API models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(ApiModel, Generic[T]):
    """Successful response wrapper."""

    success: bool = Field(True, description="Whether the request succeeded")
    data: T
    message: str | None = Field(None, description="Human readable outcome")


class HealthResponse(ApiModel):
    success: bool = True
    message: str
    timestamp: datetime
