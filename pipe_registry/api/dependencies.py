"""FastAPI dependencies resolving per-application collaborators."""

from __future__ import annotations

from fastapi import Request

from pipe_registry.core.config import Settings
from pipe_registry.services.archive_store import ArchiveStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_archive_store(request: Request) -> ArchiveStore:
    return request.app.state.archive_store
