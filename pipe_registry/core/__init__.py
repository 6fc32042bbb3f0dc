"""Core module - configuration and exceptions."""

from __future__ import annotations

from pipe_registry.core.config import (
    ARCHIVE_EXTENSION,
    ARCHIVE_MEDIA_TYPE,
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    FILES_URL_PREFIX,
    Settings,
    settings,
)
from pipe_registry.core.exceptions import (
    ArchiveTooLargeError,
    AssetNotFoundError,
    ConstraintViolationError,
    InvalidArchiveNameError,
    MissingFieldError,
    NotFoundError,
    PipeNotFoundError,
    PipeRegistryError,
    StorageWriteError,
    ValidationError,
    VersionNotFoundError,
)

__all__ = [
    "Settings",
    "settings",
    "ARCHIVE_EXTENSION",
    "ARCHIVE_MEDIA_TYPE",
    "DEFAULT_PAGE",
    "DEFAULT_PAGE_SIZE",
    "FILES_URL_PREFIX",
    "PipeRegistryError",
    "ValidationError",
    "MissingFieldError",
    "InvalidArchiveNameError",
    "ArchiveTooLargeError",
    "NotFoundError",
    "PipeNotFoundError",
    "VersionNotFoundError",
    "AssetNotFoundError",
    "ConstraintViolationError",
    "StorageWriteError",
]
