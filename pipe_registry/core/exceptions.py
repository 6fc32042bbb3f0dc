"""Custom exceptions for the pipe registry."""

from __future__ import annotations

from typing import Any


class PipeRegistryError(Exception):
    """Base exception for all pipe registry errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to error response dict."""
        error: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(PipeRegistryError):
    """Missing or malformed client input."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class MissingFieldError(ValidationError):
    """A required request field was not supplied."""

    code = "MISSING_FIELD"

    def __init__(self, field: str):
        super().__init__(f"Missing required field: {field}", field=field)


class InvalidArchiveNameError(ValidationError):
    """Derived archive name would escape the storage root."""

    code = "INVALID_ARCHIVE_NAME"

    def __init__(self, name: str):
        super().__init__(f"Invalid archive name '{name}'", field="name")


class ArchiveTooLargeError(ValidationError):
    """Uploaded archive exceeded the configured ceiling."""

    code = "ARCHIVE_TOO_LARGE"
    status_code = 413

    def __init__(self, max_bytes: int):
        super().__init__(f"File too large. Max {max_bytes // (1024 * 1024)}MB", field="file")
        self.details["max_bytes"] = max_bytes


class NotFoundError(PipeRegistryError):
    """Requested entity or file does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class PipeNotFoundError(NotFoundError):
    """No pipe matches the given id or name."""

    code = "PIPE_NOT_FOUND"

    def __init__(self, pipe: int | str | None = None):
        if pipe is None:
            message = "Pipe not found"
        elif isinstance(pipe, int):
            message = f"Pipe {pipe} not found"
        else:
            message = f"Pipe '{pipe}' not found"
        super().__init__(message)


class VersionNotFoundError(NotFoundError):
    """No version matches within the resolved pipe."""

    code = "VERSION_NOT_FOUND"

    def __init__(self, pipe_name: str | None = None, version_number: str | None = None):
        if pipe_name is None:
            message = "Version not found"
        elif version_number is None:
            message = f"Pipe '{pipe_name}' has no versions"
        else:
            message = f"Pipe '{pipe_name}' version '{version_number}' not found"
        super().__init__(message)


class AssetNotFoundError(NotFoundError):
    """The resolved version has no downloadable archive."""

    code = "ASSET_NOT_FOUND"

    def __init__(self, pipe_name: str, version_number: str):
        super().__init__(
            f"No asset available for pipe '{pipe_name}' version '{version_number}'",
        )


class ConstraintViolationError(PipeRegistryError):
    """A storage-level uniqueness or reference constraint rejected a write."""

    code = "CONSTRAINT_VIOLATION"
    status_code = 409


class StorageWriteError(PipeRegistryError):
    """Archive could not be persisted to the storage root."""

    code = "STORAGE_WRITE_FAILED"
    status_code = 500

    def __init__(self, message: str = "Failed to store file"):
        super().__init__(message)
