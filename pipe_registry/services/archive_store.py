"""Filesystem storage for uploaded pipe archives.

Archives live flat in the storage root under ``{pipe}-{version}.tar`` and are
served by the application under ``/files/``. Writes go through a staging file
in the same directory so a finished archive only ever appears via an atomic
rename.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

from pipe_registry.core.config import ARCHIVE_EXTENSION, FILES_URL_PREFIX
from pipe_registry.core.exceptions import (
    ArchiveTooLargeError,
    InvalidArchiveNameError,
    StorageWriteError,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
STAGING_PREFIX = ".staging-"


def archive_name(pipe_name: str, version_number: str) -> str:
    """Derive the stored file name for a pipe version."""
    return f"{pipe_name}-{version_number}{ARCHIVE_EXTENSION}"


@dataclass(frozen=True)
class StoredArchive:
    name: str
    path: Path
    url: str
    size: int


@dataclass(frozen=True)
class StagedArchive:
    name: str
    staging_path: Path
    size: int


class ArchiveStore:
    """Persist and look up archives below a single root directory."""

    def __init__(self, root: str | Path, base_url: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size

    def ensure_root(self) -> Path:
        if not self.root.exists():
            self.root.mkdir(parents=True, exist_ok=True)
            logger.info("Created storage directory: %s", self.root)
        return self.root

    def resolve_path(self, name: str) -> Path:
        """Return the on-disk path for an archive name, rejecting anything outside the root."""
        if not name or name != os.path.basename(name) or name.startswith("."):
            raise InvalidArchiveNameError(name)
        target = (self.root / name).resolve()
        if target.parent != self.root:
            raise InvalidArchiveNameError(name)
        return target

    def url_for(self, name: str) -> str:
        return f"{self.base_url}{FILES_URL_PREFIX}/{quote(name)}"

    def stage(
        self,
        source: bytes | BinaryIO,
        name: str,
        max_bytes: int | None = None,
    ) -> StagedArchive:
        """Stream ``source`` into a staging file without touching the final name.

        Raises:
            ArchiveTooLargeError: more than ``max_bytes`` were read.
            StorageWriteError: the staging file could not be written.
        """
        self.resolve_path(name)
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)

        try:
            self.ensure_root()
            handle = tempfile.NamedTemporaryFile(
                dir=self.root, prefix=STAGING_PREFIX, suffix=".part", delete=False
            )
        except OSError as error:
            logger.exception("Error creating staging file for %s", name)
            raise StorageWriteError() from error

        staging_path = Path(handle.name)
        total = 0
        try:
            with handle:
                while True:
                    chunk = source.read(self.chunk_size)
                    if not chunk:
                        break
                    total += len(chunk)
                    if max_bytes is not None and total > max_bytes:
                        raise ArchiveTooLargeError(max_bytes)
                    handle.write(chunk)
        except ArchiveTooLargeError:
            staging_path.unlink(missing_ok=True)
            raise
        except OSError as error:
            staging_path.unlink(missing_ok=True)
            logger.exception("Error storing file %s", name)
            raise StorageWriteError() from error

        return StagedArchive(name=name, staging_path=staging_path, size=total)

    def commit(self, staged: StagedArchive) -> StoredArchive:
        """Move a staged archive to its final name, replacing any previous file."""
        target = self.resolve_path(staged.name)
        try:
            os.replace(staged.staging_path, target)
        except OSError as error:
            staged.staging_path.unlink(missing_ok=True)
            logger.exception("Error finalizing file %s", staged.name)
            raise StorageWriteError() from error

        logger.info("File stored successfully: %s (%d bytes)", staged.name, staged.size)
        return StoredArchive(
            name=staged.name,
            path=target,
            url=self.url_for(staged.name),
            size=staged.size,
        )

    def discard(self, staged: StagedArchive) -> None:
        staged.staging_path.unlink(missing_ok=True)

    def store(
        self,
        source: bytes | BinaryIO,
        name: str,
        max_bytes: int | None = None,
    ) -> StoredArchive:
        """Persist an archive in one step."""
        return self.commit(self.stage(source, name, max_bytes=max_bytes))

    def exists(self, name: str) -> bool:
        try:
            return self.resolve_path(name).is_file()
        except InvalidArchiveNameError:
            return False

    def delete(self, name: str) -> bool:
        """Remove an archive. Returns False if there was nothing to remove."""
        try:
            self.resolve_path(name).unlink()
        except (FileNotFoundError, InvalidArchiveNameError):
            return False
        logger.info("File deleted: %s", name)
        return True
