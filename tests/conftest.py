"""Shared fixtures: an isolated app per test plus bare session/store pairs."""

from __future__ import annotations

import io
import json
import tarfile
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from pipe_registry.core.config import Settings
from pipe_registry.db.database import Base, create_db_engine, create_session_factory
from pipe_registry.main import create_app
from pipe_registry.services.archive_store import ArchiveStore

TEST_BASE_URL = "http://testserver"


def make_tar(files: dict[str, bytes] | None = None) -> bytes:
    """Build a small in-memory tar archive."""
    files = files or {"pipe.yaml": b"name: demo\n"}
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def upload_pipe(
    client: TestClient,
    name: str = "acme",
    version: str = "1.0.0",
    env_schema: Any = None,
    content: bytes | None = None,
    description: str | None = None,
    content_type: str = "application/x-tar",
):
    """POST a multipart registration and return the raw response."""
    data = {
        "name": name,
        "version": version,
        "envSchema": json.dumps(env_schema if env_schema is not None else {"API_KEY": "string"}),
    }
    if description is not None:
        data["description"] = description
    archive = content if content is not None else make_tar()
    return client.post(
        "/pipes",
        data=data,
        files={"file": (f"{name}.tar", archive, content_type)},
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url="sqlite://",
        storage_dir=str(tmp_path / "uploads"),
        base_url=TEST_BASE_URL,
        max_upload_size_mb=1,
        auto_create_tables=True,
    )


@pytest.fixture
def app(test_settings) -> FastAPI:
    return create_app(test_settings)


@pytest.fixture(scope="function")
def client(app) -> Iterator[TestClient]:
    """Create test client with a fresh in-memory database."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Bare session against an in-memory database for service tests."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def archive_store(tmp_path) -> ArchiveStore:
    store = ArchiveStore(tmp_path / "archives", TEST_BASE_URL)
    store.ensure_root()
    return store
