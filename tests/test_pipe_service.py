"""Tests for pipe registration, listing and download resolution."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import func, select, update

from pipe_registry.core.exceptions import (
    ArchiveTooLargeError,
    AssetNotFoundError,
    ConstraintViolationError,
    InvalidArchiveNameError,
    PipeNotFoundError,
    StorageWriteError,
    VersionNotFoundError,
)
from pipe_registry.db import crud
from pipe_registry.db.models import Pipe, Version
from pipe_registry.services import pipe_service

SCHEMA = {"API_KEY": {"type": "string", "required": True}}


def _register(db, store, name="acme", version="1.0.0", archive=b"tar-bytes", **kwargs):
    return pipe_service.register_version(
        db,
        store,
        name=name,
        version_number=version,
        env_schema=kwargs.pop("env_schema", SCHEMA),
        archive=archive,
        **kwargs,
    )


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def _set_created_at(db, version_id: int, when: datetime) -> None:
    db.execute(update(Version).where(Version.id == version_id).values(created_at=when))
    db.commit()


# =============================================================================
# Registration
# =============================================================================


class TestRegisterVersion:
    def test_first_registration_creates_pipe_and_version(self, db_session, archive_store):
        pipe, version = _register(db_session, archive_store, description="Acme pipe")

        assert pipe.name == "acme"
        assert pipe.description == "Acme pipe"
        assert version.pipe_id == pipe.id
        assert version.version_number == "1.0.0"
        assert version.env_schema == SCHEMA
        assert version.asset_url == "http://testserver/files/acme-1.0.0.tar"
        assert archive_store.resolve_path("acme-1.0.0.tar").read_bytes() == b"tar-bytes"
        assert _count(db_session, Pipe) == 1
        assert _count(db_session, Version) == 1

    def test_second_version_reuses_existing_pipe(self, db_session, archive_store):
        first_pipe, first = _register(db_session, archive_store, version="1.0.0")
        second_pipe, second = _register(db_session, archive_store, version="1.1.0")

        assert first_pipe.id == second_pipe.id
        assert first.id != second.id
        assert _count(db_session, Pipe) == 1
        assert [v.version_number for v in crud.list_versions_for_pipe(db_session, first_pipe.id)] == [
            "1.1.0",
            "1.0.0",
        ]

    def test_description_is_only_used_on_creation(self, db_session, archive_store):
        _register(db_session, archive_store, version="1.0.0", description="original")
        pipe, _ = _register(db_session, archive_store, version="2.0.0", description="ignored")

        assert pipe.description == "original"

    def test_without_archive_stores_empty_asset_url(self, db_session, archive_store):
        _, version = _register(db_session, archive_store, archive=None)

        assert version.asset_url == ""
        assert list(archive_store.root.iterdir()) == []

    def test_env_schema_is_stored_verbatim(self, db_session, archive_store):
        schema = {"nested": {"list": [1, "two", None]}, "flag": False}
        _, version = _register(db_session, archive_store, env_schema=schema)

        db_session.expire_all()
        assert crud.get_version(db_session, version.id).env_schema == schema

    def test_duplicate_version_is_rejected_and_archive_untouched(self, db_session, archive_store):
        _register(db_session, archive_store, archive=b"original")

        with pytest.raises(ConstraintViolationError) as exc_info:
            _register(db_session, archive_store, archive=b"replacement")

        assert exc_info.value.status_code == 409
        assert archive_store.resolve_path("acme-1.0.0.tar").read_bytes() == b"original"
        assert sorted(p.name for p in archive_store.root.iterdir()) == ["acme-1.0.0.tar"]
        assert _count(db_session, Version) == 1

    def test_same_version_number_allowed_across_pipes(self, db_session, archive_store):
        _, first = _register(db_session, archive_store, name="acme", version="1.0.0")
        _, second = _register(db_session, archive_store, name="globex", version="1.0.0")

        assert first.pipe_id != second.pipe_id
        assert _count(db_session, Version) == 2

    def test_oversized_archive_writes_nothing(self, db_session, archive_store):
        with pytest.raises(ArchiveTooLargeError):
            _register(db_session, archive_store, archive=b"x" * 100, max_archive_bytes=10)

        assert _count(db_session, Pipe) == 0
        assert list(archive_store.root.iterdir()) == []

    def test_name_escaping_storage_root_is_rejected(self, db_session, archive_store):
        with pytest.raises(InvalidArchiveNameError):
            _register(db_session, archive_store, name="../evil")

        assert _count(db_session, Pipe) == 0

    def test_adopts_pipe_created_concurrently(self, db_session, archive_store, monkeypatch):
        winner = crud.create_pipe(db_session, name="acme")
        original_lookup = crud.get_pipe_by_name
        calls: list[str] = []

        def stale_lookup(db, name):
            # The first lookup misses, as if the other writer had not committed yet
            calls.append(name)
            if len(calls) == 1:
                return None
            return original_lookup(db, name)

        monkeypatch.setattr(crud, "get_pipe_by_name", stale_lookup)

        pipe, version = _register(db_session, archive_store)

        assert pipe.id == winner.id
        assert version.pipe_id == winner.id
        assert calls == ["acme", "acme"]
        assert _count(db_session, Pipe) == 1

    def test_failed_rename_removes_new_pipe_and_version(self, db_session, archive_store, monkeypatch):
        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("pipe_registry.services.archive_store.os.replace", failing_replace)

        with pytest.raises(StorageWriteError):
            _register(db_session, archive_store)

        assert _count(db_session, Pipe) == 0
        assert _count(db_session, Version) == 0
        assert list(archive_store.root.iterdir()) == []

        monkeypatch.undo()
        pipe, version = _register(db_session, archive_store, archive=b"retry")

        assert version.pipe_id == pipe.id
        assert archive_store.resolve_path("acme-1.0.0.tar").read_bytes() == b"retry"

    def test_failed_rename_keeps_existing_pipe_and_allows_retry(
        self, db_session, archive_store, monkeypatch
    ):
        pipe, _ = _register(db_session, archive_store, version="1.0.0")
        pipe_id = pipe.id

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("pipe_registry.services.archive_store.os.replace", failing_replace)
        with pytest.raises(StorageWriteError):
            _register(db_session, archive_store, version="2.0.0")
        monkeypatch.undo()

        assert [v.version_number for v in crud.list_versions_for_pipe(db_session, pipe_id)] == ["1.0.0"]

        _, retried = _register(db_session, archive_store, version="2.0.0", archive=b"retry")

        assert retried.pipe_id == pipe_id
        assert archive_store.resolve_path("acme-2.0.0.tar").read_bytes() == b"retry"


# =============================================================================
# Listing and CRUD
# =============================================================================


class TestPipeListing:
    def test_pagination_returns_requested_slice(self, db_session):
        for index in range(1, 26):
            crud.create_pipe(db_session, name=f"pipe-{index:02d}")

        result = pipe_service.list_pipes(db_session, page=2, limit=10)

        # Newest first: page 2 holds pipes 15 down to 6
        assert [pipe.name for pipe in result.items] == [f"pipe-{i:02d}" for i in range(15, 5, -1)]
        assert result.total_count == 25
        assert result.total_pages == 3

    def test_search_is_case_insensitive_on_name_and_description(self, db_session):
        crud.create_pipe(db_session, name="Weather-Feed")
        crud.create_pipe(db_session, name="stocks", description="Daily WEATHER adjusted prices")
        crud.create_pipe(db_session, name="sports")

        result = pipe_service.list_pipes(db_session, search="weather")

        assert {pipe.name for pipe in result.items} == {"Weather-Feed", "stocks"}
        assert result.total_count == 2

    def test_search_treats_wildcards_literally(self, db_session):
        crud.create_pipe(db_session, name="100%-uptime")
        crud.create_pipe(db_session, name="plain")

        result = pipe_service.list_pipes(db_session, search="%")

        assert [pipe.name for pipe in result.items] == ["100%-uptime"]

    def test_include_versions_groups_versions_under_each_pipe(self, db_session, archive_store):
        _register(db_session, archive_store, name="acme", version="1.0.0", archive=None)
        _register(db_session, archive_store, name="acme", version="1.1.0", archive=None)
        _register(db_session, archive_store, name="globex", version="0.1.0", archive=None)
        crud.create_pipe(db_session, name="empty")

        result = pipe_service.list_pipes(db_session, include_versions=True)

        grouped = {item.pipe.name: [v.version_number for v in item.versions] for item in result.items}
        assert grouped == {"acme": ["1.1.0", "1.0.0"], "globex": ["0.1.0"], "empty": []}
        assert [item.pipe.name for item in result.items] == ["empty", "globex", "acme"]
        assert result.total_count == 3

    def test_include_versions_paginates_by_pipe_not_by_row(self, db_session, archive_store):
        for version in ("1", "2", "3"):
            _register(db_session, archive_store, name="acme", version=version, archive=None)
        _register(db_session, archive_store, name="globex", version="1", archive=None)

        result = pipe_service.list_pipes(db_session, page=2, limit=1, include_versions=True)

        assert len(result.items) == 1
        assert result.items[0].pipe.name == "acme"
        assert len(result.items[0].versions) == 3

    def test_update_pipe_changes_only_given_fields(self, db_session):
        pipe = crud.create_pipe(db_session, name="acme", description="old")

        updated = pipe_service.update_pipe(db_session, pipe.id, description="new")

        assert updated.name == "acme"
        assert updated.description == "new"

    def test_update_missing_pipe_returns_none(self, db_session):
        assert pipe_service.update_pipe(db_session, 999, name="x") is None

    def test_rename_to_existing_name_conflicts(self, db_session):
        crud.create_pipe(db_session, name="acme")
        other = crud.create_pipe(db_session, name="globex")

        with pytest.raises(ConstraintViolationError, match="Pipe with name 'acme' already exists"):
            pipe_service.update_pipe(db_session, other.id, name="acme")

    def test_delete_pipe_cascades_to_versions(self, db_session, archive_store):
        pipe, first = _register(db_session, archive_store)
        _, second = _register(db_session, archive_store, version="2.0.0")
        pipe_id, version_ids = pipe.id, [first.id, second.id]

        assert pipe_service.delete_pipe(db_session, pipe_id) is True

        # Cascaded rows are still in the identity map; lookups must not reload them
        assert _count(db_session, Version) == 0
        assert crud.get_pipe(db_session, pipe_id) is None
        assert [crud.get_version(db_session, version_id) for version_id in version_ids] == [None, None]
        assert crud.get_latest_version(db_session, pipe_id) is None
        # Archives are not removed with the pipe
        assert archive_store.exists("acme-1.0.0.tar")

    def test_delete_missing_pipe_returns_false(self, db_session):
        assert pipe_service.delete_pipe(db_session, 42) is False


# =============================================================================
# Download resolution
# =============================================================================


class TestResolveDownload:
    def test_latest_version_is_used_without_version_number(self, db_session, archive_store):
        _register(db_session, archive_store, version="1.0.0", archive=b"old")
        _register(db_session, archive_store, version="2.0.0", archive=b"new")

        target = pipe_service.resolve_download(db_session, archive_store, "acme")

        assert target.version.version_number == "2.0.0"
        assert target.filename == "acme-2.0.0.tar"
        assert target.path.read_bytes() == b"new"

    def test_latest_version_follows_created_at_before_id(self, db_session, archive_store):
        _, first = _register(db_session, archive_store, version="1.0.0", archive=b"newest")
        _, second = _register(db_session, archive_store, version="2.0.0", archive=b"oldest")
        _set_created_at(db_session, first.id, datetime(2030, 1, 1))
        _set_created_at(db_session, second.id, datetime(2020, 1, 1))

        target = pipe_service.resolve_download(db_session, archive_store, "acme")

        assert target.version.version_number == "1.0.0"
        assert target.path.read_bytes() == b"newest"

    def test_specific_version(self, db_session, archive_store):
        _register(db_session, archive_store, version="1.0.0", archive=b"old")
        _register(db_session, archive_store, version="2.0.0", archive=b"new")

        target = pipe_service.resolve_download(db_session, archive_store, "acme", "1.0.0")

        assert target.path.read_bytes() == b"old"

    def test_unknown_pipe(self, db_session, archive_store):
        with pytest.raises(PipeNotFoundError, match="Pipe 'ghost' not found"):
            pipe_service.resolve_download(db_session, archive_store, "ghost")

    def test_unknown_version(self, db_session, archive_store):
        _register(db_session, archive_store)

        with pytest.raises(VersionNotFoundError, match="version '9.9.9' not found"):
            pipe_service.resolve_download(db_session, archive_store, "acme", "9.9.9")

    def test_pipe_without_versions(self, db_session, archive_store):
        crud.create_pipe(db_session, name="empty")

        with pytest.raises(VersionNotFoundError, match="has no versions"):
            pipe_service.resolve_download(db_session, archive_store, "empty")

    def test_version_without_asset(self, db_session, archive_store):
        _register(db_session, archive_store, archive=None)

        with pytest.raises(AssetNotFoundError, match="No asset available"):
            pipe_service.resolve_download(db_session, archive_store, "acme")

    def test_archive_missing_from_disk(self, db_session, archive_store):
        _register(db_session, archive_store)
        archive_store.delete("acme-1.0.0.tar")

        with pytest.raises(AssetNotFoundError):
            pipe_service.resolve_download(db_session, archive_store, "acme", "1.0.0")
