from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import upload_pipe
from pipe_registry.core.config import Settings, get_cors_origins
from pipe_registry.core.exceptions import (
    ArchiveTooLargeError,
    MissingFieldError,
    PipeNotFoundError,
    StorageWriteError,
    VersionNotFoundError,
)
from pipe_registry.core.rate_limiter import IS_DEV_ENVIRONMENT, limiter
from pipe_registry.main import create_app


class TestSettings:
    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("PIPE_REGISTRY_PORT", "8080")
        monkeypatch.setenv("PIPE_REGISTRY_STORAGE_DIR", "/srv/archives")

        config = Settings()

        assert config.port == 8080
        assert config.storage_dir == "/srv/archives"

    def test_max_upload_size_bytes(self):
        assert Settings(max_upload_size_mb=2).max_upload_size_bytes == 2 * 1024 * 1024

    def test_cors_origins_are_split_and_trimmed(self):
        config = Settings(cors_origins=" http://a.test , http://b.test,, ")
        assert get_cors_origins(config) == ["http://a.test", "http://b.test"]

    def test_wildcard_cors_only_in_dev(self):
        assert get_cors_origins(Settings(cors_origins="*", environment="dev")) == ["*"]
        assert get_cors_origins(Settings(cors_origins="*", environment="prod")) == []


@pytest.fixture
def shared_limiter():
    """Restore the process-wide limiter after a test reconfigures it."""
    enabled = limiter.enabled
    limiter.reset()
    yield limiter
    limiter.enabled = enabled
    limiter.reset()


class TestRateLimitingConfiguration:
    def test_rate_limiter_disabled_in_dev(self, test_settings, shared_limiter):
        """Uploads are not rate limited in the default dev environment."""
        assert IS_DEV_ENVIRONMENT is True

        app = create_app(test_settings)

        assert app.state.limiter.enabled is False

    def test_rate_limiter_follows_app_settings(self, test_settings, shared_limiter):
        prod_settings = test_settings.model_copy(update={"environment": "prod"})

        assert create_app(prod_settings).state.limiter.enabled is True
        assert create_app(test_settings).state.limiter.enabled is False

    def test_uploads_limited_outside_dev(self, test_settings, shared_limiter):
        prod_settings = test_settings.model_copy(update={"environment": "prod"})

        with TestClient(create_app(prod_settings)) as client:
            for index in range(20):
                response = upload_pipe(client, version=f"1.0.{index}")
                assert response.status_code == 201, f"Upload {index + 1} should be allowed"

            assert upload_pipe(client, version="2.0.0").status_code == 429
            # Reads are not limited
            assert client.get("/pipes").status_code == 200


class TestErrorPayloads:
    def test_missing_field_payload(self):
        assert MissingFieldError("name").to_dict() == {
            "success": False,
            "error": "Missing required field: name",
            "code": "MISSING_FIELD",
            "details": {"field": "name"},
        }

    def test_not_found_messages(self):
        assert PipeNotFoundError().message == "Pipe not found"
        assert PipeNotFoundError(3).message == "Pipe 3 not found"
        assert VersionNotFoundError("acme").message == "Pipe 'acme' has no versions"
        assert VersionNotFoundError().status_code == 404

    def test_archive_too_large_reports_limit(self):
        error = ArchiveTooLargeError(5 * 1024 * 1024)
        assert error.status_code == 413
        assert error.message == "File too large. Max 5MB"
        assert error.details == {"field": "file", "max_bytes": 5 * 1024 * 1024}

    def test_storage_error_is_generic(self):
        assert StorageWriteError().to_dict()["error"] == "Failed to store file"
