"""Application configuration and constants."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    app_name: str = "Pipe Registry"
    debug: bool = False
    environment: str = "dev"  # dev, staging, prod
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"

    # Archive storage
    storage_dir: str = "./uploads"
    base_url: str = "http://localhost:3000"  # Public prefix for generated archive links
    max_upload_size_mb: int = 1000

    # Database
    database_url: str = "sqlite:///./pipe_registry.db"
    auto_create_tables: bool = False  # Production schemas are managed by Alembic

    class Config:
        env_file = ".env"
        env_prefix = "PIPE_REGISTRY_"
        extra = "ignore"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


settings = Settings()


def get_cors_origins(config: Settings | None = None) -> list[str]:
    """Parse CORS origins from settings.

    Returns:
        List of allowed origin strings. Returns ["*"] only in dev mode if origins is "*".
    """
    config = config or settings
    origins_str = config.cors_origins.strip()

    # Only allow wildcard in dev mode
    if origins_str == "*":
        if config.environment == "dev":
            return ["*"]
        else:
            return []

    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


# Archives are always served with this media type
ARCHIVE_MEDIA_TYPE = "application/x-tar"
ARCHIVE_EXTENSION = ".tar"

# URL prefix under which the storage root is mounted
FILES_URL_PREFIX = "/files"

# Pagination defaults
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
