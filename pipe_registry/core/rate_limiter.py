"""Rate limiting configuration using slowapi.

Archive uploads stream up to ``max_upload_size_mb`` to disk, so the upload
endpoint is limited per client address.

Rate limiting is disabled in dev environment for easier development and testing.
``create_app`` re-applies this from the settings it is given.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from pipe_registry.core.config import Settings, settings

IS_DEV_ENVIRONMENT = settings.environment.lower() == "dev"

# In-memory storage (single instance). For several replicas configure Redis:
#   limiter = Limiter(key_func=get_remote_address, storage_uri="redis://localhost:6379")
limiter = Limiter(key_func=get_remote_address, enabled=not IS_DEV_ENVIRONMENT)

UPLOAD_RATE_LIMIT = "20/minute"


def configure_limiter(config: Settings) -> Limiter:
    """Switch the shared limiter on or off for the environment of ``config``."""
    limiter.enabled = config.environment.lower() != "dev"
    return limiter
