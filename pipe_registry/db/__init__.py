"""Database module exports."""

from pipe_registry.db import crud
from pipe_registry.db.database import Base, create_db_engine, create_session_factory, get_db
from pipe_registry.db.filters import PipeFilter, VersionFilter
from pipe_registry.db.models import Pipe, Version

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "get_db",
    "Pipe",
    "Version",
    "PipeFilter",
    "VersionFilter",
    "crud",
]
