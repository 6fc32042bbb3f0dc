"""SQLAlchemy ORM models for database persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipe_registry.db.database import Base


class Pipe(Base):
    """A named artifact package; the unit of versioning."""

    __tablename__ = "pipes"
    __table_args__ = (UniqueConstraint("name", name="uq_pipes_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    # Deletion is cascaded by the database, not by the session
    versions: Mapped[list["Version"]] = relationship(
        "Version",
        back_populates="pipe",
        passive_deletes=True,
        order_by="desc(Version.id)",
    )

    def __repr__(self) -> str:
        return f"<Pipe(id={self.id}, name={self.name})>"


class Version(Base):
    """One release of a pipe with its archive link and env schema."""

    __tablename__ = "versions"
    __table_args__ = (
        Index("ix_versions_pipe_id", "pipe_id"),
        Index("ix_versions_pipe_version", "pipe_id", "version_number", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("pipes.id", ondelete="CASCADE"), nullable=False
    )
    version_number: Mapped[str] = mapped_column(String(50), nullable=False)
    asset_url: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Opaque document, stored and returned verbatim
    env_schema: Mapped[Any] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    pipe: Mapped["Pipe"] = relationship("Pipe", back_populates="versions")

    def __repr__(self) -> str:
        return f"<Version(id={self.id}, pipe_id={self.pipe_id}, version={self.version_number})>"
