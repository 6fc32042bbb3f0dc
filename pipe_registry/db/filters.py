"""Query filters shared by list and count operations.

Each filter turns its optional criteria into a list of SQL conditions, so a
list query and its matching count always apply the same predicate:

    stmt = select(Pipe).where(*filters.clauses())
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import ColumnElement, or_

from pipe_registry.db.models import Pipe, Version


@dataclass(frozen=True)
class PipeFilter:
    """Case-insensitive substring search on pipe name or description."""

    search: str | None = None

    def clauses(self) -> list[ColumnElement[bool]]:
        if not self.search:
            return []
        return [
            or_(
                Pipe.name.icontains(self.search, autoescape=True),
                Pipe.description.icontains(self.search, autoescape=True),
            )
        ]


@dataclass(frozen=True)
class VersionFilter:
    """Restrict versions to a single pipe."""

    pipe_id: int | None = None

    def clauses(self) -> list[ColumnElement[bool]]:
        if self.pipe_id is None:
            return []
        return [Version.pipe_id == self.pipe_id]
