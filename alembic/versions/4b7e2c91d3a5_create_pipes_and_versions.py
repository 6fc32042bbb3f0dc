"""create pipes and versions tables

Revision ID: 4b7e2c91d3a5
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4b7e2c91d3a5"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "pipes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_pipes_name"),
    )

    op.create_table(
        "versions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pipe_id", sa.Integer(), nullable=False),
        sa.Column("version_number", sa.String(length=50), nullable=False),
        sa.Column("asset_url", sa.Text(), nullable=False),
        sa.Column("env_schema", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["pipe_id"], ["pipes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_versions_pipe_id", "versions", ["pipe_id"], unique=False)
    op.create_index(
        "ix_versions_pipe_version", "versions", ["pipe_id", "version_number"], unique=True
    )


def downgrade() -> None:
    op.drop_index("ix_versions_pipe_version", table_name="versions")
    op.drop_index("ix_versions_pipe_id", table_name="versions")
    op.drop_table("versions")
    op.drop_table("pipes")
