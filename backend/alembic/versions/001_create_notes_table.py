"""Create notes table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `notes` catalog table and its sort-order index.
How:   Portable column types (sa.Uuid, sa.JSON with a JSONB variant) so the
       same revision applies to PostgreSQL and SQLite.

Rollback: downgrade() drops the table; stored PDFs are left on disk.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "notes",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, comment="Unique identifier, immutable"),

        # Descriptive metadata
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("year", sa.String(64), nullable=True),
        sa.Column("section", sa.String(64), nullable=True),
        sa.Column("faculty", sa.String(255), nullable=True),

        sa.Column(
            "file_path",
            sa.String(255),
            nullable=False,
            comment="Relative path from storage root to the uploaded PDF",
        ),

        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("uploader_id", sa.String(64), nullable=True),

        # Ratings are embedded; avg_rating and version change with them
        sa.Column(
            "ratings",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            server_default=sa.text("'[]'"),
            comment="Embedded rating entries, at most one per rater_id",
        ),
        sa.Column(
            "avg_rating",
            sa.Float(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Mean of ratings[].value, 0 when there are no ratings",
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default=sa.text("0")),

        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
            comment="When this note was uploaded (UTC)",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_notes_uploader_id", "notes", ["uploader_id"])
    # Catalog order: best rated first, then newest
    op.create_index(
        "idx_notes_rating_created",
        "notes",
        [sa.text("avg_rating DESC"), sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_notes_rating_created", table_name="notes")
    op.drop_index("ix_notes_uploader_id", table_name="notes")
    op.drop_table("notes")
