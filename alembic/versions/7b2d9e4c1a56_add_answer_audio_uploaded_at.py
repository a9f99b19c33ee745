"""Add answers.audio_uploaded_at for the retention window

Revision ID: 7b2d9e4c1a56
Revises: 4f1c2a9e7b30
Create Date: 2026-10-18 16:05:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7b2d9e4c1a56"
down_revision: str | Sequence[str] | None = "4f1c2a9e7b30"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add the column and backfill existing audio from created_at."""
    op.add_column(
        "answers",
        sa.Column("audio_uploaded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.execute(
        "UPDATE answers SET audio_uploaded_at = created_at "
        "WHERE audio_url IS NOT NULL"
    )


def downgrade() -> None:
    """Drop answers.audio_uploaded_at."""
    op.drop_column("answers", "audio_uploaded_at")
