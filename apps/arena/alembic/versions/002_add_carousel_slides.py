"""add_carousel_slides

Revision ID: 002
Revises: 001
Create Date: 2024-03-02 00:00:00.000000

Add carousel_slides table for the dashboard carousel managed from the admin panel.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(conn, table_name: str) -> bool:
    """Check if a table exists (001 builds from metadata, so it may already be there)."""
    return sa.inspect(conn).has_table(table_name)


def upgrade() -> None:
    """Create carousel_slides table."""
    conn = op.get_bind()

    if not _table_exists(conn, "carousel_slides"):
        op.create_table(
            "carousel_slides",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("image_url", sa.String(length=500), nullable=False, server_default=""),
            sa.Column("hint", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade() -> None:
    """Drop carousel_slides table."""
    op.drop_table("carousel_slides")
