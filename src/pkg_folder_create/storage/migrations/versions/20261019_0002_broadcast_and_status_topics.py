"""Add broadcast command topic and manager status topic tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "broadcast_messages",
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("message_id"),
    )

    op.create_table(
        "manager_status_messages",
        sa.Column("manager_name", sa.String(), nullable=False),
        sa.Column("status_xml", sa.Text(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("manager_name"),
    )


def downgrade() -> None:
    op.drop_table("manager_status_messages")
    op.drop_table("broadcast_messages")
