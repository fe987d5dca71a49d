"""Folder create task queue and manager parameters (baseline)."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "folder_create_tasks",
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("state", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("parameters", sa.Text(), nullable=False),
        sa.Column("processor", sa.String(), nullable=True),
        sa.Column("completion_code", sa.Integer(), nullable=True),
        sa.Column("completion_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("task_id"),
    )
    op.create_index(
        "idx_folder_create_tasks_queue",
        "folder_create_tasks",
        ["state", "task_id"],
    )

    op.create_table(
        "manager_params",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("manager_name", sa.String(), nullable=False),
        sa.Column("param_name", sa.String(), nullable=False),
        sa.Column("param_value", sa.Text(), nullable=False, server_default=""),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "manager_name",
            "param_name",
            name="uq_manager_params_manager_param",
        ),
    )
    op.create_index("ix_manager_params_manager_name", "manager_params", ["manager_name"])


def downgrade() -> None:
    op.drop_index("ix_manager_params_manager_name", table_name="manager_params")
    op.drop_table("manager_params")
    op.drop_index("idx_folder_create_tasks_queue", table_name="folder_create_tasks")
    op.drop_table("folder_create_tasks")
