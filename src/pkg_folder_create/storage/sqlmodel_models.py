"""SQLModel ORM tables for the folder create queue database."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class FolderCreateTask(SQLModel, table=True):
    __tablename__ = "folder_create_tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_folder_create_tasks_queue", "state", "task_id"),)

    task_id: int | None = Field(default=None, primary_key=True)
    state: int = Field(default=1)
    parameters: str = Field(sa_column=Column(Text, nullable=False))
    processor: str | None = None
    completion_code: int | None = None
    completion_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ManagerParam(SQLModel, table=True):
    __tablename__ = "manager_params"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "manager_name",
            "param_name",
            name="uq_manager_params_manager_param",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    manager_name: str = Field(index=True)
    param_name: str
    param_value: str = Field(default="", sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class BroadcastMessage(SQLModel, table=True):
    __tablename__ = "broadcast_messages"  # type: ignore[bad-override]

    message_id: int | None = Field(default=None, primary_key=True)
    body: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ManagerStatusMessage(SQLModel, table=True):
    __tablename__ = "manager_status_messages"  # type: ignore[bad-override]

    manager_name: str = Field(primary_key=True)
    status_xml: str = Field(sa_column=Column(Text, nullable=False))
    published_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
