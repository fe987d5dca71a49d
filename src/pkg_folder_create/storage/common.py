"""Common helpers for storage repositories."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def to_db_datetime(value: datetime) -> datetime:
    """Normalize a datetime to timezone-aware UTC before persisting."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def from_db_datetime(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on read; treat naive values as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    """Engine for the queue database shared by the manager and the listener thread.

    Every connection runs in WAL mode with a busy timeout so the broadcast
    listener can read while a task claim is writing.
    """

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )
    pragmas = (
        "PRAGMA journal_mode = WAL",
        f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}",
        "PRAGMA foreign_keys = ON",
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: sqlite3.Connection, _: object) -> None:
        cursor = dbapi_connection.cursor()
        for pragma in pragmas:
            cursor.execute(pragma)
        cursor.close()

    return engine
