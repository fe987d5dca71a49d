"""Shared test fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from pkg_folder_create import logging_setup
from pkg_folder_create.tasks.repository import FolderCreateQueueRepository


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path: Path) -> Iterator[None]:
    """Keep logs, status files and manager identity inside the test's tmp dir."""

    for name in (
        "PKG_FOLDER_CREATE_DB_PATH",
        "PKG_FOLDER_CREATE_MGR_ACTIVE",
        "PKG_FOLDER_CREATE_MGR_ACTIVE_LOCAL",
        "PKG_FOLDER_CREATE_PERSPECTIVE",
        "PKG_FOLDER_CREATE_CHECK_QUEUE",
        "PKG_FOLDER_CREATE_DEBUG_LEVEL",
        "PKG_FOLDER_CREATE_LOG_STATUS_TO_MESSAGE_QUEUE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PKG_FOLDER_CREATE_MGR_NAME", "Test-Manager")
    monkeypatch.setenv("PKG_FOLDER_CREATE_LOG_DIR", str(tmp_path / "Logs"))
    monkeypatch.setenv("PKG_FOLDER_CREATE_LOG_CONSOLE", "0")
    monkeypatch.setenv("PKG_FOLDER_CREATE_STATUS_FILE", str(tmp_path / "Status.xml"))
    monkeypatch.setenv("PKG_FOLDER_CREATE_TICK_SECONDS", "0.01")
    monkeypatch.setenv("PKG_FOLDER_CREATE_BROADCAST_POLL_SECONDS", "0.05")
    yield

    package_logger = logging.getLogger(logging_setup.PACKAGE_LOGGER)
    for handler in list(logging_setup._installed):
        package_logger.removeHandler(handler)
        handler.close()
    logging_setup._installed.clear()
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[FolderCreateQueueRepository]:
    repo = FolderCreateQueueRepository(tmp_path / "queue.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()
