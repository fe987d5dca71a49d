from __future__ import annotations

import logging
import socket
from datetime import date
from pathlib import Path

import allure
import pytest

from pkg_folder_create import logging_setup
from pkg_folder_create.config import LoggingSettings, ManagerSettings, Settings, parse_bool

pytestmark = [
    allure.epic("Manager"),
    allure.feature("Configuration"),
]


def test_from_env_defaults(monkeypatch) -> None:
    for name in (
        "PKG_FOLDER_CREATE_MGR_NAME",
        "PKG_FOLDER_CREATE_TICK_SECONDS",
        "PKG_FOLDER_CREATE_STATUS_FILE",
        "PKG_FOLDER_CREATE_LOG_DIR",
        "PKG_FOLDER_CREATE_LOG_CONSOLE",
        "PKG_FOLDER_CREATE_BROADCAST_POLL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == Path(".pkg_folder_create.db")
    assert settings.manager.name == f"{socket.gethostname()}_Undefined-Manager"
    assert settings.manager.active_local
    assert settings.manager.active
    assert settings.manager.perspective == "server"
    assert settings.manager.check_queue
    assert settings.manager.poll_interval_seconds == 30.0
    assert settings.manager.heartbeat_ticks == 60
    assert settings.manager.db_retry_count == 2
    assert settings.logging.log_dir == Path("Logs")
    assert settings.logging.log_file_base == "FolderCreate"
    assert settings.logging.debug_level == 4
    assert settings.status.path == Path("Status.xml")
    assert not settings.status.log_to_message_queue
    settings.validate()


def test_from_env_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PKG_FOLDER_CREATE_DB_PATH", str(tmp_path / "q.db"))
    monkeypatch.setenv("PKG_FOLDER_CREATE_MGR_ACTIVE", "no")
    monkeypatch.setenv("PKG_FOLDER_CREATE_PERSPECTIVE", "client")
    monkeypatch.setenv("PKG_FOLDER_CREATE_POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("PKG_FOLDER_CREATE_DEBUG_LEVEL", "5")
    monkeypatch.setenv("PKG_FOLDER_CREATE_LOG_STATUS_TO_MESSAGE_QUEUE", "true")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "q.db"
    assert settings.manager.name == "Test-Manager"
    assert not settings.manager.active
    assert settings.manager.perspective == "client"
    assert settings.manager.poll_interval_seconds == 5.0
    assert settings.manager.tick_seconds == 0.01
    assert settings.logging.debug_level == 5
    assert settings.status.log_to_message_queue
    assert Settings.from_env(db_path=tmp_path / "other.db").db_path == tmp_path / "other.db"


def test_from_env_rejects_invalid_boolean(monkeypatch) -> None:
    monkeypatch.setenv("PKG_FOLDER_CREATE_MGR_ACTIVE_LOCAL", "maybe")

    with pytest.raises(ValueError, match="PKG_FOLDER_CREATE_MGR_ACTIVE_LOCAL"):
        Settings.from_env()


def test_parse_bool_accepts_common_spellings() -> None:
    assert parse_bool(" True ", name="x")
    assert parse_bool("on", name="x")
    assert not parse_bool("FALSE", name="x")
    assert not parse_bool("0", name="x")


def test_manager_params_overlay_settings() -> None:
    settings = Settings(manager=ManagerSettings(name="Mgr-A"))

    applied = settings.apply_manager_params(
        {
            "MgrActive_Local": "False",
            "checkdatafoldercreatequeue": "false",
            "Perspective": "client",
            "LogStatusToMessageQueue": "True",
            "LogFileName": "FolderCreate_Pub10",
            "DebugLevel": "5",
            "MessageQueueURI": "tcp://broker:61616",
        },
    )

    assert applied == [
        "MgrActive_Local",
        "checkdatafoldercreatequeue",
        "Perspective",
        "LogStatusToMessageQueue",
        "LogFileName",
        "DebugLevel",
    ]
    assert not settings.manager.active_local
    assert not settings.manager.check_queue
    assert settings.manager.perspective == "client"
    assert settings.status.log_to_message_queue
    assert settings.logging.log_file_base == "FolderCreate_Pub10"
    assert settings.logging.debug_level == 5
    assert settings.extra_params == {"MessageQueueURI": "tcp://broker:61616"}


def test_manager_params_reject_bad_values() -> None:
    settings = Settings(manager=ManagerSettings(name="Mgr-A"))

    with pytest.raises(ValueError, match="MgrActive"):
        settings.apply_manager_params({"MgrActive": "sometimes"})
    with pytest.raises(ValueError, match="DebugLevel"):
        settings.apply_manager_params({"DebugLevel": "verbose"})


@pytest.mark.parametrize(
    ("settings", "match"),
    [
        (Settings(manager=ManagerSettings(name="  ")), "must not be blank"),
        (Settings(manager=ManagerSettings(name="A", poll_interval_seconds=0)), "POLL_INTERVAL"),
        (Settings(manager=ManagerSettings(name="A", tick_seconds=0)), "TICK_SECONDS"),
        (Settings(manager=ManagerSettings(name="A", heartbeat_ticks=0)), "HEARTBEAT_TICKS"),
        (Settings(manager=ManagerSettings(name="A", task_count_to_preview=0)), "PREVIEW"),
        (Settings(manager=ManagerSettings(name="A", db_retry_count=-1)), "RETRY_COUNT"),
        (
            Settings(manager=ManagerSettings(name="A"), logging=LoggingSettings(debug_level=7)),
            "DebugLevel",
        ),
    ],
)
def test_validate_rejects_unusable_values(settings: Settings, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        settings.validate()


def test_debug_levels_map_to_logging_levels() -> None:
    assert logging_setup.logging_level_for(5) == logging.DEBUG
    assert logging_setup.logging_level_for(4) == logging.INFO
    assert logging_setup.logging_level_for(1) == logging.CRITICAL
    with pytest.raises(ValueError, match="Unknown DebugLevel"):
        logging_setup.logging_level_for(0)


def test_configure_logging_writes_dated_file(tmp_path: Path) -> None:
    settings = LoggingSettings(
        log_dir=tmp_path / "Logs",
        log_file_base="FolderCreate",
        console=False,
    )

    logger = logging_setup.configure_logging(settings)
    logger.info("Directory created")
    for handler in logging_setup._installed:
        handler.flush()

    log_file = tmp_path / "Logs" / f"FolderCreate_{date.today().isoformat()}.txt"
    assert log_file.is_file()
    line = log_file.read_text(encoding="utf-8").strip()
    assert line.endswith(", INFO, pkg_folder_create, Directory created")
    assert logger.level == logging.INFO


def test_configure_logging_replaces_previous_handlers(tmp_path: Path) -> None:
    extra = logging.NullHandler()
    first = LoggingSettings(log_dir=tmp_path / "Logs", console=True)
    second = LoggingSettings(log_dir=tmp_path / "Logs", console=False, debug_level=2)

    logging_setup.configure_logging(first, extra_handlers=(extra,))
    logger = logging_setup.configure_logging(second)

    assert extra not in logger.handlers
    assert len(logging_setup._installed) == 1
    assert isinstance(logging_setup._installed[0], logging_setup.DailyFileHandler)
    assert logger.level == logging.ERROR
