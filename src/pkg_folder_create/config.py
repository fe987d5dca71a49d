"""Runtime configuration for the folder create manager."""

from __future__ import annotations

import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEBUG_LEVELS = (1, 2, 3, 4, 5)


def default_manager_name() -> str:
    return f"{socket.gethostname()}_Undefined-Manager"


@dataclass(slots=True)
class ManagerSettings:
    """Identity, activation flags and poll loop timing."""

    name: str = field(default_factory=default_manager_name)
    active_local: bool = True
    active: bool = True
    perspective: str = "server"
    check_queue: bool = True
    poll_interval_seconds: float = 30.0
    tick_seconds: float = 1.0
    heartbeat_ticks: int = 60
    running_log_interval_hours: float = 24.0
    task_count_to_preview: int = 10
    db_retry_count: int = 2
    db_retry_delay_seconds: float = 1.0
    broadcast_poll_seconds: float = 1.0


@dataclass(slots=True)
class LoggingSettings:
    """Log file location and verbosity (5 = debug ... 1 = critical)."""

    log_dir: Path = Path("Logs")
    log_file_base: str = "FolderCreate"
    debug_level: int = 4
    console: bool = True


@dataclass(slots=True)
class StatusSettings:
    """Status file and status topic settings."""

    path: Path = Path("Status.xml")
    log_to_message_queue: bool = False
    min_write_interval_seconds: float = 2.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".pkg_folder_create.db")
    manager: ManagerSettings = field(default_factory=ManagerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    status: StatusSettings = field(default_factory=StatusSettings)
    extra_params: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path
            or Path(os.getenv("PKG_FOLDER_CREATE_DB_PATH", ".pkg_folder_create.db")),
            manager=ManagerSettings(
                name=os.getenv("PKG_FOLDER_CREATE_MGR_NAME", "").strip() or default_manager_name(),
                active_local=_env_bool("PKG_FOLDER_CREATE_MGR_ACTIVE_LOCAL", default=True),
                active=_env_bool("PKG_FOLDER_CREATE_MGR_ACTIVE", default=True),
                perspective=os.getenv("PKG_FOLDER_CREATE_PERSPECTIVE", "server"),
                check_queue=_env_bool("PKG_FOLDER_CREATE_CHECK_QUEUE", default=True),
                poll_interval_seconds=float(
                    os.getenv("PKG_FOLDER_CREATE_POLL_INTERVAL_SECONDS", "30"),
                ),
                tick_seconds=float(os.getenv("PKG_FOLDER_CREATE_TICK_SECONDS", "1")),
                heartbeat_ticks=int(os.getenv("PKG_FOLDER_CREATE_HEARTBEAT_TICKS", "60")),
                task_count_to_preview=int(
                    os.getenv("PKG_FOLDER_CREATE_TASK_COUNT_TO_PREVIEW", "10"),
                ),
                db_retry_count=int(os.getenv("PKG_FOLDER_CREATE_DB_RETRY_COUNT", "2")),
                db_retry_delay_seconds=float(
                    os.getenv("PKG_FOLDER_CREATE_DB_RETRY_DELAY_SECONDS", "1.0"),
                ),
                broadcast_poll_seconds=float(
                    os.getenv("PKG_FOLDER_CREATE_BROADCAST_POLL_SECONDS", "1.0"),
                ),
            ),
            logging=LoggingSettings(
                log_dir=Path(os.getenv("PKG_FOLDER_CREATE_LOG_DIR", "Logs")),
                log_file_base=os.getenv("PKG_FOLDER_CREATE_LOG_FILENAME", "FolderCreate"),
                debug_level=int(os.getenv("PKG_FOLDER_CREATE_DEBUG_LEVEL", "4")),
                console=_env_bool("PKG_FOLDER_CREATE_LOG_CONSOLE", default=True),
            ),
            status=StatusSettings(
                path=Path(os.getenv("PKG_FOLDER_CREATE_STATUS_FILE", "Status.xml")),
                log_to_message_queue=_env_bool(
                    "PKG_FOLDER_CREATE_LOG_STATUS_TO_MESSAGE_QUEUE",
                    default=False,
                ),
                min_write_interval_seconds=float(
                    os.getenv("PKG_FOLDER_CREATE_STATUS_WRITE_INTERVAL_SECONDS", "2.0"),
                ),
            ),
        )

    def apply_manager_params(self, params: Mapping[str, str]) -> list[str]:
        """Overlay manager parameters stored in the database.

        Names are matched case-insensitively. Unknown names are kept in
        ``extra_params``. Returns the names that were applied.
        """

        applied: list[str] = []
        for raw_name, value in params.items():
            name = raw_name.strip().lower()
            setter = _PARAM_SETTERS.get(name)
            if setter is None:
                self.extra_params[raw_name] = value
                continue
            setter(self, value)
            applied.append(raw_name)
        return applied

    def validate(self) -> None:
        """Raise configuration error for values the manager cannot run with."""

        if not self.manager.name.strip():
            raise ValueError("Manager name (MgrName) must not be blank.")
        if self.manager.poll_interval_seconds <= 0:
            raise ValueError("PKG_FOLDER_CREATE_POLL_INTERVAL_SECONDS must be > 0.")
        if self.manager.tick_seconds <= 0:
            raise ValueError("PKG_FOLDER_CREATE_TICK_SECONDS must be > 0.")
        if self.manager.heartbeat_ticks <= 0:
            raise ValueError("PKG_FOLDER_CREATE_HEARTBEAT_TICKS must be > 0.")
        if self.manager.task_count_to_preview <= 0:
            raise ValueError("PKG_FOLDER_CREATE_TASK_COUNT_TO_PREVIEW must be > 0.")
        if self.manager.db_retry_count < 0:
            raise ValueError("PKG_FOLDER_CREATE_DB_RETRY_COUNT must be >= 0.")
        if self.logging.debug_level not in DEBUG_LEVELS:
            raise ValueError(
                f"DebugLevel must be one of {DEBUG_LEVELS}, got {self.logging.debug_level!r}.",
            )
        if self.status.min_write_interval_seconds < 0:
            raise ValueError("PKG_FOLDER_CREATE_STATUS_WRITE_INTERVAL_SECONDS must be >= 0.")


def parse_bool(value: str, *, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")


def _set_name(settings: Settings, value: str) -> None:
    settings.manager.name = value.strip()


def _set_active_local(settings: Settings, value: str) -> None:
    settings.manager.active_local = parse_bool(value, name="MgrActive_Local")


def _set_active(settings: Settings, value: str) -> None:
    settings.manager.active = parse_bool(value, name="MgrActive")


def _set_perspective(settings: Settings, value: str) -> None:
    settings.manager.perspective = value.strip()


def _set_check_queue(settings: Settings, value: str) -> None:
    settings.manager.check_queue = parse_bool(value, name="CheckDataFolderCreateQueue")


def _set_log_status_to_queue(settings: Settings, value: str) -> None:
    settings.status.log_to_message_queue = parse_bool(value, name="LogStatusToMessageQueue")


def _set_log_filename(settings: Settings, value: str) -> None:
    settings.logging.log_file_base = value.strip()


def _set_debug_level(settings: Settings, value: str) -> None:
    try:
        settings.logging.debug_level = int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid DebugLevel value: {value!r}") from error


_PARAM_SETTERS = {
    "mgrname": _set_name,
    "mgractive_local": _set_active_local,
    "mgractive": _set_active,
    "perspective": _set_perspective,
    "checkdatafoldercreatequeue": _set_check_queue,
    "logstatustomessagequeue": _set_log_status_to_queue,
    "logfilename": _set_log_filename,
    "debuglevel": _set_debug_level,
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return parse_bool(value, name=name)
