"""Logging configuration for the manager process."""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

from pkg_folder_create.config import LoggingSettings

PACKAGE_LOGGER = "pkg_folder_create"
LOG_FORMAT = "%(asctime)s, %(levelname)s, %(name)s, %(message)s"
DATE_FORMAT = "%m/%d/%Y %H:%M:%S"

DEBUG_LEVEL_TO_LOGGING = {
    5: logging.DEBUG,
    4: logging.INFO,
    3: logging.WARNING,
    2: logging.ERROR,
    1: logging.CRITICAL,
}

_installed: list[logging.Handler] = []


class DailyFileHandler(logging.FileHandler):
    """Writes to ``<base>_<YYYY-MM-DD>.txt`` and switches file when the date changes."""

    def __init__(self, log_dir: Path, base_name: str) -> None:
        self.log_dir = log_dir
        self.base_name = base_name
        self._current_date = date.today()
        log_dir.mkdir(parents=True, exist_ok=True)
        super().__init__(self.path_for(self._current_date), encoding="utf-8", delay=True)

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"{self.base_name}_{day.isoformat()}.txt"

    def emit(self, record: logging.LogRecord) -> None:
        today = date.today()
        if today != self._current_date:
            self.acquire()
            try:
                self.close()
                self._current_date = today
                self.baseFilename = str(self.path_for(today).resolve())
            finally:
                self.release()
        super().emit(record)


def logging_level_for(debug_level: int) -> int:
    try:
        return DEBUG_LEVEL_TO_LOGGING[debug_level]
    except KeyError as error:
        raise ValueError(f"Unknown DebugLevel: {debug_level!r}") from error


def configure_logging(
    settings: LoggingSettings,
    *,
    extra_handlers: tuple[logging.Handler, ...] = (),
) -> logging.Logger:
    """Attach console, daily file and ``extra_handlers`` to the package logger.

    Handlers installed by an earlier call are closed and replaced, so the
    function can run again after the manager parameters are reloaded.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging_level_for(settings.debug_level))

    for handler in _installed:
        logger.removeHandler(handler)
        handler.close()
    _installed.clear()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    handlers: list[logging.Handler] = []
    if settings.console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if settings.log_file_base:
        handlers.append(DailyFileHandler(settings.log_dir, settings.log_file_base))
    for handler in handlers:
        handler.setFormatter(formatter)
    handlers.extend(extra_handlers)

    for handler in handlers:
        logger.addHandler(handler)
        _installed.append(handler)
    return logger
