"""Logging handler that feeds log records into the status snapshot."""

from __future__ import annotations

import logging
import time

from pkg_folder_create.status.models import StatusSnapshot

_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S"


class StatusLogHandler(logging.Handler):
    """Keeps the newest log line and the recent errors on ``snapshot``.

    Lines look like ``10/19/2026 14:03:12; Directory F:\\Pkgs\\2026 created; INFO``.
    Tracebacks are left to the file and console handlers.
    """

    def __init__(self, snapshot: StatusSnapshot, level: int = logging.NOTSET) -> None:
        super().__init__(level=level)
        self.snapshot = snapshot

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stamp = time.strftime(_TIMESTAMP_FORMAT, time.localtime(record.created))
            line = f"{stamp}; {record.getMessage()}; {record.levelname}"
            self.snapshot.most_recent_log_message = line
            if record.levelno >= logging.ERROR:
                self.snapshot.add_error_message(line)
        except Exception:  # noqa: BLE001
            self.handleError(record)
