"""Status file writer with optional publishing to the status topic."""

from __future__ import annotations

import logging
import os
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as SafeElementTree

from pkg_folder_create.messaging.publisher import StatusPublisher
from pkg_folder_create.status.models import StatusSnapshot, TaskStatusDetail
from pkg_folder_create.storage.common import utc_now

logger = logging.getLogger(__name__)

MIN_FILE_WRITE_INTERVAL_SECONDS = 2.0
WRITE_FAILURE_LOG_THRESHOLD = 5
PUBLISH_FAILURE_LOG_FIRST = 5
PUBLISH_FAILURE_LOG_EVERY = 20

_XML_PROLOG = (
    '<?xml version="1.0" encoding="utf-8" standalone="yes"?>\n'
    "<!--Package Folder Create manager status-->\n"
)
_LOCAL_TIME_FORMAT = "%Y-%m-%d %I:%M:%S %p"


def format_iso_timestamp(value: datetime) -> str:
    """UTC timestamp such as ``2017-07-06T23:23:14.337Z``."""

    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StatusFile:
    """Serializes a :class:`StatusSnapshot` to disk and, optionally, to a topic."""

    def __init__(  # noqa: PLR0913
        self,
        path: Path,
        snapshot: StatusSnapshot,
        *,
        publisher: StatusPublisher | None = None,
        log_to_message_queue: bool = False,
        min_write_interval_seconds: float = MIN_FILE_WRITE_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.path = path
        self.snapshot = snapshot
        self.publisher = publisher
        self.log_to_message_queue = log_to_message_queue
        self.min_write_interval_seconds = min_write_interval_seconds
        self._clock = clock
        self._now = now
        self._last_write_at: float | None = None
        self._write_error_count = 0
        self._publish_error_count = 0

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(f"{self.path.stem}_Temp.xml")

    def generate_status_xml(self, *, last_update: datetime | None = None) -> str:
        snapshot = self.snapshot
        last_update = last_update or self._now()
        run_time_hours = max(0.0, (last_update - snapshot.task_start_time).total_seconds() / 3600)

        root = ET.Element("Root")
        manager = ET.SubElement(root, "Manager")
        _text(manager, "MgrName", snapshot.mgr_name)
        _text(manager, "MgrStatus", snapshot.mgr_status.value)
        manager.append(
            ET.Comment(f"Local status log time: {_local_time(last_update)}"),
        )
        manager.append(
            ET.Comment(f"Local last start time: {_local_time(snapshot.task_start_time)}"),
        )
        _text(manager, "LastUpdate", format_iso_timestamp(last_update))
        _text(manager, "LastStartTime", format_iso_timestamp(snapshot.task_start_time))
        _text(manager, "CPUUtilization", "0.0")
        _text(manager, "FreeMemoryMB", "0.0")
        _text(manager, "ProcessID", str(os.getpid()))
        errors = ET.SubElement(manager, "RecentErrorMessages")
        for message in snapshot.recent_errors:
            _text(errors, "ErrMsg", message)

        task = ET.SubElement(root, "Task")
        _text(task, "Tool", snapshot.tool)
        _text(task, "Status", snapshot.task_status.value)
        _text(task, "Duration", f"{run_time_hours:0.2f}")
        _text(task, "DurationMinutes", f"{run_time_hours * 60:0.1f}")
        _text(task, "Progress", f"{snapshot.progress:0.2f}")
        _text(task, "CurrentOperation", snapshot.current_operation)
        details = ET.SubElement(task, "TaskDetails")
        _text(details, "Status", snapshot.task_status_detail.value)
        _text(details, "Job", str(snapshot.job_number))
        _text(details, "Step", str(snapshot.job_step))
        _text(details, "Dataset", snapshot.dataset)
        _text(details, "MostRecentLogMessage", snapshot.most_recent_log_message)
        _text(details, "MostRecentJobInfo", snapshot.most_recent_job_info)

        ET.indent(root, space="  ")
        return _XML_PROLOG + ET.tostring(root, encoding="unicode") + "\n"

    def write_status_file(self) -> None:
        """Write the snapshot to disk (throttled) and publish it when enabled."""

        try:
            xml_text = self.generate_status_xml()
        except Exception as error:  # noqa: BLE001
            logger.warning("Error generating status info: %s", error)
            return

        self._write_to_disk(xml_text)
        if self.log_to_message_queue:
            self._publish(xml_text)

    def update_and_write(
        self,
        progress: float,
        detail: TaskStatusDetail | None = None,
    ) -> None:
        if detail is not None:
            self.snapshot.task_status_detail = detail
        self.snapshot.progress = progress
        self.write_status_file()

    def update_stopped(self, *, error: bool) -> None:
        self.snapshot.mark_stopped(error=error)
        self.write_status_file()

    def update_disabled(self, *, locally: bool) -> None:
        self.snapshot.mark_disabled(locally=locally)
        self.write_status_file()

    def flush(self) -> None:
        """Write immediately, ignoring the throttle; used on shutdown."""

        self._last_write_at = None
        self.write_status_file()

    def init_status_from_file(self) -> None:
        """Restore log message, job info and error history from a previous run."""

        if not self.path.exists():
            return
        try:
            root = SafeElementTree.fromstring(self.path.read_text(encoding="utf-8"))
        except (OSError, ET.ParseError, DefusedXmlException):
            logger.exception("Exception reading status file %s", self.path)
            return

        message = root.findtext("Task/TaskDetails/MostRecentLogMessage")
        if message:
            self.snapshot.most_recent_log_message = message
        job_info = root.findtext("Task/TaskDetails/MostRecentJobInfo")
        if job_info:
            self.snapshot.most_recent_job_info = job_info
        for element in root.iterfind("Manager/RecentErrorMessages/ErrMsg"):
            if element.text:
                self.snapshot.add_error_message(element.text)

    def _write_to_disk(self, xml_text: str) -> None:
        now = self._clock()
        if (
            self._last_write_at is not None
            and now - self._last_write_at < self.min_write_interval_seconds
        ):
            return
        self._last_write_at = now

        temp_path = self.temp_path
        if not self._write_text(temp_path, xml_text):
            self._write_text(self.path, xml_text)
            return
        try:
            os.replace(temp_path, self.path)
        except OSError as error:
            logger.warning(
                "Unable to replace the status file with the temporary status file (%s to %s): %s",
                temp_path.name,
                self.path.name,
                error,
            )
            self._discard_temp(temp_path)

    def _write_text(self, path: Path, xml_text: str) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(xml_text, encoding="utf-8")
        except OSError as error:
            self._write_error_count += 1
            count = self._write_error_count
            if count == WRITE_FAILURE_LOG_THRESHOLD or (
                count > WRITE_FAILURE_LOG_THRESHOLD and count % 10 == 0
            ):
                logger.warning("Error writing status file %s: %s", path.name, error)
            return False
        self._write_error_count = 0
        return True

    def _discard_temp(self, temp_path: Path) -> None:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as error:
            logger.warning("Unable to delete temporary status file (%s): %s", temp_path.name, error)

    def _publish(self, xml_text: str) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.send_message(xml_text)
        except Exception:  # noqa: BLE001
            self._publish_error_count += 1
            count = self._publish_error_count
            if count <= PUBLISH_FAILURE_LOG_FIRST or count % PUBLISH_FAILURE_LOG_EVERY == 0:
                logger.error("Exception sending status message to broker; count = %d", count)
            return
        self._publish_error_count = 0


def read_status_fields(path: Path) -> dict[str, str]:
    """Headline fields of a status file, for display."""

    root = SafeElementTree.fromstring(path.read_text(encoding="utf-8"))
    fields = {
        "MgrName": "Manager/MgrName",
        "MgrStatus": "Manager/MgrStatus",
        "LastUpdate": "Manager/LastUpdate",
        "LastStartTime": "Manager/LastStartTime",
        "ProcessID": "Manager/ProcessID",
        "TaskStatus": "Task/Status",
        "TaskStatusDetail": "Task/TaskDetails/Status",
        "Progress": "Task/Progress",
        "MostRecentJobInfo": "Task/TaskDetails/MostRecentJobInfo",
        "MostRecentLogMessage": "Task/TaskDetails/MostRecentLogMessage",
    }
    values = {name: root.findtext(xpath) or "" for name, xpath in fields.items()}
    errors = [element.text or "" for element in root.iterfind("Manager/RecentErrorMessages/ErrMsg")]
    values["RecentErrorMessages"] = " | ".join(errors)
    return values


def _text(parent: ET.Element, tag: str, value: str) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = value
    return element


def _local_time(value: datetime) -> str:
    return value.astimezone().strftime(_LOCAL_TIME_FORMAT)
