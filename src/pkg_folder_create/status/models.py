"""In-memory status snapshot owned by the manager loop."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pkg_folder_create.storage.common import utc_now

MAX_RECENT_ERRORS = 4

# Routine start-up and shutdown banners never become the most recent message.
_IGNORED_LOG_BANNERS = ("=== Started", "=== Exiting")


class MgrStatus(str, Enum):
    STOPPED = "Stopped"
    STOPPED_ERROR = "Stopped_Error"
    RUNNING = "Running"
    DISABLED_LOCAL = "Disabled_Local"
    DISABLED_MC = "Disabled_MC"


class TaskStatus(str, Enum):
    STOPPED = "Stopped"
    REQUESTING = "Requesting"
    RUNNING = "Running"
    CLOSING = "Closing"
    FAILED = "Failed"
    NO_TASK = "No_Task"


class TaskStatusDetail(str, Enum):
    RETRIEVING_RESOURCES = "Retrieving_Resources"
    RUNNING_TOOL = "Running_Tool"
    PACKAGING_RESULTS = "Packaging_Results"
    DELIVERING_RESULTS = "Delivering_Results"
    NO_TASK = "No_Task"


@dataclass(slots=True)
class StatusSnapshot:
    """Current manager and task state, as reported in the status file."""

    mgr_name: str = ""
    mgr_status: MgrStatus = MgrStatus.STOPPED
    task_status: TaskStatus = TaskStatus.NO_TASK
    task_status_detail: TaskStatusDetail = TaskStatusDetail.NO_TASK
    task_start_time: datetime = field(default_factory=utc_now)
    tool: str = ""
    progress: float = 0.0
    current_operation: str = ""
    job_number: int = 0
    job_step: int = 0
    dataset: str = ""
    most_recent_job_info: str = ""
    _most_recent_log_message: str = ""
    recent_errors: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_RECENT_ERRORS))

    @property
    def most_recent_log_message(self) -> str:
        return self._most_recent_log_message

    @most_recent_log_message.setter
    def most_recent_log_message(self, value: str) -> None:
        if any(banner in value for banner in _IGNORED_LOG_BANNERS):
            return
        self._most_recent_log_message = value

    def add_error_message(self, message: str) -> None:
        """Remember an error; only the newest four are kept."""

        self.recent_errors.append(message)

    def clear_cached_info(self) -> None:
        self.progress = 0.0
        self.dataset = ""
        self.job_number = 0
        self.job_step = 0
        self.tool = ""

    def mark_running(self) -> None:
        self.mgr_status = MgrStatus.RUNNING
        self.tool = "NA"
        self.dataset = "NA"
        self.current_operation = ""
        self.task_status = TaskStatus.NO_TASK
        self.task_status_detail = TaskStatusDetail.NO_TASK

    def mark_stopped(self, *, error: bool) -> None:
        self.clear_cached_info()
        self.mgr_status = MgrStatus.STOPPED_ERROR if error else MgrStatus.STOPPED
        self.task_status = TaskStatus.NO_TASK
        self.task_status_detail = TaskStatusDetail.NO_TASK

    def mark_disabled(self, *, locally: bool) -> None:
        self.clear_cached_info()
        self.mgr_status = MgrStatus.DISABLED_LOCAL if locally else MgrStatus.DISABLED_MC
        self.task_status = TaskStatus.NO_TASK
        self.task_status_detail = TaskStatusDetail.NO_TASK
