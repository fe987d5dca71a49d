"""Domain models for the folder create task queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum

RET_VAL_OK = 0
RET_VAL_TASK_NOT_AVAILABLE = 53000
RET_VAL_TASK_NOT_FOUND = 53001
RET_VAL_TASK_NOT_IN_PROGRESS = 53002

DEFAULT_TASK_COUNT_TO_PREVIEW = 10


class RequestTaskResult(str, Enum):
    """Outcome of one request-task call."""

    TASK_FOUND = "task_found"
    NO_TASK_FOUND = "no_task_found"
    RESULT_ERROR = "result_error"


class CloseOutType(IntEnum):
    """Completion codes passed to the set-complete procedure."""

    SUCCESS = 0
    FAILED = 1
    NOT_READY = 2
    NEED_TO_ABORT = 3


class EvalCode(IntEnum):
    SUCCESS = 0
    FAILED = 1
    NOT_EVALUATED = 2


class QueueTaskState(IntEnum):
    """Durable queue row states."""

    NEW = 1
    IN_PROGRESS = 2
    COMPLETE = 3
    FAILED = 4


@dataclass(slots=True)
class QueueTaskCreate:
    """Input payload for enqueuing a folder create task."""

    parameters: str


@dataclass(slots=True)
class QueueTaskView:
    """Readable queue row for CLI and tests."""

    task_id: int
    state: QueueTaskState
    parameters: str
    processor: str | None
    completion_code: int | None
    completion_message: str | None
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None


@dataclass(slots=True)
class RequestTaskReply:
    """Output parameters of the request-task procedure."""

    return_code: int
    task_id: int = 0
    parameters: str = ""
    message: str = ""
    preview: list[QueueTaskView] = field(default_factory=list)


@dataclass(slots=True)
class CompleteTaskReply:
    """Output parameters of the set-complete procedure."""

    return_code: int
    message: str = ""
