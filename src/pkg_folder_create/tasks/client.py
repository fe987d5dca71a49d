"""Task client that acquires and releases folder create queue rows."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, TypeVar

from sqlalchemy.exc import OperationalError

from pkg_folder_create.tasks.models import (
    DEFAULT_TASK_COUNT_TO_PREVIEW,
    RET_VAL_OK,
    RET_VAL_TASK_NOT_AVAILABLE,
    CloseOutType,
    CompleteTaskReply,
    EvalCode,
    RequestTaskReply,
    RequestTaskResult,
)

logger = logging.getLogger(__name__)
db_logger = logging.getLogger("pkg_folder_create.db")

SP_NAME_REQUEST_TASK = "request_folder_create_task"
SP_NAME_SET_COMPLETE = "set_folder_create_task_complete"

_PERMISSION_DENIED_MARKER = "permission was denied"

T = TypeVar("T")


class FolderCreateProcedures(Protocol):
    """The two queue procedures the task client depends on."""

    def request_folder_create_task(
        self,
        *,
        processor_name: str,
        info_only: bool = False,
        task_count_to_preview: int = DEFAULT_TASK_COUNT_TO_PREVIEW,
    ) -> RequestTaskReply: ...

    def set_folder_create_task_complete(
        self,
        *,
        task_id: int,
        completion_code: int,
        completion_message: str = "",
    ) -> CompleteTaskReply: ...


class FolderCreateTaskClient:
    """Holds at most one in-flight task and its raw XML parameters."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        procedures: FolderCreateProcedures,
        manager_name: str,
        task_count_to_preview: int = DEFAULT_TASK_COUNT_TO_PREVIEW,
        retry_count: int = 2,
        retry_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.procedures = procedures
        self.manager_name = manager_name
        self.task_count_to_preview = task_count_to_preview
        self.retry_count = max(0, retry_count)
        self.retry_delay_seconds = max(0.0, retry_delay_seconds)
        self._sleep = sleep
        self.task_id = 0
        self._task_parameters_xml = ""
        self._task_was_assigned = False
        self._job_params: dict[str, str] = {}

    @property
    def task_parameters_xml(self) -> str:
        return self._task_parameters_xml or ""

    @property
    def task_was_assigned(self) -> bool:
        return self._task_was_assigned

    @property
    def task_params(self) -> dict[str, str]:
        return dict(self._job_params)

    def get_param(self, name: str) -> str:
        """Stored job parameter, or an empty string when missing."""

        for key, value in self._job_params.items():
            if key.casefold() == name.casefold():
                return value
        return ""

    def set_param(self, name: str, value: str | None) -> None:
        existing = self._find_key(name)
        if existing is not None:
            del self._job_params[existing]
        self._job_params[name] = value or ""

    def add_additional_parameter(self, name: str, value: str) -> bool:
        """Add a parameter that must not exist yet; False when it does."""

        if self._find_key(name) is not None:
            logger.error("Exception adding parameter: %s, Value: %s (already defined)", name, value)
            return False
        self._job_params[name] = value
        return True

    def request_task(self) -> RequestTaskResult:
        """Ask the queue for the next task assigned to this manager."""

        self.task_id = 0
        self._task_parameters_xml = ""
        self._job_params.clear()

        result = self._request_task_detailed()
        self._task_was_assigned = result == RequestTaskResult.TASK_FOUND
        return result

    def close_task(
        self,
        outcome: CloseOutType,
        message: str = "",
        eval_code: EvalCode = EvalCode.SUCCESS,
    ) -> bool:
        """Release the held task with ``outcome``; failures are logged, not raised."""

        task_id = self.task_id
        try:
            if task_id == 0:
                logger.warning("close_task called with no task assigned; outcome %s", outcome.name)
                return False

            logger.debug(
                "Closing task %s: outcome=%s eval_code=%s message=%r",
                task_id,
                outcome.name,
                eval_code.name,
                message,
            )
            completed = self._set_task_complete(
                task_id=task_id,
                completion_code=int(outcome),
                message=message,
            )
            if completed:
                logger.debug("Successfully set task complete in database, task_id %s", task_id)
                return True
            self._log_error(f"Error setting task complete in database, task_id {task_id}")
            return False
        finally:
            self.task_id = 0
            self._task_parameters_xml = ""
            self._task_was_assigned = False
            self._job_params.clear()

    def _request_task_detailed(self) -> RequestTaskResult:
        try:
            reply = self._call_with_retry(
                SP_NAME_REQUEST_TASK,
                lambda: self.procedures.request_folder_create_task(
                    processor_name=self.manager_name,
                    info_only=False,
                    task_count_to_preview=self.task_count_to_preview,
                ),
            )
        except Exception as error:  # noqa: BLE001
            self._log_error(
                f"Exception requesting folder create task using {SP_NAME_REQUEST_TASK}: {error}",
                exc_info=True,
            )
            return RequestTaskResult.RESULT_ERROR

        if reply.return_code == RET_VAL_OK:
            self.task_id = reply.task_id
            self._task_parameters_xml = reply.parameters or ""
            return RequestTaskResult.TASK_FOUND
        if reply.return_code == RET_VAL_TASK_NOT_AVAILABLE:
            return RequestTaskResult.NO_TASK_FOUND

        self._log_error(
            f"{SP_NAME_REQUEST_TASK}: procedure execution error {reply.return_code}; "
            f"Message text = {_message_or_unknown(reply.message)}",
        )
        return RequestTaskResult.RESULT_ERROR

    def _set_task_complete(self, *, task_id: int, completion_code: int, message: str) -> bool:
        logger.debug("Calling procedure %s", SP_NAME_SET_COMPLETE)
        logger.debug("Parameters: TaskID=%s, completionCode=%s", task_id, completion_code)
        try:
            reply = self._call_with_retry(
                SP_NAME_SET_COMPLETE,
                lambda: self.procedures.set_folder_create_task_complete(
                    task_id=task_id,
                    completion_code=completion_code,
                    completion_message=message,
                ),
            )
        except Exception as error:  # noqa: BLE001
            self._log_error(
                f"Exception setting folder create task complete using {SP_NAME_SET_COMPLETE}: "
                f"{error}",
                exc_info=True,
            )
            return False

        if reply.return_code == RET_VAL_OK:
            return True
        self._log_error(
            f"Error {reply.return_code} setting task complete: "
            f"{_message_or_unknown(reply.message)}",
        )
        return False

    def _call_with_retry(self, procedure_name: str, call: Callable[[], T]) -> T:
        attempts_left = self.retry_count
        while True:
            try:
                return call()
            except OperationalError as error:
                if attempts_left <= 0:
                    raise
                attempts_left -= 1
                logger.warning(
                    "Transient error calling %s (%s); retries left: %d",
                    procedure_name,
                    error,
                    attempts_left,
                )
                self._sleep(self.retry_delay_seconds)

    def _find_key(self, name: str) -> str | None:
        for key in self._job_params:
            if key.casefold() == name.casefold():
                return key
        return None

    def _log_error(self, message: str, *, exc_info: bool = False) -> None:
        logger.error(message, exc_info=exc_info)
        if _PERMISSION_DENIED_MARKER in message.lower():
            db_logger.error(message)


def _message_or_unknown(message: str | None) -> str:
    if message is None or not message.strip():
        return "Unknown error"
    return message
