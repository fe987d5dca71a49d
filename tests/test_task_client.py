from __future__ import annotations

import logging

import allure
import pytest
from sqlalchemy.exc import OperationalError

from pkg_folder_create.tasks.client import FolderCreateTaskClient
from pkg_folder_create.tasks.models import (
    RET_VAL_OK,
    RET_VAL_TASK_NOT_AVAILABLE,
    CloseOutType,
    CompleteTaskReply,
    QueueTaskCreate,
    QueueTaskState,
    RequestTaskReply,
    RequestTaskResult,
)
from pkg_folder_create.tasks.repository import FolderCreateQueueRepository


pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("Task Client"),
]


class FakeProcedures:
    def __init__(
        self,
        *,
        requests: list[RequestTaskReply | Exception] | None = None,
        completions: list[CompleteTaskReply | Exception] | None = None,
    ) -> None:
        self.requests = list(requests or [])
        self.completions = list(completions or [])
        self.request_calls: list[dict[str, object]] = []
        self.complete_calls: list[dict[str, object]] = []

    def request_folder_create_task(self, **kwargs: object) -> RequestTaskReply:
        self.request_calls.append(kwargs)
        return _next(self.requests)

    def set_folder_create_task_complete(self, **kwargs: object) -> CompleteTaskReply:
        self.complete_calls.append(kwargs)
        return _next(self.completions)


def _next(replies: list) -> object:
    reply = replies.pop(0)
    if isinstance(reply, Exception):
        raise reply
    return reply


def _locked() -> OperationalError:
    return OperationalError("CALL request_folder_create_task", {}, Exception("database is locked"))


def _client(procedures: FakeProcedures, **kwargs: object) -> FolderCreateTaskClient:
    sleeps: list[float] = []
    client = FolderCreateTaskClient(
        procedures=procedures,
        manager_name="Mgr-A",
        sleep=sleeps.append,
        **kwargs,
    )
    client.sleeps = sleeps  # type: ignore[attr-defined]
    return client


def test_task_found_populates_id_and_payload() -> None:
    procedures = FakeProcedures(
        requests=[RequestTaskReply(return_code=RET_VAL_OK, task_id=42, parameters="<root/>")],
    )
    client = _client(procedures)

    assert client.request_task() == RequestTaskResult.TASK_FOUND
    assert client.task_id == 42
    assert client.task_parameters_xml == "<root/>"
    assert client.task_was_assigned
    assert procedures.request_calls == [
        {"processor_name": "Mgr-A", "info_only": False, "task_count_to_preview": 10},
    ]


def test_empty_queue_is_no_task_found() -> None:
    procedures = FakeProcedures(
        requests=[
            RequestTaskReply(return_code=RET_VAL_OK, task_id=7, parameters="<root/>"),
            RequestTaskReply(
                return_code=RET_VAL_TASK_NOT_AVAILABLE,
                message="No tasks are available",
            ),
        ],
    )
    client = _client(procedures)
    client.request_task()

    assert client.request_task() == RequestTaskResult.NO_TASK_FOUND
    assert client.task_id == 0
    assert client.task_parameters_xml == ""
    assert not client.task_was_assigned


def test_unexpected_return_code_logs_unknown_error(caplog) -> None:
    procedures = FakeProcedures(requests=[RequestTaskReply(return_code=50001, message="  ")])
    client = _client(procedures)

    with caplog.at_level(logging.ERROR, logger="pkg_folder_create"):
        assert client.request_task() == RequestTaskResult.RESULT_ERROR

    assert client.task_id == 0
    messages = [record.getMessage() for record in caplog.records]
    assert any("50001" in message and "Unknown error" in message for message in messages)


def test_driver_exception_is_result_error() -> None:
    procedures = FakeProcedures(requests=[RuntimeError("connection reset")])
    client = _client(procedures)

    assert client.request_task() == RequestTaskResult.RESULT_ERROR
    assert not client.task_was_assigned


def test_transient_operational_error_is_retried_with_fixed_delay() -> None:
    procedures = FakeProcedures(
        requests=[
            _locked(),
            RequestTaskReply(return_code=RET_VAL_OK, task_id=3, parameters="<root/>"),
        ],
    )
    client = _client(procedures, retry_count=2, retry_delay_seconds=0.5)

    assert client.request_task() == RequestTaskResult.TASK_FOUND
    assert len(procedures.request_calls) == 2
    assert client.sleeps == [0.5]  # type: ignore[attr-defined]


def test_retries_are_bounded() -> None:
    procedures = FakeProcedures(requests=[_locked(), _locked(), _locked(), _locked()])
    client = _client(procedures, retry_count=2, retry_delay_seconds=0.0)

    assert client.request_task() == RequestTaskResult.RESULT_ERROR
    assert len(procedures.request_calls) == 3


def test_non_transient_errors_are_not_retried() -> None:
    procedures = FakeProcedures(requests=[ValueError("bad parameter")])
    client = _client(procedures, retry_count=5)

    assert client.request_task() == RequestTaskResult.RESULT_ERROR
    assert len(procedures.request_calls) == 1


def test_close_task_success_resets_held_task() -> None:
    procedures = FakeProcedures(
        requests=[RequestTaskReply(return_code=RET_VAL_OK, task_id=11, parameters="<root/>")],
        completions=[CompleteTaskReply(return_code=RET_VAL_OK)],
    )
    client = _client(procedures)
    client.request_task()
    client.set_param("package", "264")

    assert client.close_task(CloseOutType.SUCCESS)

    assert procedures.complete_calls == [
        {"task_id": 11, "completion_code": 0, "completion_message": ""},
    ]
    assert client.task_id == 0
    assert client.task_parameters_xml == ""
    assert client.get_param("package") == ""


@pytest.mark.parametrize(
    "completion",
    [
        CompleteTaskReply(return_code=53002, message="Task 11 is not in progress"),
        RuntimeError("connection reset"),
    ],
)
def test_close_task_failure_is_logged_not_raised(
    completion: CompleteTaskReply | Exception,
    caplog,
) -> None:
    procedures = FakeProcedures(
        requests=[RequestTaskReply(return_code=RET_VAL_OK, task_id=11, parameters="<root/>")],
        completions=[completion],
    )
    client = _client(procedures)
    client.request_task()

    with caplog.at_level(logging.ERROR, logger="pkg_folder_create"):
        assert not client.close_task(CloseOutType.FAILED, "Root directory /x not found")

    assert procedures.complete_calls[0]["completion_code"] == 1
    assert procedures.complete_calls[0]["completion_message"] == "Root directory /x not found"
    assert client.task_id == 0
    assert any(
        "Error setting task complete in database, task_id 11" in record.getMessage()
        for record in caplog.records
    )


def test_permission_denied_is_mirrored_to_db_logger(caplog) -> None:
    procedures = FakeProcedures(
        requests=[RuntimeError("The EXECUTE permission was denied on the object")],
    )
    client = _client(procedures)

    with caplog.at_level(logging.ERROR, logger="pkg_folder_create"):
        client.request_task()

    assert any(record.name == "pkg_folder_create.db" for record in caplog.records)


def test_job_parameters_are_case_insensitive() -> None:
    client = _client(FakeProcedures())

    client.set_param("Package", "264")
    client.set_param("PACKAGE", "265")

    assert client.get_param("package") == "265"
    assert client.task_params == {"PACKAGE": "265"}
    assert client.add_additional_parameter("Source", "queue")
    assert not client.add_additional_parameter("source", "other")
    assert client.get_param("SOURCE") == "queue"


def test_client_drives_repository_procedures(repository: FolderCreateQueueRepository) -> None:
    task = repository.enqueue_task(QueueTaskCreate(parameters="<root><local>/x</local></root>"))
    client = FolderCreateTaskClient(procedures=repository, manager_name="Mgr-A")

    assert client.request_task() == RequestTaskResult.TASK_FOUND
    assert client.task_id == task.task_id
    assert client.close_task(CloseOutType.SUCCESS)

    view = repository.get_task(task_id=task.task_id)
    assert view is not None
    assert view.state == QueueTaskState.COMPLETE
    assert client.request_task() == RequestTaskResult.NO_TASK_FOUND

