"""Controllers for manager CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from pkg_folder_create import __version__
from pkg_folder_create.commands.params import (
    CommandXmlError,
    build_broadcast_xml,
    build_command_xml,
    parse_command_xml,
)
from pkg_folder_create.config import Settings
from pkg_folder_create.logging_setup import configure_logging
from pkg_folder_create.manager.agent import FolderCreateManager
from pkg_folder_create.messaging.broadcast import DatabaseBroadcastListener
from pkg_folder_create.messaging.channel import BroadcastChannel
from pkg_folder_create.messaging.publisher import DatabaseStatusPublisher
from pkg_folder_create.status.log_handler import StatusLogHandler
from pkg_folder_create.status.models import StatusSnapshot
from pkg_folder_create.status.status_file import StatusFile, read_status_fields
from pkg_folder_create.tasks.client import FolderCreateTaskClient
from pkg_folder_create.tasks.models import QueueTaskCreate, QueueTaskState
from pkg_folder_create.tasks.repository import FolderCreateQueueRepository

logger = logging.getLogger(__name__)

START_BANNER = "=== Started Package Folder Creation Manager V{version} ==="


@dataclass(slots=True)
class ManagerRunCommand:
    """CLI input for the manager loop."""

    db_path: Path | None
    once: bool
    max_ticks: int | None
    status_file: Path | None = None


@dataclass(slots=True)
class ManagerRunResult:
    """Run report to render in CLI."""

    lines: list[str]
    success: bool


@dataclass(slots=True)
class EnqueueTaskCommand:
    """CLI input for queueing a folder create task."""

    db_path: Path | None
    xml: str | None
    package: str | None = None
    local_root: str | None = None
    shared_root: str | None = None
    directory: str | None = None


@dataclass(slots=True)
class ListTasksCommand:
    db_path: Path | None
    state: str | None
    limit: int


@dataclass(slots=True)
class SendBroadcastCommand:
    """CLI input for posting a broadcast."""

    db_path: Path | None
    machines: tuple[str, ...]
    command: str


@dataclass(slots=True)
class ParamsShowCommand:
    db_path: Path | None
    manager: str | None


@dataclass(slots=True)
class ParamsSetCommand:
    db_path: Path | None
    manager: str | None
    name: str
    value: str


@dataclass(slots=True)
class StatusShowCommand:
    status_file: Path | None


class ManagerCliController:
    """Coordinates manager, queue and status CLI operations."""

    def run(self, command: ManagerRunCommand) -> ManagerRunResult:
        """Initialise the manager and run its loop (or one drain with ``once``)."""

        settings = Settings.from_env(db_path=command.db_path)
        if command.status_file is not None:
            settings.status.path = command.status_file

        repository = FolderCreateQueueRepository(settings.db_path)
        try:
            try:
                repository.init_schema()
                settings.apply_manager_params(
                    repository.load_manager_params(manager_name=settings.manager.name),
                )
                settings.validate()
            except (ValueError, SQLAlchemyError) as error:
                return ManagerRunResult(
                    lines=[f"Manager initialization failed: {error}"],
                    success=False,
                )

            snapshot = StatusSnapshot(mgr_name=settings.manager.name)
            status_handler = StatusLogHandler(snapshot)
            configure_logging(settings.logging, extra_handlers=(status_handler,))
            logger.info(START_BANNER.format(version=__version__))

            status_file = StatusFile(
                settings.status.path,
                snapshot,
                publisher=DatabaseStatusPublisher(repository, manager_name=settings.manager.name),
                log_to_message_queue=settings.status.log_to_message_queue,
                min_write_interval_seconds=settings.status.min_write_interval_seconds,
            )
            status_file.init_status_from_file()

            if not settings.manager.active_local:
                logger.warning("Manager deactivated locally")
                snapshot.mark_disabled(locally=True)
                status_file.flush()
                return ManagerRunResult(lines=["Manager deactivated locally"], success=False)

            channel = BroadcastChannel()
            manager_name = settings.manager.name
            manager = FolderCreateManager(
                settings=settings,
                task_client=FolderCreateTaskClient(
                    procedures=repository,
                    manager_name=manager_name,
                    task_count_to_preview=settings.manager.task_count_to_preview,
                    retry_count=settings.manager.db_retry_count,
                    retry_delay_seconds=settings.manager.db_retry_delay_seconds,
                ),
                status_file=status_file,
                channel=channel,
                listener=DatabaseBroadcastListener(
                    source=repository,
                    channel=channel,
                    poll_seconds=settings.manager.broadcast_poll_seconds,
                    manager_name=manager_name,
                ),
                params_loader=lambda: repository.load_manager_params(manager_name=manager_name),
                on_settings_reloaded=lambda updated: configure_logging(
                    updated.logging,
                    extra_handlers=(status_handler,),
                ),
            )
            if command.once:
                summary = manager.drain_once()
            else:
                summary = manager.run(max_ticks=command.max_ticks)
        finally:
            repository.close()

        stop_reason = summary.stop_reason.value if summary.stop_reason else "drained"
        return ManagerRunResult(
            lines=[
                "Manager summary: "
                f"processed={summary.processed} succeeded={summary.succeeded} "
                f"failed={summary.failed} request_errors={summary.request_errors} "
                f"ticks={summary.ticks} broadcasts={summary.broadcasts} "
                f"stop_reason={stop_reason}",
            ],
            success=True,
        )

    def enqueue(self, command: EnqueueTaskCommand) -> list[str]:
        if command.xml:
            xml_text = command.xml
        else:
            missing = [
                option
                for option, value in (
                    ("--package", command.package),
                    ("--local-root", command.local_root),
                    ("--directory", command.directory),
                )
                if not value
            ]
            if missing:
                raise ValueError(f"Either --xml or {', '.join(missing)} must be given.")
            xml_text = build_command_xml(
                package=command.package or "",
                local_root=command.local_root or "",
                shared_root=command.shared_root or "",
                directory=command.directory or "",
            )

        params = parse_command_xml(xml_text)
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            task = repository.enqueue_task(QueueTaskCreate(parameters=xml_text))
        return [
            f"Task enqueued: task_id={task.task_id} package={params.package} "
            f"format=v{params.version} state={task.state.name}",
        ]

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        state = _parse_state(command.state)
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            tasks = repository.list_tasks(state=state, limit=command.limit)

        if not tasks:
            return ["No tasks found."]
        lines = ["task_id\tstate\tpackage\tprocessor\tcreated_at\tmessage"]
        for task in tasks:
            try:
                package = parse_command_xml(task.parameters).package
            except CommandXmlError:
                package = "?"
            lines.append(
                f"{task.task_id}\t{task.state.name}\t{package}\t{task.processor or '-'}\t"
                f"{task.created_at.isoformat(timespec='seconds')}\t"
                f"{task.completion_message or ''}",
            )
        return lines

    def broadcast(self, command: SendBroadcastCommand) -> list[str]:
        machines = tuple(machine.strip() for machine in command.machines if machine.strip())
        if not machines:
            raise ValueError("At least one --machine is required.")
        body = build_broadcast_xml(machines=machines, command=command.command)
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            message_id = repository.post_broadcast(body=body)
        return [
            f"Broadcast posted: message_id={message_id} command={command.command} "
            f"machines={','.join(machines)}",
        ]

    def params_show(self, command: ParamsShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        manager_name = command.manager or settings.manager.name
        with _repository(settings) as repository:
            params = repository.load_manager_params(manager_name=manager_name)
        if not params:
            return [f"No manager parameters stored for {manager_name}."]
        return [f"Manager parameters for {manager_name}:"] + [
            f"  {name} = {value}" for name, value in params.items()
        ]

    def params_set(self, command: ParamsSetCommand) -> list[str]:
        if not command.name.strip():
            raise ValueError("Parameter name must not be blank.")
        settings = Settings.from_env(db_path=command.db_path)
        manager_name = command.manager or settings.manager.name

        # Reject values the manager would fail to load.
        probe = Settings()
        probe.apply_manager_params({command.name: command.value})
        probe.validate()

        with _repository(settings) as repository:
            repository.set_manager_param(
                manager_name=manager_name,
                name=command.name.strip(),
                value=command.value,
            )
        return [f"Parameter set: {manager_name}.{command.name.strip()} = {command.value}"]

    def status(self, command: StatusShowCommand) -> list[str]:
        path = command.status_file or Settings.from_env().status.path
        if not path.exists():
            raise ValueError(f"Status file not found: {path}")
        fields = read_status_fields(path)
        return [f"{name}: {value}" for name, value in fields.items()]


def _parse_state(value: str | None) -> QueueTaskState | None:
    if value is None:
        return None
    try:
        return QueueTaskState[value.strip().upper()]
    except KeyError as error:
        choices = ", ".join(state.name.lower() for state in QueueTaskState)
        raise ValueError(f"Unknown task state {value!r}; expected one of: {choices}") from error


@contextmanager
def _repository(settings: Settings) -> Iterator[FolderCreateQueueRepository]:
    repository = FolderCreateQueueRepository(settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
