"""Poll loop that drains the folder create queue and obeys broadcasts."""

from __future__ import annotations

import copy
import logging
import signal
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from pkg_folder_create.commands.directories import DirectoryBuildResult, build_directory
from pkg_folder_create.commands.params import (
    BroadcastCommand,
    BroadcastVerb,
    CommandParams,
    CommandXmlError,
    parse_command_xml,
)
from pkg_folder_create.config import Settings
from pkg_folder_create.messaging.broadcast import DatabaseBroadcastListener
from pkg_folder_create.messaging.channel import BroadcastChannel
from pkg_folder_create.status.models import StatusSnapshot, TaskStatus, TaskStatusDetail
from pkg_folder_create.status.status_file import StatusFile
from pkg_folder_create.tasks.client import FolderCreateTaskClient
from pkg_folder_create.tasks.models import CloseOutType, RequestTaskResult

logger = logging.getLogger(__name__)

QUEUE_SOURCE = "T_Data_Folder_Create_Queue"
EXIT_BANNER = "=== Exiting Package Folder Creation Manager ==="


class LoopState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    RUNNING = "running"
    CLOSING = "closing"


class StopReason(str, Enum):
    SHUTDOWN = "shutdown"
    SIGNAL = "signal"
    DISABLED = "disabled"
    MAX_TICKS = "max_ticks"


@dataclass(slots=True)
class DirectoryOutcome:
    """Result of handling one command payload."""

    success: bool
    message: str = ""
    params: CommandParams | None = None
    build: DirectoryBuildResult | None = None


@dataclass(slots=True)
class ManagerRunSummary:
    """Aggregate loop counters for CLI reporting."""

    ticks: int = 0
    queue_checks: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    request_errors: int = 0
    broadcasts: int = 0
    stop_reason: StopReason | None = None


class FolderCreateManager:
    """Owns the status snapshot and drives the task client on a fixed cadence."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        task_client: FolderCreateTaskClient,
        status_file: StatusFile,
        channel: BroadcastChannel | None = None,
        listener: DatabaseBroadcastListener | None = None,
        params_loader: Callable[[], Mapping[str, str]] | None = None,
        on_settings_reloaded: Callable[[Settings], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.task_client = task_client
        self.status_file = status_file
        self.channel = channel or BroadcastChannel()
        self.listener = listener
        self.params_loader = params_loader
        self.on_settings_reloaded = on_settings_reloaded
        self._clock = clock
        self.loop_state = LoopState.IDLE
        self.summary = ManagerRunSummary()
        self._stop_requested = False
        self._stop_reason: StopReason | None = None

    @property
    def snapshot(self) -> StatusSnapshot:
        return self.status_file.snapshot

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def check_db_queue(self) -> bool:
        """Process queued tasks until the queue is empty or something fails.

        Returns False after a request error or a failed task; the next poll
        starts over.
        """

        self.summary.queue_checks += 1
        while not self._stop_requested:
            self.loop_state = LoopState.REQUESTING
            self._set_task_status(TaskStatus.REQUESTING)
            result = self.task_client.request_task()

            if result == RequestTaskResult.NO_TASK_FOUND:
                self.loop_state = LoopState.IDLE
                self._set_task_status(TaskStatus.NO_TASK)
                return True
            if result == RequestTaskResult.RESULT_ERROR:
                self.summary.request_errors += 1
                self.loop_state = LoopState.IDLE
                self._set_task_status(TaskStatus.NO_TASK)
                return False

            self.summary.processed += 1
            task_id = self.task_client.task_id
            self.loop_state = LoopState.RUNNING
            self.snapshot.job_number = task_id
            self._set_task_status(TaskStatus.RUNNING)

            try:
                outcome = self.create_directory(
                    self.task_client.task_parameters_xml,
                    source=QUEUE_SOURCE,
                )
            except Exception as error:
                logger.exception("Unexpected error processing task %s", task_id)
                self._set_task_status(TaskStatus.FAILED)
                outcome = DirectoryOutcome(success=False, message=str(error) or repr(error))

            self.loop_state = LoopState.CLOSING
            if outcome.success:
                self.task_client.close_task(CloseOutType.SUCCESS)
                self.summary.succeeded += 1
                continue

            self.task_client.close_task(CloseOutType.FAILED, outcome.message)
            self.summary.failed += 1
            self.loop_state = LoopState.IDLE
            return False

        self.loop_state = LoopState.IDLE
        return True

    def create_directory(self, xml_text: str, *, source: str) -> DirectoryOutcome:
        """Parse ``xml_text`` and build the directory it describes."""

        snapshot = self.snapshot
        try:
            params = parse_command_xml(xml_text)
        except CommandXmlError:
            message = "Exception parsing XML command string"
            logger.exception("%s: %s", message, xml_text)
            self._set_task_status(TaskStatus.FAILED)
            return DirectoryOutcome(success=False, message=message)

        snapshot.task_status_detail = TaskStatusDetail.RUNNING_TOOL
        snapshot.most_recent_job_info = (
            f"{datetime.now():%m/%d/%Y %H:%M:%S}; Package {params.package}"
        )
        self.status_file.write_status_file()

        build = build_directory(
            perspective=self.settings.manager.perspective,
            params=params,
            source=source,
        )
        if not build.success:
            self._set_task_status(TaskStatus.FAILED)
            return DirectoryOutcome(
                success=False,
                message=build.error or "Unknown error",
                params=params,
                build=build,
            )

        snapshot.job_number = 0
        snapshot.task_status_detail = TaskStatusDetail.NO_TASK
        self._set_task_status(TaskStatus.NO_TASK)
        return DirectoryOutcome(success=True, params=params, build=build)

    def apply_broadcast(self, command: BroadcastCommand) -> bool:
        """Act on a broadcast; returns True when it was addressed to this manager."""

        if not command.applies_to(self.settings.manager.name):
            logger.debug("Received command not applicable to this manager instance")
            return False

        self.summary.broadcasts += 1
        verb = command.verb
        if verb == BroadcastVerb.SHUTDOWN:
            logger.info("Shutdown message received")
            self._request_stop(StopReason.SHUTDOWN)
        elif verb == BroadcastVerb.READ_CONFIG:
            logger.info("Reload config message received")
            self.reload_settings()
        else:
            logger.warning("Invalid broadcast command received: %s", command.command)
        return True

    def reload_settings(self) -> bool:
        """Re-read manager parameters and apply them to the running loop."""

        if self.params_loader is None:
            logger.warning("Manager parameters cannot be reloaded: no parameter source")
            return False

        updated = copy.deepcopy(self.settings)
        try:
            updated.apply_manager_params(self.params_loader())
            updated.validate()
        except (ValueError, SQLAlchemyError) as error:
            logger.error("Error reloading manager parameters: %s", error)
            return False
        if updated.manager.name != self.settings.manager.name:
            logger.warning(
                "MgrName cannot change while running; keeping %s",
                self.settings.manager.name,
            )
            updated.manager.name = self.settings.manager.name

        self.settings = updated
        self.status_file.log_to_message_queue = updated.status.log_to_message_queue
        self.task_client.task_count_to_preview = updated.manager.task_count_to_preview
        if self.on_settings_reloaded is not None:
            self.on_settings_reloaded(updated)
        logger.info("Manager parameters reloaded")

        if not updated.manager.active:
            self._request_stop(StopReason.DISABLED)
        return True

    def drain_once(self) -> ManagerRunSummary:
        """Drain the queue a single time, then write the stopped status."""

        self._begin()
        try:
            if self._is_active():
                self.check_db_queue()
        finally:
            self._finish()
        return self.summary

    def run(self, *, max_ticks: int | None = None) -> ManagerRunSummary:
        """Tick until shutdown, a stop signal, deactivation or ``max_ticks``."""

        self._begin()
        if not self._is_active():
            self._finish()
            return self.summary

        manager = self.settings.manager
        warned_queue_disabled = False
        last_query: float | None = None
        last_running_log = self._clock()
        try:
            with self._signal_handlers():
                while not self._stop_requested:
                    if max_ticks is not None and self.summary.ticks >= max_ticks:
                        self._request_stop(StopReason.MAX_TICKS)
                        break
                    self.summary.ticks += 1

                    command = self.channel.take()
                    if command is not None:
                        self.apply_broadcast(command)
                        if self._stop_requested:
                            break
                        manager = self.settings.manager

                    if self.summary.ticks % manager.heartbeat_ticks == 0:
                        self.status_file.write_status_file()
                        running_log_seconds = manager.running_log_interval_hours * 3600
                        if self._clock() - last_running_log >= running_log_seconds:
                            last_running_log = self._clock()
                            logger.info("Manager running")

                    if manager.check_queue:
                        now = self._clock()
                        if last_query is None or now - last_query >= manager.poll_interval_seconds:
                            self.check_db_queue()
                            last_query = self._clock()
                    elif not warned_queue_disabled:
                        logger.warning(
                            "Manager parameter CheckDataFolderCreateQueue is false; "
                            "the database will not be contacted",
                        )
                        warned_queue_disabled = True

                    if not self._stop_requested:
                        self.channel.wait(manager.tick_seconds)
        finally:
            self._finish()
        return self.summary

    def _begin(self) -> None:
        self._stop_requested = False
        self._stop_reason = None
        self.summary = ManagerRunSummary()
        self.snapshot.mgr_name = self.settings.manager.name
        self.snapshot.mark_running()
        if self.listener is not None:
            self.listener.start()
        self.status_file.write_status_file()

    def _is_active(self) -> bool:
        if not self.settings.manager.active:
            logger.warning("Manager inactive: MgrActive is false")
            self._request_stop(StopReason.DISABLED)
            return False
        return True

    def _finish(self) -> None:
        reason = self._stop_reason.value if self._stop_reason else "done"
        logger.debug("Exiting poll loop (%s)", reason)
        self.summary.stop_reason = self._stop_reason
        if self._stop_reason == StopReason.DISABLED:
            logger.warning("Disabled via Manager Control database")
            self.snapshot.mark_disabled(locally=False)
        else:
            self.snapshot.mark_stopped(error=False)
        self.status_file.flush()
        if self.listener is not None:
            self.listener.stop()
        self.loop_state = LoopState.IDLE
        logger.info(EXIT_BANNER)

    def _set_task_status(self, status: TaskStatus) -> None:
        self.snapshot.task_status = status
        self.status_file.write_status_file()

    def _request_stop(self, reason: StopReason) -> None:
        if self._stop_reason is None:
            self._stop_reason = reason
        self._stop_requested = True

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Received %s; stopping", name)
            self._request_stop(StopReason.SIGNAL)

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
