"""Persistent queue repository implementing the folder create procedures."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from pkg_folder_create.storage.alembic_runner import upgrade_head
from pkg_folder_create.storage.common import (
    build_sqlite_engine,
    from_db_datetime,
    to_db_datetime,
    utc_now,
)
from pkg_folder_create.storage.sqlmodel_models import (
    BroadcastMessage,
    FolderCreateTask,
    ManagerParam,
    ManagerStatusMessage,
)
from pkg_folder_create.tasks.models import (
    DEFAULT_TASK_COUNT_TO_PREVIEW,
    RET_VAL_OK,
    RET_VAL_TASK_NOT_AVAILABLE,
    RET_VAL_TASK_NOT_FOUND,
    RET_VAL_TASK_NOT_IN_PROGRESS,
    CloseOutType,
    CompleteTaskReply,
    QueueTaskCreate,
    QueueTaskState,
    QueueTaskView,
    RequestTaskReply,
)

_CLOSE_OUT_STATES = {
    CloseOutType.SUCCESS: QueueTaskState.COMPLETE,
    CloseOutType.FAILED: QueueTaskState.FAILED,
    CloseOutType.NOT_READY: QueueTaskState.NEW,
    CloseOutType.NEED_TO_ABORT: QueueTaskState.FAILED,
}


class FolderCreateQueueRepository:
    """Queue persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def enqueue_task(self, payload: QueueTaskCreate) -> QueueTaskView:
        """Create a queued task."""

        now = utc_now()
        with Session(self.engine) as session:
            row = FolderCreateTask(
                state=QueueTaskState.NEW.value,
                parameters=payload.parameters,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def request_folder_create_task(
        self,
        *,
        processor_name: str,
        info_only: bool = False,
        task_count_to_preview: int = DEFAULT_TASK_COUNT_TO_PREVIEW,
    ) -> RequestTaskReply:
        """Assign the oldest queued task to ``processor_name``.

        Returns ``RET_VAL_TASK_NOT_AVAILABLE`` when nothing is queued. With
        ``info_only`` the candidates are listed in ``preview`` and nothing is
        claimed.
        """

        if info_only:
            preview = self.list_tasks(
                state=QueueTaskState.NEW,
                limit=max(1, task_count_to_preview),
                oldest_first=True,
            )
            if not preview:
                return RequestTaskReply(
                    return_code=RET_VAL_TASK_NOT_AVAILABLE,
                    message="No tasks are available",
                )
            return RequestTaskReply(
                return_code=RET_VAL_OK,
                message=f"Preview: {len(preview)} candidate task(s)",
                preview=preview,
            )

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(FolderCreateTask)
                    .where(FolderCreateTask.state == QueueTaskState.NEW.value)
                    .order_by(col(FolderCreateTask.task_id).asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return RequestTaskReply(
                        return_code=RET_VAL_TASK_NOT_AVAILABLE,
                        message="No tasks are available",
                    )

                result = session.exec(
                    sa_update(FolderCreateTask)
                    .where(
                        col(FolderCreateTask.task_id) == candidate.task_id,
                        col(FolderCreateTask.state) == QueueTaskState.NEW.value,
                    )
                    .values(
                        state=QueueTaskState.IN_PROGRESS.value,
                        processor=processor_name,
                        started_at=to_db_datetime(now),
                        finished_at=None,
                        completion_code=None,
                        completion_message=None,
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                session.commit()
                return RequestTaskReply(
                    return_code=RET_VAL_OK,
                    task_id=int(candidate.task_id or 0),
                    parameters=candidate.parameters,
                )

    def set_folder_create_task_complete(
        self,
        *,
        task_id: int,
        completion_code: int,
        completion_message: str = "",
    ) -> CompleteTaskReply:
        """Release an in-progress task with the given completion code."""

        try:
            close_out = CloseOutType(completion_code)
        except ValueError:
            close_out = CloseOutType.FAILED
        target_state = _CLOSE_OUT_STATES[close_out]

        now = utc_now()
        with Session(self.engine) as session:
            row = session.exec(
                select(FolderCreateTask).where(FolderCreateTask.task_id == task_id),
            ).one_or_none()
            if row is None:
                return CompleteTaskReply(
                    return_code=RET_VAL_TASK_NOT_FOUND,
                    message=f"Task {task_id} not found in the folder create queue",
                )
            if row.state != QueueTaskState.IN_PROGRESS.value:
                return CompleteTaskReply(
                    return_code=RET_VAL_TASK_NOT_IN_PROGRESS,
                    message=(
                        f"Task {task_id} is not in progress "
                        f"(state {QueueTaskState(row.state).name})"
                    ),
                )

            row.state = target_state.value
            row.completion_code = completion_code
            row.completion_message = completion_message or None
            row.updated_at = now
            if target_state == QueueTaskState.NEW:
                row.processor = None
                row.started_at = None
                row.finished_at = None
            else:
                row.finished_at = now
            session.add(row)
            session.commit()
        return CompleteTaskReply(return_code=RET_VAL_OK)

    def get_task(self, *, task_id: int) -> QueueTaskView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(FolderCreateTask).where(FolderCreateTask.task_id == task_id),
            ).one_or_none()
            return _to_task_view(row) if row is not None else None

    def list_tasks(
        self,
        *,
        state: QueueTaskState | None = None,
        limit: int = 50,
        oldest_first: bool = False,
    ) -> list[QueueTaskView]:
        """List queue rows, newest first unless ``oldest_first`` is set."""

        with Session(self.engine) as session:
            query = select(FolderCreateTask)
            if state is not None:
                query = query.where(FolderCreateTask.state == state.value)
            order = col(FolderCreateTask.task_id)
            query = query.order_by(order.asc() if oldest_first else order.desc())
            rows = session.exec(query.limit(max(1, limit))).all()
            return [_to_task_view(row) for row in rows]

    def load_manager_params(self, *, manager_name: str) -> dict[str, str]:
        """Return the parameters stored for one manager."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(ManagerParam)
                .where(ManagerParam.manager_name == manager_name)
                .order_by(col(ManagerParam.param_name).asc()),
            ).all()
            return {row.param_name: row.param_value for row in rows}

    def set_manager_param(self, *, manager_name: str, name: str, value: str) -> None:
        """Insert or update one manager parameter."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.exec(
                select(ManagerParam).where(
                    ManagerParam.manager_name == manager_name,
                    func.lower(ManagerParam.param_name) == name.lower(),
                ),
            ).one_or_none()
            if row is None:
                row = ManagerParam(
                    manager_name=manager_name,
                    param_name=name,
                    param_value=value,
                    updated_at=now,
                )
            else:
                row.param_value = value
                row.updated_at = now
            session.add(row)
            session.commit()

    def post_broadcast(self, *, body: str) -> int:
        """Append a message to the broadcast topic and return its id."""

        with Session(self.engine) as session:
            row = BroadcastMessage(body=body, created_at=utc_now())
            session.add(row)
            session.commit()
            session.refresh(row)
            return int(row.message_id or 0)

    def latest_broadcast_id(self) -> int:
        with Session(self.engine) as session:
            value = session.exec(select(func.max(BroadcastMessage.message_id))).one()
            return int(value or 0)

    def list_broadcasts_after(self, *, message_id: int) -> list[tuple[int, str]]:
        """Broadcast messages newer than ``message_id``, oldest first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(BroadcastMessage)
                .where(col(BroadcastMessage.message_id) > message_id)
                .order_by(col(BroadcastMessage.message_id).asc()),
            ).all()
            return [(int(row.message_id or 0), row.body) for row in rows]

    def publish_status(self, *, manager_name: str, status_xml: str) -> None:
        """Replace the latest published status document for one manager."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(ManagerStatusMessage, manager_name)
            if row is None:
                row = ManagerStatusMessage(
                    manager_name=manager_name,
                    status_xml=status_xml,
                    published_at=now,
                )
            else:
                row.status_xml = status_xml
                row.published_at = now
            session.add(row)
            session.commit()

    def get_published_status(self, *, manager_name: str) -> str | None:
        with Session(self.engine) as session:
            row = session.get(ManagerStatusMessage, manager_name)
            return row.status_xml if row is not None else None


def _to_task_view(row: FolderCreateTask) -> QueueTaskView:
    return QueueTaskView(
        task_id=int(row.task_id or 0),
        state=QueueTaskState(row.state),
        parameters=row.parameters,
        processor=row.processor,
        completion_code=row.completion_code,
        completion_message=row.completion_message,
        created_at=from_db_datetime(row.created_at) or utc_now(),
        started_at=from_db_datetime(row.started_at),
        finished_at=from_db_datetime(row.finished_at),
    )
