"""Status topic publishers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pkg_folder_create.tasks.repository import FolderCreateQueueRepository


class StatusPublisher(Protocol):
    def send_message(self, xml_text: str) -> None: ...


class DatabaseStatusPublisher:
    """Publishes status documents to the status topic table, keyed by manager."""

    def __init__(self, repository: FolderCreateQueueRepository, *, manager_name: str) -> None:
        self.repository = repository
        self.manager_name = manager_name

    def send_message(self, xml_text: str) -> None:
        self.repository.publish_status(manager_name=self.manager_name, status_xml=xml_text)
