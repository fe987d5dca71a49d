from __future__ import annotations

import logging
import threading
import time

import allure

from pkg_folder_create.commands.params import BroadcastCommand, build_broadcast_xml
from pkg_folder_create.messaging.broadcast import DatabaseBroadcastListener
from pkg_folder_create.messaging.channel import BroadcastChannel
from pkg_folder_create.messaging.publisher import DatabaseStatusPublisher
from pkg_folder_create.tasks.repository import FolderCreateQueueRepository

pytestmark = [
    allure.epic("Messaging"),
    allure.feature("Broadcast Delivery"),
]


def _command(verb: str, *machines: str) -> BroadcastCommand:
    return BroadcastCommand(machines=machines, command=verb)


def test_channel_take_clears_pending_command() -> None:
    channel = BroadcastChannel()
    assert channel.take() is None

    channel.offer(_command("shutdown", "Mgr-A"))

    assert channel.wait(0)
    assert channel.take() == _command("shutdown", "Mgr-A")
    assert channel.take() is None
    assert not channel.wait(0)


def test_channel_keeps_only_newest_offer() -> None:
    channel = BroadcastChannel()

    channel.offer(_command("ReadConfig", "Mgr-A"))
    channel.offer(_command("shutdown", "Mgr-A"))

    assert channel.take() == _command("shutdown", "Mgr-A")


def test_channel_wait_wakes_on_offer_from_another_thread() -> None:
    channel = BroadcastChannel()
    timer = threading.Timer(0.05, channel.offer, args=(_command("shutdown", "Mgr-A"),))
    timer.start()
    try:
        started = time.monotonic()
        assert channel.wait(5.0)
        assert time.monotonic() - started < 5.0
    finally:
        timer.cancel()


def test_listener_skips_messages_posted_before_start(
    repository: FolderCreateQueueRepository,
) -> None:
    repository.post_broadcast(body=build_broadcast_xml(machines=("Mgr-A",), command="shutdown"))
    channel = BroadcastChannel()
    listener = DatabaseBroadcastListener(source=repository, channel=channel)

    assert listener.poll_once() == 0
    assert channel.take() is None

    message_id = repository.post_broadcast(
        body=build_broadcast_xml(machines=("Mgr-A", "Mgr-B"), command="ReadConfig"),
    )
    assert listener.poll_once() == 1
    assert listener.last_seen_id == message_id
    assert channel.take() == _command("ReadConfig", "Mgr-A", "Mgr-B")
    assert listener.poll_once() == 0


def test_listener_logs_and_skips_malformed_messages(
    repository: FolderCreateQueueRepository,
    caplog,
) -> None:
    channel = BroadcastChannel()
    listener = DatabaseBroadcastListener(source=repository, channel=channel)
    repository.post_broadcast(body="<Managers><Manager>Mgr-A</Manager>")
    repository.post_broadcast(body=build_broadcast_xml(machines=("Mgr-A",), command="shutdown"))

    with caplog.at_level(logging.ERROR, logger="pkg_folder_create"):
        assert listener.poll_once() == 1

    assert any(
        "Exception while parsing broadcast string" in record.getMessage()
        for record in caplog.records
    )
    assert channel.take() == _command("shutdown", "Mgr-A")


def test_listener_thread_delivers_new_broadcasts(repository: FolderCreateQueueRepository) -> None:
    channel = BroadcastChannel()
    listener = DatabaseBroadcastListener(source=repository, channel=channel, poll_seconds=0.02)
    listener.start()
    try:
        repository.post_broadcast(body=build_broadcast_xml(machines=("Mgr-A",), command="shutdown"))
        assert channel.wait(5.0)
    finally:
        listener.stop()

    assert channel.take() == _command("shutdown", "Mgr-A")


def test_status_publisher_replaces_topic_document(repository: FolderCreateQueueRepository) -> None:
    publisher = DatabaseStatusPublisher(repository, manager_name="Mgr-A")

    publisher.send_message("<Root><Manager>1</Manager></Root>")
    publisher.send_message("<Root><Manager>2</Manager></Root>")

    assert repository.get_published_status(manager_name="Mgr-A") == (
        "<Root><Manager>2</Manager></Root>"
    )


def test_listener_drops_commands_for_other_managers(
    repository: FolderCreateQueueRepository,
) -> None:
    channel = BroadcastChannel()
    listener = DatabaseBroadcastListener(source=repository, channel=channel, manager_name="mgr-a")
    repository.post_broadcast(body=build_broadcast_xml(machines=("Mgr-A",), command="shutdown"))
    repository.post_broadcast(body=build_broadcast_xml(machines=("Mgr-B",), command="ReadConfig"))

    assert listener.poll_once() == 1
    assert channel.take() == _command("shutdown", "Mgr-A")
