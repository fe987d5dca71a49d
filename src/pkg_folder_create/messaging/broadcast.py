"""Background listener for the broadcast topic."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from pkg_folder_create.commands.params import BroadcastXmlError, parse_broadcast_xml
from pkg_folder_create.messaging.channel import BroadcastChannel

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 1.0


class BroadcastSource(Protocol):
    def latest_broadcast_id(self) -> int: ...

    def list_broadcasts_after(self, *, message_id: int) -> list[tuple[int, str]]: ...


class DatabaseBroadcastListener:
    """Reads new broadcast rows and offers the parsed commands to ``channel``.

    Only messages posted after the listener was created are delivered.
    Malformed messages are logged and skipped. When ``manager_name`` is set,
    commands addressed to other managers are dropped before they reach the
    single-slot channel.
    """

    def __init__(
        self,
        *,
        source: BroadcastSource,
        channel: BroadcastChannel,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        manager_name: str | None = None,
    ) -> None:
        self.source = source
        self.channel = channel
        self.manager_name = manager_name
        self.poll_seconds = poll_seconds
        self._last_seen_id = source.latest_broadcast_id()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def last_seen_id(self) -> int:
        return self._last_seen_id

    def poll_once(self) -> int:
        """Deliver pending broadcasts; returns how many were offered."""

        delivered = 0
        for message_id, body in self.source.list_broadcasts_after(message_id=self._last_seen_id):
            self._last_seen_id = message_id
            logger.debug("Broadcast message %s received: %s", message_id, body)
            try:
                command = parse_broadcast_xml(body)
            except BroadcastXmlError as error:
                logger.error("Exception while parsing broadcast string: %s", error)
                continue
            if self.manager_name is not None and not command.applies_to(self.manager_name):
                logger.debug("Broadcast message %s is not addressed to this manager", message_id)
                continue
            self.channel.offer(command)
            delivered += 1
        return delivered

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._listen,
            daemon=True,
            name="broadcast-listener",
        )
        self._thread.start()
        logger.debug("Broadcast listener started")

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=5)
        self._thread = None
        logger.debug("Broadcast listener stopped")

    def _listen(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Broadcast listener error")
            self._stop.wait(timeout=self.poll_seconds)
