"""Single-slot mailbox between the broadcast listener and the manager loop."""

from __future__ import annotations

import threading

from pkg_folder_create.commands.params import BroadcastCommand


class BroadcastChannel:
    """Holds the newest unconsumed broadcast; a new offer overwrites the old one."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._pending: BroadcastCommand | None = None

    def offer(self, command: BroadcastCommand) -> None:
        with self._lock:
            self._pending = command
            self._ready.set()

    def take(self) -> BroadcastCommand | None:
        """Return and clear the pending broadcast, if any."""

        with self._lock:
            command = self._pending
            self._pending = None
            self._ready.clear()
            return command

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds for an offer; True when one is pending."""

        return self._ready.wait(timeout=max(0.0, timeout))
