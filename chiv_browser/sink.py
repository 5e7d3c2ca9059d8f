import threading
import traceback
from collections.abc import Callable

from chiv_browser.models import ServerRecord


class ResultSink:
    """
    Holds the servers found by the current refresh. Every write goes through
    publish/reset under one lock so the list and the table rows never diverge.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._servers: list[ServerRecord] = []
        self._rows: list[tuple] = []
        self._listeners: list[Callable[[ServerRecord], None]] = []

    def publish(self, record: ServerRecord):
        with self._lock:
            self._servers.append(record)
            self._rows.append(record.row())
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(record)
            except Exception:
                traceback.print_exc()

    def find_location(self, label: str) -> tuple[float, float] | None:
        if not label:
            return None
        with self._lock:
            for server in self._servers:
                if server.location == label and server.anchor is not None:
                    return server.anchor
        return None

    def reset(self):
        with self._lock:
            self._servers.clear()
            self._rows.clear()

    def subscribe(self, listener: Callable[[ServerRecord], None]):
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[ServerRecord], None]):
        with self._lock:
            self._listeners.remove(listener)

    def snapshot(self) -> list[ServerRecord]:
        with self._lock:
            return list(self._servers)

    def rows(self) -> list[tuple]:
        with self._lock:
            return list(self._rows)

    def __len__(self):
        with self._lock:
            return len(self._servers)
