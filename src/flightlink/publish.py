from __future__ import annotations

from typing import Any, Callable, Protocol

from PySide6 import QtCore


class Publisher(Protocol):
    def publish(self, channel: str, event: str, payload: Any) -> None: ...


class SignalPublisher(QtCore.QObject):
    """
    Named-event fan-out over a Qt signal.

    Subscribers run in the order they subscribed; a subscriber living in
    another thread receives the event queued, so publishing never waits on it.
    """

    published = QtCore.Signal(str, str, object)

    def publish(self, channel: str, event: str, payload: Any) -> None:
        self.published.emit(channel, event, payload)

    def subscribe(self, handler: Callable[[str, str, Any], None]) -> None:
        self.published.connect(handler)
