"""
Event bus for decoupled component communication.

The emotion engine, relationship model, memory store and orchestrator
publish named events (``emotion_state_changed``, ``memory_stored``,
``turn_completed`` ...) instead of holding references to whoever is
listening.  Built on QObject signals; publishing and subscribing from
the same thread delivers synchronously, so no running event loop is
needed.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Callable, Optional
from PyQt6.QtCore import QObject, pyqtSignal


class _Signal(QObject):
    """Wrapper around a single pyqtSignal that can carry arbitrary data."""
    fired = pyqtSignal(dict)


class EventBus(QObject):
    """
    Event bus shared by the components of one process.

    Usage
    -----
    bus = EventBus()
    bus.subscribe("memory_stored", lambda d: print(d["id"]))
    bus.publish("memory_stored", {"id": "3f2a..."})
    """

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._channels: dict[str, _Signal] = {}
        self._listeners: Counter[str] = Counter()

    def _ensure(self, event: str) -> _Signal:
        if event not in self._channels:
            self._channels[event] = _Signal(self)
        return self._channels[event]

    def subscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        self._ensure(event).fired.connect(callback)
        self._listeners[event] += 1

    def unsubscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        if event in self._channels:
            try:
                self._channels[event].fired.disconnect(callback)
            except TypeError:
                return
            self._listeners[event] = max(0, self._listeners[event] - 1)

    def has_subscribers(self, event: str) -> bool:
        return self._listeners[event] > 0

    def publish(self, event: str, data: dict[str, Any] | None = None) -> None:
        if not self.has_subscribers(event):
            return
        self._ensure(event).fired.emit(data or {})


def publish(bus: Optional[EventBus], event: str, build: Callable[[], dict[str, Any]]) -> None:
    """Publish on *bus* if there is one, building the payload lazily."""
    if bus is not None and bus.has_subscribers(event):
        bus.publish(event, build())
