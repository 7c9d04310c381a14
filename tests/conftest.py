"""
Shared pytest fixtures.

A session-scoped QCoreApplication backs every test that creates an
EventBus.  The offscreen platform keeps the tests headless.
"""

from __future__ import annotations

import os
import sys
from typing import Any, Dict, List

import pytest

# Force Qt to run without a display before any Qt import happens.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qapp():
    """One QCoreApplication for the entire test session."""
    from PyQt6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    yield app


@pytest.fixture
def bus(qapp):
    """Fresh EventBus for each test."""
    from oddyseus.events import EventBus

    return EventBus()


@pytest.fixture
def clock():
    from oddyseus.clock import ManualClock

    return ManualClock()


class Recorder:
    """Collects payloads published for one event name."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def __call__(self, data: Dict[str, Any]) -> None:
        self.events.append(data)


@pytest.fixture
def record(bus):
    """``record("memory_stored")`` subscribes and returns the recorder."""
    def _record(event: str) -> Recorder:
        rec = Recorder()
        bus.subscribe(event, rec)
        return rec
    return _record
