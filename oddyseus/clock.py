"""
Clock abstraction used for every time-dependent computation.

A clock exposes two readings:

* ``wall()``      – Unix time in seconds.  Stored on memories and used
  for temporal hints ("yesterday").
* ``monotonic()`` – a counter in seconds that never jumps backwards.
  Preferred for elapsed-time maths (decay) whenever both ends of the
  interval carry a monotonic reading.

``ManualClock`` is a deterministic clock for replays and tests.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def wall(self) -> float: ...

    def monotonic(self) -> float: ...


class SystemClock:
    """Reads the host clocks."""

    __slots__ = ()

    def wall(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()


class ManualClock:
    """
    Clock that only moves when told to.

    ``advance()`` moves both readings together; ``set_wall()`` moves only
    the wall reading, which is how a wall-clock adjustment looks from the
    outside.
    """

    __slots__ = ("_wall", "_mono")

    def __init__(self, wall: float = 1_700_000_000.0, monotonic: float = 1_000.0):
        self._wall = float(wall)
        self._mono = float(monotonic)

    def wall(self) -> float:
        return self._wall

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._wall += seconds
        self._mono += seconds

    def set_wall(self, wall: float) -> None:
        self._wall = float(wall)
