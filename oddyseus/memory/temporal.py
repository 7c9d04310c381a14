"""
Time-hint detection for memory recall.

Spots phrases like "yesterday" or "last week" in the user's message
and turns them into a target time plus a window.  Retrieval uses the
pair for a modest boost toward memories formed near that time; it
never filters anything out.

"First interaction" style phrases point at the earliest memory in the
bank rather than at a fixed offset, so they only produce a hint when
the caller can say when that was.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

MINUTE = 60.0
HOUR = 60 * MINUTE
DAY = 24 * HOUR

# Sentinel offset: anchor on the earliest memory instead of "now".
_FIRST = None


@dataclass(frozen=True)
class TimeHint:
    phrase: str
    target_time: float       # wall clock, epoch seconds
    window_seconds: float


def _pattern(*phrases: str) -> Pattern[str]:
    alternatives = "|".join(re.escape(p).replace(r"\ ", r"\s+") for p in phrases)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


# (pattern, offset back from now in seconds, window in seconds)
_HINTS: List[Tuple[Pattern[str], Optional[float], float]] = [
    (_pattern("first interaction", "first time we talked", "first time we spoke",
              "when we first met", "first conversation"), _FIRST, 1 * DAY),
    (_pattern("just now", "a moment ago", "a minute ago"), 2 * MINUTE, 10 * MINUTE),
    (_pattern("earlier today", "this morning"), 4 * HOUR, 6 * HOUR),
    (_pattern("last night"), 14 * HOUR, 8 * HOUR),
    (_pattern("yesterday"), 1 * DAY, 12 * HOUR),
    (_pattern("the other day", "a few days ago", "couple of days ago",
              "couple days ago"), 3 * DAY, 2 * DAY),
    (_pattern("last week", "a week ago"), 7 * DAY, 3.5 * DAY),
    (_pattern("last month", "a month ago"), 30 * DAY, 15 * DAY),
    (_pattern("last year", "a year ago"), 365 * DAY, 90 * DAY),
]


def detect_time_hint(
    text: str,
    now: float,
    earliest: Optional[float] = None,
) -> Optional[TimeHint]:
    """
    Return the first matching hint in *text*, or None.

    *earliest* is the wall time of the oldest memory, used by
    "first interaction" phrases.
    """
    if not text:
        return None
    for pattern, offset, window in _HINTS:
        match = pattern.search(text)
        if match is None:
            continue
        if offset is _FIRST:
            if earliest is None:
                continue
            target = earliest
        else:
            target = now - offset
        return TimeHint(phrase=match.group(0).lower(), target_time=target, window_seconds=window)
    return None
