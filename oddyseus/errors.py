"""
Exception hierarchy shared by the engine, the embedder, and the
language-model clients.

* **Input errors** (``InvalidInput``) are raised before anything is
  scored or mutated.
* **External-service errors** split into ``TransientUnavailable``
  (retried with backoff, then surfaced) and ``MalformedResponse``
  (never retried; callers recover locally where they can).
"""

from __future__ import annotations


class OddyseusError(Exception):
    """Base class for every error raised by this package."""


class InvalidInput(OddyseusError, ValueError):
    """Empty or otherwise unusable text / token input."""


class ModelUnavailable(OddyseusError):
    """The backing embedding model could not be loaded."""


class LanguageModelError(OddyseusError):
    """Any failure talking to a language-model backend."""


class TransientUnavailable(LanguageModelError):
    """Rate limit or network failure that outlived the retry budget."""

    def __init__(self, message: str, *, status: int | None = None, attempts: int = 0):
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class MalformedResponse(LanguageModelError):
    """The model replied, but not in the shape that was asked for."""
