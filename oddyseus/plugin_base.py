"""
Contract every language-model backend must fulfil.

The engine needs two kinds of completion: a structured JSON reply (for
emotional appraisal) and a free-text reply (for responses and dialogue
summaries).  Backends implement both behind this interface so the
orchestrator can swap a hosted API for a local server, or for a fake
in tests, without touching the turn pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class InferenceMetrics:
    """Snapshot of the last call's performance counters."""
    latency_ms: float = 0.0
    attempts: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


class LanguageModelClient(ABC):
    """
    Language-model backend.

    Failure contract
    ----------------
    * ``TransientUnavailable``: rate limit / network trouble that did
      not clear within the retry budget.
    * ``MalformedResponse``: the reply could not be read as the
      requested structure.  Never retried.
    * ``LanguageModelError``: any other backend failure, raised
      immediately.
    """

    @abstractmethod
    def complete_structured(self, system_prompt: str, payload: Any) -> Dict[str, Any]:
        """
        Ask for a JSON object.

        Parameters
        ----------
        system_prompt : str
            Instruction describing the expected keys.
        payload : Any
            JSON-serialisable user content.
        """

    @abstractmethod
    def complete_text(self, system_prompt: str, payload: Any) -> str:
        """Ask for a free-text reply."""

    def get_metrics(self) -> InferenceMetrics:
        return InferenceMetrics()
