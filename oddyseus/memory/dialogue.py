"""
Short-lived dialogue context.

Keeps the last few turns verbatim so the response prompt has the
immediate thread of conversation.  When the buffer outgrows
``max_turns`` the oldest turns are folded into a single ``summary``
turn produced by a summariser (normally a language-model call).

When assembling context for a reply, turns whose text is already
present in a recalled memory are left out so the prompt does not carry
the same sentence twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..errors import LanguageModelError
from ..events import EventBus, publish
from .memory_store import MemoryEntry

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SUMMARY = "summary"

Turn = Tuple[str, str]  # (role, text)
Summarizer = Callable[[Sequence[Turn]], str]


@dataclass
class DialogueConfig:
    max_turns: int = 16          # buffer capacity
    summarize_count: int = 8     # oldest turns folded per overflow


class DialogueContextManager:
    """
    Bounded buffer of ``(role, text)`` turns.

    Usage::

        dialogue = DialogueContextManager(summarizer=my_summarizer)
        dialogue.record_exchange("hi", "hello!")
        turns = dialogue.context_turns(curated_memories)
    """

    def __init__(
        self,
        config: Optional[DialogueConfig] = None,
        summarizer: Optional[Summarizer] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.cfg = config or DialogueConfig()
        self.summarizer = summarizer
        self.bus = event_bus
        self._turns: List[Turn] = []

    # ── Public API ────────────────────────────────────────────

    def record_exchange(self, user_text: str, assistant_text: str) -> None:
        self._turns.append((ROLE_USER, user_text))
        self._turns.append((ROLE_ASSISTANT, assistant_text))
        if len(self._turns) > self.cfg.max_turns:
            self._compact()

    def context_turns(self, curated: Iterable[MemoryEntry] = ()) -> List[Turn]:
        """Buffered turns minus any whose text a curated memory already holds."""
        recalled = {
            text
            for entry in curated
            for text in entry.texts()
            if text and text.strip()
        }
        return [turn for turn in self._turns if turn[1] not in recalled]

    @property
    def turns(self) -> List[Turn]:
        return list(self._turns)

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    # ── Internal ──────────────────────────────────────────────

    def _compact(self) -> None:
        count = min(self.cfg.summarize_count, len(self._turns))
        oldest = self._turns[:count]
        summary = self._summarize(oldest)

        rest = self._turns[count:]
        self._turns = ([(ROLE_SUMMARY, summary)] if summary else []) + rest

        # Trim from the front if still over capacity
        if len(self._turns) > self.cfg.max_turns:
            self._turns = self._turns[-self.cfg.max_turns:]

        if summary:
            logger.info("Folded %d dialogue turns into a summary", count)
            publish(self.bus, "dialogue_summarized", lambda: {
                "folded": count,
                "summary": summary,
                "buffer_size": len(self._turns),
            })

    def _summarize(self, turns: Sequence[Turn]) -> str:
        if self.summarizer is None:
            return ""
        try:
            summary = self.summarizer(turns)
        except LanguageModelError as e:
            logger.warning("Dialogue summary failed, dropping %d turns: %s", len(turns), e)
            return ""
        summary = (summary or "").strip()
        if not summary:
            logger.warning("Dialogue summary came back empty, dropping %d turns", len(turns))
        return summary
