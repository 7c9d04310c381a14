"""
Turn orchestrator — drives one conversational exchange end to end.

Pipeline per turn
-----------------
1. Relax the mood for the time that passed since the previous turn.
2. Tokenise + embed the user's text.
3. Take a snapshot of the user's relationship record.
4. Rank stored memories against the query, the live mood and any time
   hint in the text ("yesterday", "last week" ...).
5. Ask the appraisal model how the message lands; fold the pulse into
   the mood and the pleasantness into the relationship score.
6. Ask the response model for a reply grounded in the recalled
   memories and the recent dialogue.
7. Store the exchange as a new memory stamped with the mood in effect,
   and record it in the dialogue buffer.

All mutable state lives on a ``Session``; the orchestrator itself only
holds collaborators and settings, so one orchestrator can serve many
independent sessions.  Turns on the same session are serialised by the
session's lock.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from .appraisal import APPRAISAL_SYSTEM_PROMPT, Appraisal, decode_appraisal
from .clock import Clock, SystemClock
from .config import Config
from .emotion_engine import EmotionEngineConfig, EmotionStateEngine
from .errors import InvalidInput, MalformedResponse
from .events import EventBus, publish
from .memory.dialogue import DialogueConfig, DialogueContextManager, Turn
from .memory.embeddings import Embedder, HashingEmbedder, HashTokenizer, Tokenizer
from .memory.memory_store import MemoryEntry, MemoryStore, RetrievalConfig, ScoredMemory
from .memory.temporal import detect_time_hint
from .plugin_base import LanguageModelClient
from .plugins.openai_compat import LLMConfig, OpenAICompatClient
from .relationship import RelationshipData, RelationshipModel

logger = logging.getLogger(__name__)

_API_KEY_ENV = ("ODDYSEUS_API_KEY", "GROQ_API_KEY")

NO_REPLY = "(no reply)"

# Tokens that some models leak into their output but should never be shown.
_STOP_TOKENS: list[str] = [
    "<|im_end|>",
    "<|im_start|>",
    "<|assistant|>",
    "<|user|>",
    "<|system|>",
    "<|end|>",
    "<|endoftext|>",
    "[INST]",
    "[/INST]",
    "<<SYS>>",
    "<</SYS>>",
    "<s>",
    "</s>",
]

RESPONSE_SYSTEM_PROMPT = (
    "You are Oddyseus, a warm conversational companion. Reply to the "
    "user's message in plain text. Use the curated memories and recent "
    "dialogue when they are relevant; never invent shared history."
)

SUMMARY_SYSTEM_PROMPT = (
    "Summarise the following conversation turns in two or three "
    "sentences. Keep names, facts and commitments. Plain text only."
)


# ------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------

_T = TypeVar("_T")


def _from_section(cls: Type[_T], section: Dict[str, Any]) -> _T:
    """Build dataclass *cls* from the keys of *section* it knows about."""
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(unknown))
    return cls(**{k: v for k, v in section.items() if k in known})


@dataclass
class OrchestratorSettings:
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    dialogue: DialogueConfig = field(default_factory=DialogueConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    emotion: EmotionEngineConfig = field(default_factory=EmotionEngineConfig)

    @classmethod
    def from_config(cls, config: Config) -> "OrchestratorSettings":
        """
        Read the ``retrieval``, ``dialogue``, ``llm`` and ``emotion``
        sections.  A blank ``llm.api_key`` falls back to the
        ``ODDYSEUS_API_KEY`` then ``GROQ_API_KEY`` environment variables.
        """
        llm = _from_section(LLMConfig, config.section("llm"))
        if not llm.api_key:
            for name in _API_KEY_ENV:
                value = os.environ.get(name, "").strip()
                if value:
                    llm.api_key = value
                    break
        return cls(
            retrieval=_from_section(RetrievalConfig, config.section("retrieval")),
            dialogue=_from_section(DialogueConfig, config.section("dialogue")),
            llm=llm,
            emotion=_from_section(EmotionEngineConfig, config.section("emotion")),
        )


# ------------------------------------------------------------------
# Session
# ------------------------------------------------------------------

class Session:
    """Everything one conversation remembers between turns."""

    def __init__(
        self,
        engine: EmotionStateEngine,
        relationships: RelationshipModel,
        memories: MemoryStore,
        dialogue: DialogueContextManager,
    ):
        self.engine = engine
        self.relationships = relationships
        self.memories = memories
        self.dialogue = dialogue
        self.turns_completed = 0
        self.lock = threading.Lock()


# ------------------------------------------------------------------
# Orchestrator
# ------------------------------------------------------------------

class Orchestrator:
    """
    Runs turns against a session.

    Usage::

        orch = Orchestrator(HashTokenizer(), HashingEmbedder(), llm, llm)
        reply = orch.run_turn("alice", "Do you remember what I said yesterday?")

    When *appraisal_client* is None the lexicon appraisal of
    ``EmotionStateEngine.appraise`` is used instead of a model call.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        embedder: Embedder,
        appraisal_client: Optional[LanguageModelClient],
        response_client: LanguageModelClient,
        settings: Optional[OrchestratorSettings] = None,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.tokenizer = tokenizer
        self.embedder = embedder
        self.appraisal_client = appraisal_client
        self.response_client = response_client
        self.settings = settings or OrchestratorSettings()
        self.clock: Clock = clock or SystemClock()
        self.bus = event_bus
        self._default_session = self.new_session()

    @classmethod
    def from_config(
        cls,
        config: Config,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "Orchestrator":
        """Hashing embedder plus one OpenAI-compatible client for both roles."""
        settings = OrchestratorSettings.from_config(config)
        client = OpenAICompatClient(settings.llm)
        return cls(
            HashTokenizer(),
            HashingEmbedder(),
            client,
            client,
            settings=settings,
            clock=clock,
            event_bus=event_bus,
        )

    def new_session(self) -> Session:
        return Session(
            engine=EmotionStateEngine(self.bus, self.settings.emotion),
            relationships=RelationshipModel(self.bus),
            memories=MemoryStore(self.settings.retrieval, self.bus),
            dialogue=DialogueContextManager(
                self.settings.dialogue, self._summarize, self.bus,
            ),
        )

    @property
    def default_session(self) -> Session:
        return self._default_session

    # ── Turn ─────────────────────────────────────────────────

    def run_turn(self, user_id: str, user_text: str, session: Optional[Session] = None) -> str:
        """Run one exchange and return the assistant's reply."""
        if not user_id or not user_id.strip():
            raise InvalidInput("user_id must be a non-empty string")
        if not user_text or not user_text.strip():
            raise InvalidInput("user_text must be a non-empty string")

        session = session or self.default_session
        with session.lock:
            return self._run_turn_locked(user_id, user_text, session)

    def _run_turn_locked(self, user_id: str, user_text: str, session: Session) -> str:
        engine = session.engine
        engine.decay(self.clock)

        embedding = self.embedder.embed(self.tokenizer.encode(user_text))
        relationship = session.relationships.get(user_id)

        now = self.clock.wall()
        now_mono = self.clock.monotonic()
        curated = self._recall(session, embedding, user_text, now, now_mono)
        curated_entries = [hit.entry for hit in curated]

        appraisal = self._appraise(engine, user_text, relationship, curated_entries)
        pleasantness = appraisal.stored_pleasantness()

        # Session state changes only once a reply exists
        reply = self._respond(session, user_text, relationship, curated_entries, appraisal)

        engine.apply(appraisal)
        session.relationships.adjust_points(user_id, pleasantness)
        session.relationships.add_interaction(user_id)

        entry = MemoryEntry(
            user_text=user_text,
            assistant_text=reply,
            embedding=embedding,
            role="user",
            pleasantness=pleasantness,
            relationship_points=relationship.relationship_points,
            material_importance=appraisal.material_importance,
            created_at=self.clock.wall(),
            monotonic_stamp=self.clock.monotonic(),
        )
        engine.stamp(entry)
        session.memories.add(entry)
        session.dialogue.record_exchange(user_text, reply)
        session.turns_completed += 1

        logger.info(
            "Turn %d for %r: %d memories recalled, mood %s, pleasantness %+d",
            session.turns_completed, user_id, len(curated), engine.label, pleasantness,
        )
        publish(self.bus, "turn_completed", lambda: {
            "user_id": user_id,
            "turn": session.turns_completed,
            "memory_id": entry.id,
            "recalled": [hit.entry.id for hit in curated],
            "appraisal": appraisal.to_dict(),
            "emotion": engine.snapshot().to_dict(),
            "relationship": session.relationships.get(user_id).to_dict(),
        })
        return reply

    # ── Steps ────────────────────────────────────────────────

    def _recall(
        self,
        session: Session,
        embedding: Sequence[float],
        user_text: str,
        now: float,
        now_mono: float,
    ) -> List[ScoredMemory]:
        target_time = window = None
        if self.settings.retrieval.use_time_hints:
            earliest = session.memories.earliest()
            hint = detect_time_hint(
                user_text, now, earliest.created_at if earliest else None,
            )
            if hint is not None:
                logger.debug("Time hint %r -> target %.0f ±%.0fs",
                             hint.phrase, hint.target_time, hint.window_seconds)
                target_time, window = hint.target_time, hint.window_seconds

        return session.memories.recall(
            embedding,
            session.engine,
            now=now,
            now_monotonic=now_mono,
            target_time=target_time,
            time_window=window,
        )

    def _appraise(
        self,
        engine: EmotionStateEngine,
        user_text: str,
        relationship: RelationshipData,
        curated: List[MemoryEntry],
    ) -> Appraisal:
        if self.appraisal_client is None:
            return engine.appraise(user_text)

        payload = {
            "input": user_text,
            "relationship_points": relationship.relationship_points,
            "mood": {"valence": round(engine.valence, 4), "arousal": round(engine.arousal, 4)},
            "memories": [
                {
                    "id": m.id,
                    "user_text": m.user_text,
                    "assistant_text": m.assistant_text,
                    "pleasantness": m.pleasantness,
                    "material_importance": m.material_importance,
                }
                for m in curated
            ],
        }
        try:
            reply = self.appraisal_client.complete_structured(APPRAISAL_SYSTEM_PROMPT, payload)
            return decode_appraisal(reply)
        except MalformedResponse as e:
            logger.warning("Appraisal unreadable, using neutral pulse: %s", e)
            return Appraisal.neutral()

    def _respond(
        self,
        session: Session,
        user_text: str,
        relationship: RelationshipData,
        curated: List[MemoryEntry],
        appraisal: Appraisal,
    ) -> str:
        engine = session.engine
        system_prompt = "\n\n".join([
            RESPONSE_SYSTEM_PROMPT,
            engine.prompt_context(appraisal),
            "[Relationship]\n"
            f"Your relationship with {relationship.user_name} is "
            f"{relationship.partition().value} "
            f"({relationship.relationship_points:+d} points, "
            f"{relationship.interaction_count} previous exchanges).",
        ])
        payload = {
            "user_text": user_text,
            "curated_memories": [
                {"id": m.id, "user_text": m.user_text, "assistant_text": m.assistant_text}
                for m in curated
            ],
            "recent_dialogue": [
                {"role": role, "text": text}
                for role, text in session.dialogue.context_turns(curated)
            ],
        }
        raw = self.response_client.complete_text(system_prompt, payload)
        return self._clean_reply(raw)

    @staticmethod
    def _clean_reply(text: str) -> str:
        for tok in _STOP_TOKENS:
            text = text.replace(tok, "")
        text = text.strip()
        return text or NO_REPLY

    def _summarize(self, turns: Sequence[Turn]) -> str:
        # LanguageModelError is handled by the dialogue buffer
        payload = [{"role": role, "text": text} for role, text in turns]
        return self.response_client.complete_text(SUMMARY_SYSTEM_PROMPT, payload)
