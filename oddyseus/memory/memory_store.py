"""
Affect-weighted long-term memory.

Every completed exchange becomes a ``MemoryEntry``: both texts, the
embedding of the user's message, the mood in effect when it was
formed, a coarse pleasantness score, the relationship score at the
time, and how materially important the exchange looked.  Entries are
appended and never removed; the bank lives for the process only.

Retrieval
---------
Ranking runs fresh over every entry on every turn (no index):

1. **Semantic gate**: cosine similarity between the query and the
   entry's embedding.  Entries under ``semantic_floor`` are dropped;
   empty, mis-sized or non-finite comparisons are skipped.
2. **Affect score**: a small baseline plus weighted relationship,
   |pleasantness|, |arousal| and material importance.
3. **Time decay**: ``exp(-elapsed / half_life)``, measured on the
   monotonic clock when both stamps exist, on wall time otherwise.
4. ``similarity × affect × decay`` is multiplied by how well the
   entry's recorded mood matches the live mood.
5. An optional **temporal boost** ``0.5 + exp(-|Δt| / window)`` favours
   entries near a time the user referred to ("yesterday").
6. Entries under ``min_score`` are dropped, the rest sorted by score
   (newer first on ties) and cut to ``top_k``.

``recall()`` adds the continuity fallback: when nothing survives but the
bank is not empty, the most recent entry is returned on its own.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..affect import EmotionalLabel
from ..events import EventBus, publish
from .embeddings import cosine_similarity

logger = logging.getLogger(__name__)

HOUR = 3600.0

# Affect score weights
RELATIONSHIP_WEIGHT = 0.35
PLEASANTNESS_WEIGHT = 0.30
AROUSAL_WEIGHT = 0.20
IMPORTANCE_WEIGHT = 0.15
BASELINE_SCORE = 0.05


class AffectMatcher(Protocol):
    def affect_match(self, mem_valence: float, mem_arousal: float) -> float: ...


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------

@dataclass
class RetrievalConfig:
    """Tunable parameters for memory ranking."""
    top_k: int = 5
    half_life_hours: float = 6.0
    min_score: float = 0.0            # permissive by default
    semantic_floor: float = 0.15
    use_time_hints: bool = True

    @property
    def half_life_seconds(self) -> float:
        return self.half_life_hours * HOUR


# ------------------------------------------------------------------
# Data structures
# ------------------------------------------------------------------

@dataclass
class MemoryEntry:
    """One remembered exchange."""
    user_text: str = ""
    assistant_text: str = ""
    embedding: List[float] = field(default_factory=list)
    role: str = "user"
    pleasantness: int = 0             # stored in −5 … +5 by the caller
    relationship_points: int = 0      # score when the memory formed
    material_importance: float = 0.0  # 0 … 1
    created_at: float = 0.0           # wall clock, epoch seconds
    monotonic_stamp: Optional[float] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # Written exactly once by stamp_emotion()
    valence: float = 0.0
    arousal: float = 0.0
    emotion_label: Optional[EmotionalLabel] = None
    stamped: bool = False

    def __post_init__(self) -> None:
        self.pleasantness = int(_clamp(int(self.pleasantness), -10, 10))
        self.material_importance = _clamp(float(self.material_importance), 0.0, 1.0)

    def stamp_emotion(
        self,
        valence: float,
        arousal: float,
        label: Optional[EmotionalLabel] = None,
    ) -> None:
        if self.stamped:
            raise RuntimeError(f"memory {self.id} already carries an emotion stamp")
        self.valence = float(valence)
        self.arousal = float(arousal)
        self.emotion_label = label
        self.stamped = True

    def texts(self) -> tuple[str, str]:
        return (self.user_text, self.assistant_text)

    def to_dict(self) -> Dict[str, Any]:
        """Prompt-facing view (no embedding)."""
        return {
            "id": self.id,
            "user_text": self.user_text,
            "assistant_text": self.assistant_text,
            "pleasantness": self.pleasantness,
            "material_importance": round(self.material_importance, 4),
            "emotion": self.emotion_label.value if self.emotion_label else None,
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class MemorySignals:
    """Per-candidate inputs to one scoring pass."""
    semantic_similarity: float
    valence: float
    arousal: float
    pleasantness: int
    relationship_points: float
    material_importance: float
    monotonic_stamp: Optional[float]
    timestamp: float

    @classmethod
    def from_entry(cls, entry: MemoryEntry, similarity: float) -> "MemorySignals":
        return cls(
            semantic_similarity=similarity,
            valence=entry.valence,
            arousal=entry.arousal,
            pleasantness=entry.pleasantness,
            relationship_points=entry.relationship_points,
            material_importance=entry.material_importance,
            monotonic_stamp=entry.monotonic_stamp,
            timestamp=entry.created_at,
        )


@dataclass
class ScoredMemory:
    """A single ranking hit."""
    entry: MemoryEntry
    score: float


# ------------------------------------------------------------------
# Scoring helpers
# ------------------------------------------------------------------

def affect_score(signals: MemorySignals) -> float:
    rel = _clamp(signals.relationship_points / 100.0, -1.0, 1.0)
    pleasant = _clamp(signals.pleasantness / 10.0, -1.0, 1.0)
    arousal = _clamp(signals.arousal, -1.0, 1.0)
    importance = _clamp(signals.material_importance, 0.0, 1.0)
    return (
        BASELINE_SCORE
        + RELATIONSHIP_WEIGHT * rel
        + PLEASANTNESS_WEIGHT * abs(pleasant)
        + AROUSAL_WEIGHT * abs(arousal)
        + IMPORTANCE_WEIGHT * importance
    )


def elapsed_seconds(
    signals: MemorySignals,
    now: float,
    now_monotonic: Optional[float] = None,
) -> float:
    """Monotonic delta when both readings exist and it is positive, else wall delta."""
    if (
        signals.monotonic_stamp is not None
        and now_monotonic is not None
        and now_monotonic > signals.monotonic_stamp
    ):
        return now_monotonic - signals.monotonic_stamp
    return max(0.0, now - signals.timestamp)


def time_decay(elapsed: float, half_life_seconds: float) -> float:
    if half_life_seconds <= 0:
        return 1.0
    return math.exp(-elapsed / half_life_seconds)


def compute_weighted_score(
    signals: MemorySignals,
    now: float,
    half_life_seconds: float,
    now_monotonic: Optional[float] = None,
) -> float:
    """``similarity × affect × decay`` for one candidate."""
    decay = time_decay(elapsed_seconds(signals, now, now_monotonic), half_life_seconds)
    return signals.semantic_similarity * affect_score(signals) * decay


def temporal_boost(created_at: float, target_time: float, window_seconds: float) -> float:
    delta = abs(target_time - created_at)
    return 0.5 + math.exp(-delta / window_seconds)


def retrieve_top_memories(
    query_embedding: Sequence[float],
    candidates: Sequence[MemoryEntry],
    emotion: AffectMatcher,
    *,
    now: float,
    now_monotonic: Optional[float] = None,
    top_k: int = 5,
    half_life_seconds: float = 6 * HOUR,
    min_score: float = 0.0,
    semantic_floor: float = 0.15,
    target_time: Optional[float] = None,
    time_window: Optional[float] = None,
) -> List[ScoredMemory]:
    """Rank *candidates* against the query and the live mood."""
    if not query_embedding:
        return []

    use_window = target_time is not None and time_window is not None and time_window > 0
    ranked: List[tuple[float, float, int, MemoryEntry]] = []

    for order, entry in enumerate(candidates):
        if not entry.embedding or len(entry.embedding) != len(query_embedding):
            logger.debug("Skipping memory %s: unusable embedding", entry.id)
            continue

        similarity = cosine_similarity(query_embedding, entry.embedding)
        if not math.isfinite(similarity):
            logger.debug("Skipping memory %s: non-finite similarity", entry.id)
            continue
        if similarity < semantic_floor:
            continue

        signals = MemorySignals.from_entry(entry, similarity)
        base = compute_weighted_score(signals, now, half_life_seconds, now_monotonic)
        alignment = emotion.affect_match(entry.valence, entry.arousal)
        total = base * alignment

        if use_window:
            total *= temporal_boost(entry.created_at, target_time, time_window)

        logger.debug(
            "Memory %s %r: sem=%.3f base=%.3f affect=%.3f total=%.3f",
            entry.id[:8], entry.user_text[:40], similarity, base, alignment, total,
        )

        if not math.isfinite(total) or total < min_score:
            continue
        ranked.append((total, entry.created_at, order, entry))

    # Score, then newer timestamp, then later insertion
    ranked.sort(key=lambda r: (r[0], r[1], r[2]), reverse=True)
    return [ScoredMemory(entry=e, score=s) for s, _, _, e in ranked[:max(0, top_k)]]


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------

class MemoryStore:
    """
    Append-only, in-process memory bank.

    Usage::

        store = MemoryStore()
        store.add(entry)
        hits = store.recall(query_vec, engine, now=clock.wall(),
                            now_monotonic=clock.monotonic())
    """

    def __init__(
        self,
        config: Optional[RetrievalConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.cfg = config or RetrievalConfig()
        self.bus = event_bus
        self._entries: List[MemoryEntry] = []

    # ── Add ──────────────────────────────────────────────────

    def add(self, entry: MemoryEntry) -> str:
        if not entry.stamped:
            logger.warning("Storing memory %s without an emotion stamp", entry.id)
        self._entries.append(entry)
        publish(self.bus, "memory_stored", lambda: {
            **entry.to_dict(),
            "valence": round(entry.valence, 4),
            "arousal": round(entry.arousal, 4),
            "count": len(self._entries),
        })
        return entry.id

    # ── Queries ──────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._entries)

    def all_entries(self) -> List[MemoryEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> Optional[MemoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def latest(self) -> Optional[MemoryEntry]:
        """Most recent entry by wall timestamp (later insertion wins ties)."""
        if not self._entries:
            return None
        best = self._entries[0]
        for entry in self._entries[1:]:
            if entry.created_at >= best.created_at:
                best = entry
        return best

    def earliest(self) -> Optional[MemoryEntry]:
        if not self._entries:
            return None
        return min(self._entries, key=lambda e: e.created_at)

    # ── Recall ───────────────────────────────────────────────

    def retrieve_top(
        self,
        query_embedding: Sequence[float],
        emotion: AffectMatcher,
        *,
        now: float,
        now_monotonic: Optional[float] = None,
        top_k: Optional[int] = None,
        target_time: Optional[float] = None,
        time_window: Optional[float] = None,
    ) -> List[ScoredMemory]:
        return retrieve_top_memories(
            query_embedding,
            self._entries,
            emotion,
            now=now,
            now_monotonic=now_monotonic,
            top_k=self.cfg.top_k if top_k is None else top_k,
            half_life_seconds=self.cfg.half_life_seconds,
            min_score=self.cfg.min_score,
            semantic_floor=self.cfg.semantic_floor,
            target_time=target_time,
            time_window=time_window,
        )

    def recall(
        self,
        query_embedding: Sequence[float],
        emotion: AffectMatcher,
        *,
        now: float,
        now_monotonic: Optional[float] = None,
        top_k: Optional[int] = None,
        target_time: Optional[float] = None,
        time_window: Optional[float] = None,
    ) -> List[ScoredMemory]:
        """``retrieve_top`` plus the most-recent-memory fallback."""
        k = self.cfg.top_k if top_k is None else top_k
        if k <= 0:
            return []
        ranked = self.retrieve_top(
            query_embedding,
            emotion,
            now=now,
            now_monotonic=now_monotonic,
            top_k=k,
            target_time=target_time,
            time_window=time_window,
        )
        if ranked:
            return ranked

        latest = self.latest()
        if latest is None:
            return []
        logger.debug("No memory cleared the filters; falling back to %s", latest.id)
        return [ScoredMemory(entry=latest, score=0.0)]
