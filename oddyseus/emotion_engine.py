"""
Emotion state engine — the companion's running mood.

Responsibilities
----------------
1. **Appraise** raw text into an unsmoothed affect pulse using small
   keyword lexicons (no model call needed).
2. **Apply** pulses to a smoothed valence/arousal state so the mood
   moves gradually instead of snapping.
3. **Decay** the state toward a neutral resting point, scaled by the
   real time that has passed since the last decay.
4. **Affect match**: how close a stored memory's mood is to the mood
   right now, as a 0…1 similarity used by memory ranking.

Two labels
----------
``label`` is a quick bucket derived from fixed valence/arousal
thresholds and is what a live display shows.  ``stored_label`` comes
from the labelled ``EmotionState`` (nearest centroid, with hysteresis)
and is what gets written onto memories.  The two are deliberately
independent and can disagree.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

from .affect import AffectVector, EmotionalLabel, EmotionState
from .appraisal import Appraisal
from .clock import Clock
from .events import EventBus, publish

if TYPE_CHECKING:
    from .memory.memory_store import MemoryEntry

logger = logging.getLogger(__name__)


# ── Lexicons ─────────────────────────────────────────────────

_POSITIVE_WORDS = (
    "love", "great", "awesome", "nice", "thanks", "thank", "cool",
    "amazing", "good", "wonderful", "glad", "happy",
)

_NEGATIVE_WORDS = (
    "hate", "stupid", "idiot", "dumb", "awful", "terrible", "bad",
    "angry", "mad", "upset", "annoying", "sad", "sorry",
)

_CALMING_WORDS = ("calm", "relax", "breathe", "sleep", "rest", "peace")

_URGENCY_MARKERS = ("!", "!!!", "now", "hurry", "quick", "urgent")

_LOW_AROUSAL_WORDS = ("tired", "sleepy", "bored", "boring", "exhausted")


def _count_hits(text: str, words: tuple[str, ...]) -> int:
    """Substring containment, one hit per lexicon word present."""
    return sum(1 for w in words if w in text)


def _any_hit(text: str, words: tuple[str, ...]) -> bool:
    return any(w in text for w in words)


def _is_shouting(text: str) -> bool:
    if len(text) < 4:
        return False
    letters = [ch for ch in text if ch.isalpha()]
    if not letters:
        return False
    upper = sum(1 for ch in letters if ch.isupper())
    return upper > 0 and upper / len(letters) > 0.6


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


# ------------------------------------------------------------------
# Configuration / snapshot
# ------------------------------------------------------------------

@dataclass
class EmotionEngineConfig:
    """Tunable parameters for the engine."""
    valence_blend: float = 0.20        # bigger = bigger reaction
    arousal_blend: float = 0.15
    neutral_valence: float = 0.0       # resting point decay glides to
    neutral_arousal: float = 0.25
    decay_per_minute: float = 0.02     # blend toward rest per idle minute
    affect_match_span: float = 1.5     # distance treated as "opposite"


@dataclass(frozen=True)
class EmotionSnapshot:
    valence: float
    arousal: float
    label: str
    stored_label: EmotionalLabel
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valence": round(self.valence, 4),
            "arousal": round(self.arousal, 4),
            "label": self.label,
            "stored_label": self.stored_label.value,
            "timestamp": self.timestamp,
        }


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------

class EmotionStateEngine:
    """
    Smoothed valence/arousal mood with lexicon appraisal.

    Typical usage::

        engine = EmotionStateEngine()
        engine.decay(clock)                  # once per turn
        engine.apply(engine.appraise(text))
        engine.affect_match(memory.valence, memory.arousal)
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        config: Optional[EmotionEngineConfig] = None,
    ):
        self.bus = event_bus
        self.cfg = config or EmotionEngineConfig()

        self.valence: float = 0.0
        self.arousal: float = 0.0

        # Centroid-labelled state used for tagging stored memories
        self.state = EmotionState()

        self._last_decay: Optional[float] = None

    # ── Appraisal ────────────────────────────────────────────

    def appraise(self, text: str) -> Appraisal:
        """Deterministic keyword appraisal of *text* (no smoothing)."""
        if not text or not text.strip():
            return Appraisal(0.0, 0.0, 0)

        lower = text.lower()

        net = _count_hits(lower, _POSITIVE_WORDS) - _count_hits(lower, _NEGATIVE_WORDS)
        valence = _clamp(net * 0.25, -1.0, 1.0)

        arousal = 0.25
        if _any_hit(lower, _URGENCY_MARKERS):
            arousal += 0.25
        if _any_hit(lower, _LOW_AROUSAL_WORDS):
            arousal -= 0.20
        if _any_hit(lower, _CALMING_WORDS):
            arousal -= 0.15
        if _is_shouting(text):
            arousal += 0.25
        arousal = _clamp(arousal, 0.0, 1.0)

        return Appraisal(valence, arousal, round(valence * 10))

    # ── State updates ────────────────────────────────────────

    def blended(self, pulse: Appraisal) -> tuple[float, float]:
        """Valence and arousal *pulse* would produce, without applying it."""
        return (
            self.valence + (pulse.valence - self.valence) * self.cfg.valence_blend,
            self.arousal + (pulse.arousal - self.arousal) * self.cfg.arousal_blend,
        )

    def apply(self, pulse: Appraisal) -> None:
        """Blend a pulse into the live mood."""
        self.valence, self.arousal = self.blended(pulse)
        self.state.update(AffectVector(pulse.valence, pulse.arousal))
        logger.debug(
            "Mood now v=%.3f a=%.3f (%s / %s)",
            self.valence, self.arousal, self.label, self.state.label.value,
        )
        self._publish_state()

    def decay(self, clock: Clock) -> float:
        """
        Relax toward the neutral resting point.

        The first call only records a baseline.  Returns the blend
        factor that was applied (0.0 when nothing changed).
        """
        now = clock.monotonic()
        if self._last_decay is None:
            self._last_decay = now
            return 0.0

        elapsed = now - self._last_decay
        if elapsed <= 0:
            return 0.0

        blend = min(1.0, (elapsed / 60.0) * self.cfg.decay_per_minute)
        self.valence += (self.cfg.neutral_valence - self.valence) * blend
        self.arousal += (self.cfg.neutral_arousal - self.arousal) * blend
        self.state.decay(blend)
        self._last_decay = now

        self._publish_state()
        return blend

    def reset(self) -> None:
        self.valence = 0.0
        self.arousal = 0.0
        self.state = EmotionState()
        self._last_decay = None
        self._publish_state()

    # ── Queries ──────────────────────────────────────────────

    @staticmethod
    def affect_distance(v1: float, a1: float, v2: float, a2: float) -> float:
        dv = v1 - v2
        da = (a1 - a2) * 0.8
        return math.sqrt(dv * dv + da * da)

    def affect_match(self, mem_valence: float, mem_arousal: float) -> float:
        """Similarity (0…1) between the live mood and a stored one."""
        dist = self.affect_distance(self.valence, self.arousal, mem_valence, mem_arousal)
        return 1.0 - _clamp(dist / self.cfg.affect_match_span, 0.0, 1.0)

    @property
    def label(self) -> str:
        return self.label_from(self.valence, self.arousal)

    @property
    def stored_label(self) -> EmotionalLabel:
        return self.state.label

    @staticmethod
    def label_from(v: float, a: float) -> str:
        """Quick bucket label for display."""
        if v > 0.45 and a > 0.55:
            return "Joy"
        if v > 0.45:
            return "Content"
        if v < -0.45 and a > 0.60:
            return "Anger"
        if v < -0.45:
            return "Sad"
        if abs(v) < 0.2 and a < 0.25:
            return "Calm"
        if abs(v) < 0.25 and a > 0.65:
            return "Surprised"
        return "Neutral"

    def snapshot(self) -> EmotionSnapshot:
        return EmotionSnapshot(self.valence, self.arousal, self.label, self.state.label)

    def stamp(self, entry: "MemoryEntry") -> None:
        """Write the mood in effect right now onto a fresh memory."""
        entry.stamp_emotion(self.valence, self.arousal, self.state.label)

    def prompt_context(self, pending: Optional[Appraisal] = None) -> str:
        """
        Short natural-language mood block for the response prompt.

        With *pending*, describes the mood that pulse would leave behind.
        """
        v, a = self.blended(pending) if pending is not None else (self.valence, self.arousal)
        return (
            "[Emotional State]\n"
            f"You currently feel {self.label_from(v, a).lower()} "
            f"(valence {v:+.2f}, arousal {a:.2f}). "
            "Let this colour your tone without announcing it."
        )

    # ── Internal ─────────────────────────────────────────────

    def _publish_state(self) -> None:
        publish(self.bus, "emotion_state_changed", lambda: self.snapshot().to_dict())
