"""
Two-dimensional affect model.

Every emotional reading is a point in the valence/arousal plane:

* **Valence** – pleasantness   (−1 … +1)
* **Arousal** – activation     (0 … 1)

The module defines the ``AffectVector`` value type, the fixed set of
named emotions with their canonical centroids, and ``EmotionState``, a
smoothed vector whose label only changes when the vector has clearly
left the neighbourhood of the label it already carries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


# ------------------------------------------------------------------
# Value type
# ------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class AffectVector:
    """A mood point.  Both fields are clamped on construction."""

    valence: float = 0.0
    arousal: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "valence", _clamp(float(self.valence), -1.0, 1.0))
        object.__setattr__(self, "arousal", _clamp(float(self.arousal), 0.0, 1.0))

    def lerp(self, other: "AffectVector", t: float) -> "AffectVector":
        """Move toward *other* by *t*.  ``t`` is not clamped."""
        return AffectVector(
            self.valence + (other.valence - self.valence) * t,
            self.arousal + (other.arousal - self.arousal) * t,
        )

    def distance(
        self,
        other: "AffectVector",
        valence_weight: float = 1.0,
        arousal_weight: float = 0.8,
    ) -> float:
        dv = (self.valence - other.valence) * valence_weight
        da = (self.arousal - other.arousal) * arousal_weight
        return math.sqrt(dv * dv + da * da)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.valence, self.arousal)

    def __str__(self) -> str:
        return f"(v={self.valence:.2f}, a={self.arousal:.2f})"


# ------------------------------------------------------------------
# Named emotions
# ------------------------------------------------------------------

class EmotionalLabel(str, Enum):
    NEUTRAL = "Neutral"
    JOY = "Joy"
    CONTENT = "Content"
    LOVE = "Love"
    CURIOSITY = "Curiosity"
    SURPRISE = "Surprise"
    PRIDE = "Pride"
    CALM = "Calm"
    ANTICIPATION = "Anticipation"
    FEAR = "Fear"
    ANXIETY = "Anxiety"
    SADNESS = "Sadness"
    DISGUST = "Disgust"
    ANGER = "Anger"
    FRUSTRATION = "Frustration"
    SHAME = "Shame"
    GUILT = "Guilt"
    BOREDOM = "Boredom"
    RELIEF = "Relief"
    DETERMINATION = "Determination"


_RAW: List[Tuple[EmotionalLabel, float, float]] = [
    # label                          valence  arousal
    (EmotionalLabel.JOY,              0.80,    0.70),
    (EmotionalLabel.CONTENT,          0.50,    0.30),
    (EmotionalLabel.LOVE,             0.70,    0.50),
    (EmotionalLabel.CURIOSITY,        0.30,    0.60),
    (EmotionalLabel.SURPRISE,         0.10,    0.90),
    (EmotionalLabel.PRIDE,            0.60,    0.60),
    (EmotionalLabel.CALM,             0.20,    0.15),
    (EmotionalLabel.NEUTRAL,          0.00,    0.20),
    (EmotionalLabel.ANTICIPATION,     0.20,    0.55),
    (EmotionalLabel.FEAR,            -0.70,    0.85),
    (EmotionalLabel.ANXIETY,         -0.60,    0.75),
    (EmotionalLabel.SADNESS,         -0.70,    0.30),
    (EmotionalLabel.DISGUST,         -0.60,    0.40),
    (EmotionalLabel.ANGER,           -0.75,    0.80),
    (EmotionalLabel.FRUSTRATION,     -0.50,    0.65),
    (EmotionalLabel.SHAME,           -0.65,    0.35),
    (EmotionalLabel.GUILT,           -0.55,    0.45),
    (EmotionalLabel.BOREDOM,         -0.20,    0.10),
    (EmotionalLabel.RELIEF,           0.30,    0.25),
    (EmotionalLabel.DETERMINATION,    0.40,    0.55),
]

EMOTION_CENTROIDS: Dict[EmotionalLabel, AffectVector] = {
    label: AffectVector(v, a) for label, v, a in _RAW
}


def centroid(label: EmotionalLabel) -> AffectVector:
    return EMOTION_CENTROIDS[label]


def nearest_label(vector: AffectVector) -> Tuple[EmotionalLabel, float]:
    """Linear scan over all centroids; the first minimum wins."""
    best = EmotionalLabel.NEUTRAL
    best_dist = math.inf
    for label, c in EMOTION_CENTROIDS.items():
        d = c.distance(vector)
        if d < best_dist:
            best, best_dist = label, d
    return best, best_dist


# ------------------------------------------------------------------
# Labelled, smoothed state
# ------------------------------------------------------------------

class EmotionState:
    """
    Smoothed affect vector plus the label it currently carries.

    The label is re-derived only when the vector drifts more than
    ``RELABEL_THRESHOLD`` away from the centroid of the label it already
    has, so points near a boundary do not flap between two names.
    """

    SMOOTH_FACTOR = 0.25
    RELABEL_THRESHOLD = 0.15

    def __init__(self) -> None:
        self.vector: AffectVector = centroid(EmotionalLabel.NEUTRAL)
        self.label: EmotionalLabel = EmotionalLabel.NEUTRAL

    def update(self, incoming: AffectVector) -> None:
        self.vector = self.vector.lerp(incoming, self.SMOOTH_FACTOR)
        self._maybe_relabel()

    def decay(self, drift: float = 0.02) -> None:
        # Drift alone never renames the state; the next update() will.
        self.vector = self.vector.lerp(centroid(EmotionalLabel.NEUTRAL), drift)

    def _maybe_relabel(self) -> None:
        if centroid(self.label).distance(self.vector) > self.RELABEL_THRESHOLD:
            self.label, _ = nearest_label(self.vector)
