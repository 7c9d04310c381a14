"""
Per-user relationship tracking.

Each user the companion talks to gets a ``RelationshipData`` record:
how many exchanges they have had, and a bounded relationship score
(−100 … +100) nudged by the pleasantness of each exchange.  The score
maps onto one of thirteen ordered affinity tiers.

The table is owned by whoever owns the ``RelationshipModel`` (in
practice one conversation session), never by the module.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .events import EventBus, publish

logger = logging.getLogger(__name__)

MIN_POINTS = -100
MAX_POINTS = 100


class AffinityTier(str, Enum):
    HATRED = "Hatred"
    DISGUST = "Disgust"
    STRONG_DISLIKE = "StrongDislike"
    DISLIKE = "Dislike"
    MILD_DISLIKE = "MildDislike"
    UNEASY = "Uneasy"
    NEUTRAL = "Neutral"
    MILD_LIKE = "MildLike"
    LIKE = "Like"
    STRONG_LIKE = "StrongLike"
    ADMIRATION = "Admiration"
    AFFECTION = "Affection"
    LOVE = "Love"


# Inclusive upper bound of each tier, lowest first.  Boundary values
# belong to the lower tier; anything above the last bound is LOVE.
_TIER_BOUNDS: List[Tuple[int, AffinityTier]] = [
    (-80, AffinityTier.HATRED),
    (-50, AffinityTier.DISGUST),
    (-35, AffinityTier.STRONG_DISLIKE),
    (-15, AffinityTier.DISLIKE),
    (-5,  AffinityTier.MILD_DISLIKE),
    (-1,  AffinityTier.UNEASY),
    (0,   AffinityTier.NEUTRAL),
    (15,  AffinityTier.MILD_LIKE),
    (35,  AffinityTier.LIKE),
    (55,  AffinityTier.STRONG_LIKE),
    (75,  AffinityTier.ADMIRATION),
    (90,  AffinityTier.AFFECTION),
]


def partition(points: int) -> AffinityTier:
    """Map a relationship score to its affinity tier."""
    for bound, tier in _TIER_BOUNDS:
        if points <= bound:
            return tier
    return AffinityTier.LOVE


def clamp_points(points: int) -> int:
    return max(MIN_POINTS, min(MAX_POINTS, points))


def affinity(interaction_count: int) -> float:
    """Grows with the log of the number of exchanges; 0 before any."""
    return math.log(interaction_count) if interaction_count > 0 else 0.0


@dataclass
class RelationshipData:
    user_name: str
    interaction_count: int = 0
    relationship_points: int = 0       # −100 … +100
    affinity_score: float = 0.0

    def update_relationship_points(self, delta: int) -> None:
        self.relationship_points = clamp_points(self.relationship_points + int(delta))

    def partition(self) -> AffinityTier:
        return partition(self.relationship_points)

    def to_dict(self) -> Dict[str, object]:
        return {
            "user_name": self.user_name,
            "interaction_count": self.interaction_count,
            "relationship_points": self.relationship_points,
            "affinity_score": round(self.affinity_score, 4),
            "tier": self.partition().value,
        }


class RelationshipModel:
    """
    Relationship table keyed by user name.

    Records are created on first reference with zero points and zero
    interactions.  ``get()`` hands out copies, so callers can hold a
    pre-turn snapshot while the live record keeps moving.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.bus = event_bus
        self._relationships: Dict[str, RelationshipData] = {}

    def _record(self, user_name: str) -> RelationshipData:
        rel = self._relationships.get(user_name)
        if rel is None:
            rel = RelationshipData(user_name=user_name)
            self._relationships[user_name] = rel
            logger.debug("New relationship record for %r", user_name)
        return rel

    def add_interaction(self, user_name: str) -> None:
        rel = self._record(user_name)
        rel.interaction_count += 1
        rel.affinity_score = affinity(rel.interaction_count)
        self._publish(rel)

    def adjust_points(self, user_name: str, delta: int) -> int:
        """Add *delta* to the user's score and return the clamped total."""
        rel = self._record(user_name)
        rel.update_relationship_points(delta)
        self._publish(rel)
        return rel.relationship_points

    def get(self, user_name: str) -> RelationshipData:
        rel = self._record(user_name)
        return replace(rel, affinity_score=affinity(rel.interaction_count))

    def users(self) -> List[str]:
        return list(self._relationships)

    def __contains__(self, user_name: object) -> bool:
        return user_name in self._relationships

    def _publish(self, rel: RelationshipData) -> None:
        publish(self.bus, "relationship_changed", rel.to_dict)
