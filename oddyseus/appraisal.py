"""
Appraisal readings and the decoder for structured model replies.

An ``Appraisal`` is a raw, unsmoothed pulse: where the latest message
sits in the valence/arousal plane, a coarse integer pleasantness, and
how materially important the exchange looked.  Pulses come from two
places: the lexicon heuristic in ``EmotionStateEngine.appraise`` and
the language model's structured reply, decoded here.

Every recognised field is optional; a missing field takes its neutral
default.  A field that is present but not a number, or a reply that is
not a JSON object at all, is a ``MalformedResponse``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import MalformedResponse

NEUTRAL_VALENCE = 0.0
NEUTRAL_AROUSAL = 0.25
NEUTRAL_PLEASANTNESS = 0
NEUTRAL_IMPORTANCE = 0.0

# Range the caller keeps stored pleasantness in.
STORED_PLEASANTNESS_LIMIT = 5

APPRAISAL_SYSTEM_PROMPT = (
    "Return ONLY valid JSON (no markdown, no text) with keys: "
    "valence (-1..1), arousal (0..1), pleasantness (-10..10), "
    "material_importance (0..1)."
)


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


@dataclass(frozen=True, slots=True)
class Appraisal:
    valence: float = 0.0             # −1 … +1
    arousal: float = 0.0             # 0 … 1
    pleasantness: int = 0            # −10 … +10
    material_importance: float = 0.0  # 0 … 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "valence", _clamp(float(self.valence), -1.0, 1.0))
        object.__setattr__(self, "arousal", _clamp(float(self.arousal), 0.0, 1.0))
        object.__setattr__(self, "pleasantness", int(_clamp(int(self.pleasantness), -10, 10)))
        object.__setattr__(
            self, "material_importance",
            _clamp(float(self.material_importance), 0.0, 1.0),
        )

    @classmethod
    def neutral(cls) -> "Appraisal":
        return cls(NEUTRAL_VALENCE, NEUTRAL_AROUSAL, NEUTRAL_PLEASANTNESS, NEUTRAL_IMPORTANCE)

    def stored_pleasantness(self) -> int:
        """Pleasantness as kept on memories and fed to relationships."""
        lim = STORED_PLEASANTNESS_LIMIT
        return max(-lim, min(lim, self.pleasantness))

    def to_dict(self) -> dict[str, Any]:
        return {
            "valence": round(self.valence, 4),
            "arousal": round(self.arousal, 4),
            "pleasantness": self.pleasantness,
            "material_importance": round(self.material_importance, 4),
        }


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------

_IMPORTANCE_KEYS = ("material_importance", "materialImportance")


def _number(payload: Mapping[str, Any], key: str) -> Optional[float]:
    if key not in payload or payload[key] is None:
        return None
    value = payload[key]
    # bool is an int subclass but never a meaningful reading
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedResponse(f"field {key!r} is not a number: {value!r}")
    try:
        number = float(value)
    except ValueError as e:
        raise MalformedResponse(f"field {key!r} is not a number: {value!r}") from e
    if not math.isfinite(number):
        raise MalformedResponse(f"field {key!r} is not finite: {value!r}")
    return number


def decode_appraisal(payload: Any) -> Appraisal:
    """Turn a structured model reply into an ``Appraisal``."""
    if not isinstance(payload, Mapping):
        raise MalformedResponse(
            f"appraisal reply is not an object: {type(payload).__name__}"
        )

    valence = _number(payload, "valence")
    arousal = _number(payload, "arousal")
    pleasantness = _number(payload, "pleasantness")
    importance = None
    for key in _IMPORTANCE_KEYS:
        importance = _number(payload, key)
        if importance is not None:
            break

    return Appraisal(
        valence=NEUTRAL_VALENCE if valence is None else valence,
        arousal=NEUTRAL_AROUSAL if arousal is None else arousal,
        pleasantness=NEUTRAL_PLEASANTNESS if pleasantness is None else round(pleasantness),
        material_importance=NEUTRAL_IMPORTANCE if importance is None else importance,
    )
